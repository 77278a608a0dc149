"""Error taxonomy for command execution."""

from __future__ import annotations

from typing import Optional

NETWORK_ERROR_MESSAGE = "Network error, please try again."
INVALID_RESPONSE_MESSAGE = "Server returned an invalid response."


class CommandError(RuntimeError):
    """Base class for failures that settle a command without a server result."""

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""


class NetworkError(CommandError):
    """Raised when the transport fails before any response arrives."""

    def __init__(self, message: str = NETWORK_ERROR_MESSAGE, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class RemoteCommandError(CommandError):
    """Raised when the server answers with a non-2xx status.

    ``message`` is the response body text when the server sent one, else a
    generic message naming the status.
    """

    def __init__(self, status: int, message: str, *, body: str = "") -> None:
        super().__init__(message)
        self.status = int(status)
        self.body = body

    def __repr__(self) -> str:
        return f"RemoteCommandError(status={self.status}, message={self.message!r})"


class ValidationError(ValueError):
    """Raised before issuance when an input fails a client-side precondition."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""


__all__ = [
    "INVALID_RESPONSE_MESSAGE",
    "NETWORK_ERROR_MESSAGE",
    "CommandError",
    "NetworkError",
    "RemoteCommandError",
    "ValidationError",
]
