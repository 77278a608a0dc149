from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

import httpx

from tikd.client.config import ClientConfig
from tikd.protocol.commands import (
    MEMBER_INVITE_KIND,
    MEMBER_REMOVE_KIND,
    MEMBER_RESEND_KIND,
    MEMBER_UPDATE_KIND,
    NOTIFICATION_MATRIX_KIND,
    NOTIFICATION_TOGGLE_KIND,
    PASSWORD_CHANGE_KIND,
    PROFILE_UPDATE_KIND,
    Command,
)

from .errors import CommandError, NetworkError, RemoteCommandError

logger = logging.getLogger(__name__)


def _maybe_enable_debug_logger(enabled: bool) -> bool:
    if not enabled:
        return False
    has_local = any(getattr(h, "_tikd_local", False) for h in logger.handlers)
    if not has_local:
        handler = logging.StreamHandler()
        fmt = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
        handler.setFormatter(logging.Formatter(fmt))
        handler.setLevel(logging.DEBUG)
        setattr(handler, "_tikd_local", True)
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return True


_JSON_HEADERS = {"Content-Type": "application/json"}


@dataclass(frozen=True)
class CommandSucceeded:
    command: Command
    status: int
    result: Any


@dataclass(frozen=True)
class CommandFailed:
    command: Command
    error: CommandError


CommandOutcome = Union[CommandSucceeded, CommandFailed]


def endpoint_for(command: Command) -> Tuple[str, str]:
    """Return ``(method, path)`` for *command* based on its kind."""

    kind = command.kind
    payload = command.payload
    if kind in (NOTIFICATION_MATRIX_KIND, NOTIFICATION_TOGGLE_KIND):
        return "PATCH", "/api/settings/notifications"
    if kind in (MEMBER_UPDATE_KIND, MEMBER_RESEND_KIND):
        return "PATCH", f"/api/organizations/{payload.organization_id}/team/{payload.member_id}"
    if kind == MEMBER_REMOVE_KIND:
        return "DELETE", f"/api/organizations/{payload.organization_id}/team/{payload.member_id}"
    if kind == MEMBER_INVITE_KIND:
        return "POST", f"/api/organizations/{payload.organization_id}/team"
    if kind == PROFILE_UPDATE_KIND:
        return "POST", "/api/settings/profile"
    if kind == PASSWORD_CHANGE_KIND:
        return "POST", "/api/settings/password"
    raise ValueError(f"no endpoint registered for command kind {kind!r}")


class RemoteCommandExecutor:
    """Turn one :class:`Command` into exactly one HTTP request.

    The executor holds no per-command state and can run any number of
    commands concurrently.  It never retries: a failed request settles the
    command with :class:`CommandFailed`.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: ClientConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> "RemoteCommandExecutor":
        _maybe_enable_debug_logger(config.debug)
        headers = dict(config.headers)
        client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_s,
            headers=headers,
            transport=transport,
        )
        return cls(client)

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RemoteCommandExecutor":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    async def execute(self, command: Command) -> CommandOutcome:
        """Send *command* and resolve with its outcome; never raises CommandError."""

        method, path = endpoint_for(command)
        try:
            status, result = await self._request(method, path, command.to_body())
        except CommandError as exc:
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "command failed: id=%s kind=%s %s %s error=%r",
                    command.command_id,
                    command.kind,
                    method,
                    path,
                    exc,
                )
            return CommandFailed(command=command, error=exc)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "command ok: id=%s kind=%s %s %s status=%d",
                command.command_id,
                command.kind,
                method,
                path,
                status,
            )
        return CommandSucceeded(command=command, status=status, result=result)

    async def fetch(self, path: str) -> Any:
        """GET *path* and return the decoded JSON body; raises CommandError."""

        _status, result = await self._request("GET", path, None)
        return result

    # ------------------------------------------------------------------
    async def _request(self, method: str, path: str, body: Optional[Dict[str, Any]]) -> Tuple[int, Any]:
        kwargs: Dict[str, Any] = {"headers": _JSON_HEADERS}
        if body is not None:
            kwargs["content"] = json.dumps(body)
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            logger.warning("transport failure: %s %s (%s)", method, path, exc)
            raise NetworkError(cause=exc) from exc

        if not response.is_success:
            text = response.text.strip()
            message = text or f"Request failed: {response.status_code}"
            raise RemoteCommandError(response.status_code, message, body=response.text)

        if not response.content:
            return response.status_code, None
        try:
            return response.status_code, response.json()
        except ValueError as exc:
            raise RemoteCommandError(
                response.status_code,
                "Server returned an invalid JSON response.",
                body=response.text,
            ) from exc


__all__ = [
    "CommandFailed",
    "CommandOutcome",
    "CommandSucceeded",
    "RemoteCommandExecutor",
    "endpoint_for",
]
