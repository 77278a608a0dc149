"""Optimistic command coordination for the dashboard client."""

from __future__ import annotations

from .coordinator import CommandBinding, CommandPhase, CommandTicket, MutationCoordinator
from .errors import CommandError, NetworkError, RemoteCommandError, ValidationError
from .executor import CommandFailed, CommandOutcome, CommandSucceeded, RemoteCommandExecutor
from .notifications import Toast, ToastFeed
from .query_cache import QueryCache
from .state_store import Store

__all__ = [
    "CommandBinding",
    "CommandError",
    "CommandFailed",
    "CommandOutcome",
    "CommandPhase",
    "CommandSucceeded",
    "CommandTicket",
    "MutationCoordinator",
    "NetworkError",
    "QueryCache",
    "RemoteCommandError",
    "RemoteCommandExecutor",
    "Store",
    "Toast",
    "ToastFeed",
    "ValidationError",
]
