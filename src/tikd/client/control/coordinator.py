"""Optimistic mutation coordinator.

One :class:`MutationCoordinator` serves one view's :class:`Store`.  Each
issued command walks ``idle -> applying -> settling -> committed|rolled_back``:

* on issue, the binding's optimistic change is written to the store
  synchronously, after the touched field's previous value is recorded in the
  :class:`PendingLedger`;
* the executor runs in a task, so the caller is never blocked;
* on success the server result becomes the new confirmed state, still
  pending optimistic commands are re-applied on top of it (except those on
  the same field issued before the committed one), and the binding's
  invalidation keys fire once;
* a successful response whose result the binding cannot read (``commit``
  raises ``ValueError``) settles as a failure with
  :data:`~tikd.client.control.errors.INVALID_RESPONSE_MESSAGE`;
* on failure the field is restored from its snapshot (unless a newer command
  on the same field is in flight) and one failure toast is shown.

Nothing is retried.  Cancellation is not supported; an issued command always
settles.
"""

from __future__ import annotations

import asyncio
import copy
import enum
import logging
import time
from dataclasses import dataclass, field
from itertools import count
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Optional,
    Protocol,
    Tuple,
    TypeVar,
)

from tikd.protocol.commands import Command, CommandPayload, FieldKey, InvalidationKey

from .errors import INVALID_RESPONSE_MESSAGE, CommandError, RemoteCommandError
from .executor import CommandFailed, CommandOutcome, CommandSucceeded
from .notifications import Notifier
from .pending_ledger import PendingEntry, PendingLedger, RollbackDecision
from .query_cache import QueryCache
from .state_store import Store

T = TypeVar("T")

logger = logging.getLogger(__name__)


class CommandExecutor(Protocol):
    async def execute(self, command: Command) -> CommandOutcome: ...


class CommandPhase(str, enum.Enum):
    IDLE = "idle"
    APPLYING = "applying"
    SETTLING = "settling"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


def _no_invalidation(payload: Any) -> Tuple[InvalidationKey, ...]:
    return ()


@dataclass(frozen=True)
class CommandBinding(Generic[T]):
    """How one command kind touches the entity held by a store.

    ``commit`` merges the server result into confirmed state.  Optimistic kinds
    also provide ``field`` (which field the payload touches), ``apply`` (the
    optimistic change) and ``read``/``write`` accessors used for snapshots and
    rollback.  Kinds without ``field`` wait for the server before touching the
    store.
    """

    kind: str
    commit: Callable[[T, Any, Any], T]
    field: Optional[Callable[[Any], FieldKey]] = None
    apply: Optional[Callable[[T, Any], T]] = None
    read: Optional[Callable[[T, FieldKey], Any]] = None
    write: Optional[Callable[[T, FieldKey, Any], T]] = None
    invalidates: Callable[[Any], Tuple[InvalidationKey, ...]] = _no_invalidation
    validate: Optional[Callable[[Any, T], None]] = None
    success_message: Optional[Callable[[Any, Any], Optional[str]]] = None
    failure_message: str = "Could not complete the request."

    @property
    def optimistic(self) -> bool:
        return self.field is not None

    def __post_init__(self) -> None:
        if self.field is not None and (self.apply is None or self.read is None or self.write is None):
            raise ValueError(f"optimistic binding {self.kind!r} needs apply, read and write")


@dataclass
class CommandTicket:
    """Handle returned by :meth:`MutationCoordinator.issue`."""

    command: Command
    phase: CommandPhase = CommandPhase.IDLE
    task: Optional["asyncio.Task[CommandTicket]"] = None
    result: Any = None
    error: Optional[CommandError] = None
    rollback: Optional[RollbackDecision] = None
    history: List[CommandPhase] = field(default_factory=list)

    @property
    def settled(self) -> bool:
        return self.phase in (CommandPhase.COMMITTED, CommandPhase.ROLLED_BACK)

    @property
    def succeeded(self) -> bool:
        return self.phase is CommandPhase.COMMITTED

    async def wait(self) -> "CommandTicket":
        if self.task is not None:
            await self.task
        return self

    def _enter(self, phase: CommandPhase) -> None:
        self.phase = phase
        self.history.append(phase)


class MutationCoordinator(Generic[T]):
    """Reconcile optimistic changes to one store against server outcomes."""

    def __init__(
        self,
        store: Store[T],
        executor: CommandExecutor,
        bindings: Iterable[CommandBinding[T]],
        *,
        cache: QueryCache,
        notifier: Notifier,
        clock: Callable[[], float] = time.time,
        id_prefix: str = "cmd",
    ) -> None:
        self._store = store
        self._executor = executor
        self._bindings: Dict[str, CommandBinding[T]] = {}
        for binding in bindings:
            if binding.kind in self._bindings:
                raise ValueError(f"duplicate binding for kind {binding.kind!r}")
            self._bindings[binding.kind] = binding
        self._cache = cache
        self._notifier = notifier
        self._clock = clock
        self._id_prefix = id_prefix
        self._ids = count(1)
        self._ledger = PendingLedger()
        self._confirmed: T = store.get()
        self._inflight: Dict[str, CommandTicket] = {}

    # ------------------------------------------------------------------
    @property
    def store(self) -> Store[T]:
        return self._store

    @property
    def ledger(self) -> PendingLedger:
        return self._ledger

    @property
    def confirmed(self) -> T:
        """Last state acknowledged by the server (no optimistic changes)."""

        return self._confirmed

    def inflight(self) -> Tuple[CommandTicket, ...]:
        return tuple(self._inflight.values())

    def next_command_id(self) -> str:
        value = next(self._ids) & 0xFFFFFFFF
        return f"{self._id_prefix}-{value:08x}"

    # ------------------------------------------------------------------
    def seed(self, value: T) -> T:
        """Install freshly fetched server state, keeping in-flight optimism."""

        self._confirmed = value
        self._ledger.rebase(self._read_confirmed)
        return self._store.set(lambda _prev: self._project())

    def issue(self, payload: CommandPayload) -> CommandTicket:
        """Issue one command; returns as soon as the optimistic change is visible.

        Raises :class:`~tikd.client.control.errors.ValidationError` before
        anything is recorded when the binding's precondition fails.  Must be
        called from inside a running event loop.
        """

        binding = self._binding(payload.kind)
        if binding.validate is not None:
            binding.validate(payload, self._store.get())

        loop = asyncio.get_running_loop()
        command = Command.create(self.next_command_id(), payload, issued_at=self._clock())
        ticket = CommandTicket(command=command)
        ticket._enter(CommandPhase.IDLE)

        if binding.optimistic:
            field_key = binding.field(payload)
            snapshot = copy.deepcopy(binding.read(self._store.get(), field_key))
            self._ledger.record(command, field_key, snapshot)
            ticket._enter(CommandPhase.APPLYING)
            self._store.set(lambda state: binding.apply(state, payload))

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "command issued: id=%s kind=%s optimistic=%s payload=%r",
                command.command_id,
                command.kind,
                binding.optimistic,
                payload,
            )

        self._inflight[command.command_id] = ticket
        ticket.task = loop.create_task(self._settle(ticket, binding))
        return ticket

    async def drain(self) -> None:
        """Wait until every in-flight command has settled."""

        while self._inflight:
            tasks = [t.task for t in self._inflight.values() if t.task is not None]
            if not tasks:
                return
            await asyncio.gather(*tasks)

    # ------------------------------------------------------------------
    async def _settle(self, ticket: CommandTicket, binding: CommandBinding[T]) -> CommandTicket:
        ticket._enter(CommandPhase.SETTLING)
        command = ticket.command
        try:
            try:
                outcome = await self._executor.execute(command)
            except CommandError as exc:
                outcome = CommandFailed(command=command, error=exc)

            if isinstance(outcome, CommandSucceeded):
                try:
                    confirmed = binding.commit(self._confirmed, command.payload, outcome.result)
                except ValueError as exc:
                    # the server acknowledged but sent something we cannot read
                    logger.warning(
                        "command %s (%s) got an unreadable result: %s",
                        command.command_id,
                        command.kind,
                        exc,
                    )
                    error = RemoteCommandError(outcome.status, INVALID_RESPONSE_MESSAGE, body=repr(outcome.result))
                    self._rollback(ticket, binding, error)
                else:
                    self._commit(ticket, binding, confirmed, outcome.result)
            else:
                self._rollback(ticket, binding, outcome.error)
        except Exception:
            logger.exception("command %s (%s) crashed while settling", command.command_id, command.kind)
            if not ticket.settled:
                self._rollback(ticket, binding, None)
            raise
        finally:
            self._inflight.pop(command.command_id, None)
        return ticket

    def _commit(self, ticket: CommandTicket, binding: CommandBinding[T], confirmed: T, result: Any) -> None:
        command = ticket.command
        payload = command.payload
        self._ledger.resolve_commit(command.command_id)
        self._confirmed = confirmed
        self._ledger.rebase(self._read_confirmed)
        self._store.set(lambda _prev: self._project())

        ticket.result = result
        ticket._enter(CommandPhase.COMMITTED)

        keys = binding.invalidates(payload)
        if keys:
            self._cache.invalidate(keys)

        logger.debug(
            "command committed: id=%s kind=%s pending=%d",
            command.command_id,
            command.kind,
            self._ledger.pending_len(),
        )
        if binding.success_message is not None:
            message = binding.success_message(payload, result)
            if message:
                self._notifier.success(message)

    def _rollback(
        self,
        ticket: CommandTicket,
        binding: CommandBinding[T],
        error: Optional[CommandError],
    ) -> None:
        command = ticket.command
        decision = self._ledger.resolve_failure(command.command_id)
        if decision is not None and decision.restore:
            restored = copy.deepcopy(decision.value)
            field_key = decision.field
            self._store.set(lambda state: binding.write(state, field_key, restored))

        ticket.error = error
        ticket.rollback = decision
        ticket._enter(CommandPhase.ROLLED_BACK)

        logger.warning(
            "command rolled back: id=%s kind=%s restored=%s error=%r",
            command.command_id,
            command.kind,
            bool(decision and decision.restore),
            error,
        )
        message = error.message if error is not None and error.message else binding.failure_message
        self._notifier.failure(message)

    # ------------------------------------------------------------------
    def _binding(self, kind: str) -> CommandBinding[T]:
        try:
            return self._bindings[kind]
        except KeyError:
            raise ValueError(f"no binding registered for command kind {kind!r}") from None

    def _read_confirmed(self, entry: PendingEntry) -> Any:
        binding = self._binding(entry.command.kind)
        return copy.deepcopy(binding.read(self._confirmed, entry.field))

    def _project(self) -> T:
        state = self._confirmed
        for entry in self._ledger.pending_entries():
            if entry.superseded:
                continue
            binding = self._binding(entry.command.kind)
            state = binding.apply(state, entry.command.payload)
        return state


__all__ = [
    "CommandBinding",
    "CommandExecutor",
    "CommandPhase",
    "CommandTicket",
    "MutationCoordinator",
]
