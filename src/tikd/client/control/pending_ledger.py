"""Per-field ledger of in-flight optimistic commands and their snapshots."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Dict, List, MutableMapping, Optional

from tikd.protocol.commands import Command, FieldKey

logger = logging.getLogger(__name__)


@dataclass
class PendingEntry:
    command: Command
    field: FieldKey
    seq: int
    snapshot: Any
    timestamp: float
    # set once a newer command on the same field has committed
    superseded: bool = False


@dataclass
class FieldState:
    pending: "OrderedDict[str, PendingEntry]" = field(default_factory=OrderedDict)


@dataclass(frozen=True)
class RollbackDecision:
    """What to do with LocalState after a command on ``field`` failed.

    ``restore`` is False when a newer command on the same field is still in
    flight; its optimistic value stays visible and ``inherited_by`` names the
    command that now carries the snapshot.
    """

    command_id: str
    field: FieldKey
    restore: bool
    value: Any
    inherited_by: Optional[str]
    pending_len: int


class PendingLedger:
    """Track optimistic commands keyed by the field they touch.

    Ordering policy is last-issued-wins: only the most recent command for a
    field may roll that field back.  When an older command fails while a newer
    one is pending, the older snapshot is handed to the next newer entry, so
    the field still converges to its last known-good value if that one fails
    too.
    """

    def __init__(self) -> None:
        self._fields: MutableMapping[FieldKey, FieldState] = {}
        self._index: Dict[str, FieldKey] = {}
        self._seq = 0

    # ------------------------------------------------------------------
    def record(self, command: Command, field_key: FieldKey, snapshot: Any) -> PendingEntry:
        self._seq += 1
        state = self._fields.setdefault(field_key, FieldState())
        entry = PendingEntry(
            command=command,
            field=field_key,
            seq=self._seq,
            snapshot=snapshot,
            timestamp=command.issued_at,
        )
        state.pending[command.command_id] = entry
        self._index[command.command_id] = field_key
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "ledger add: id=%s field=%s seq=%d pending_len=%d",
                command.command_id,
                field_key,
                entry.seq,
                len(state.pending),
            )
        return entry

    def is_pending(self, command_id: str) -> bool:
        return command_id in self._index

    def is_latest(self, command_id: str) -> bool:
        field_key = self._index.get(command_id)
        if field_key is None:
            return False
        state = self._fields[field_key]
        return next(reversed(state.pending)) == command_id

    def pending_len(self, field_key: Optional[FieldKey] = None) -> int:
        if field_key is None:
            return len(self._index)
        state = self._fields.get(field_key)
        return len(state.pending) if state is not None else 0

    def pending_entries(self) -> List[PendingEntry]:
        """All in-flight entries across fields, in issue order."""

        entries = [entry for state in self._fields.values() for entry in state.pending.values()]
        entries.sort(key=lambda entry: entry.seq)
        return entries

    # ------------------------------------------------------------------
    def resolve_failure(self, command_id: str) -> Optional[RollbackDecision]:
        """Drop *command_id* after a failure and decide whether to roll back."""

        entry = self._pop(command_id)
        if entry is None:
            return None
        state = self._fields.get(entry.field)
        newer = None
        if state is not None:
            for candidate in state.pending.values():
                if candidate.seq > entry.seq:
                    newer = candidate
                    break

        if newer is not None:
            newer.snapshot = entry.snapshot
            logger.debug(
                "ledger rollback skipped: id=%s field=%s superseded_by=%s",
                command_id,
                entry.field,
                newer.command.command_id,
            )
            return RollbackDecision(
                command_id=command_id,
                field=entry.field,
                restore=False,
                value=None,
                inherited_by=newer.command.command_id,
                pending_len=self.pending_len(entry.field),
            )

        return RollbackDecision(
            command_id=command_id,
            field=entry.field,
            restore=True,
            value=entry.snapshot,
            inherited_by=None,
            pending_len=self.pending_len(entry.field),
        )

    def resolve_commit(self, command_id: str) -> Optional[PendingEntry]:
        """Drop *command_id* after success.

        Older entries still pending on the same field are marked superseded:
        the committed value is newer than theirs, so they are no longer
        replayed over confirmed state.  They still settle normally.
        """

        entry = self._pop(command_id)
        if entry is None:
            return None
        state = self._fields.get(entry.field)
        if state is not None:
            for older in state.pending.values():
                if older.seq < entry.seq and not older.superseded:
                    older.superseded = True
                    logger.debug(
                        "ledger superseded: id=%s field=%s by=%s",
                        older.command.command_id,
                        entry.field,
                        command_id,
                    )
        return entry

    def rebase(self, read_confirmed: Callable[[PendingEntry], Any]) -> None:
        """Point the oldest pending snapshot of every field at confirmed state.

        Called after a server result lands so a later rollback restores the
        authoritative value rather than an optimistic one that has since been
        superseded.
        """

        for state in self._fields.values():
            if not state.pending:
                continue
            oldest = next(iter(state.pending.values()))
            oldest.snapshot = read_confirmed(oldest)

    def clear(self) -> None:
        self._fields.clear()
        self._index.clear()

    # ------------------------------------------------------------------
    def _pop(self, command_id: str) -> Optional[PendingEntry]:
        field_key = self._index.pop(command_id, None)
        if field_key is None:
            return None
        state = self._fields.get(field_key)
        if state is None:
            return None
        entry = state.pending.pop(command_id, None)
        if not state.pending:
            self._fields.pop(field_key, None)
        return entry

    def dump_debug(self) -> Dict[str, Any]:  # pragma: no cover - diagnostic helper
        summary: Dict[str, Any] = {}
        for field_key, state in self._fields.items():
            summary[":".join(str(part) for part in field_key)] = [
                {
                    "command_id": entry.command.command_id,
                    "kind": entry.command.kind,
                    "seq": entry.seq,
                    "snapshot": entry.snapshot,
                    "timestamp": entry.timestamp,
                    "superseded": entry.superseded,
                }
                for entry in state.pending.values()
            ]
        return summary


__all__ = [
    "FieldState",
    "PendingEntry",
    "PendingLedger",
    "RollbackDecision",
]
