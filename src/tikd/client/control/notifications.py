"""Toast feed used to report command outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import count
import logging
import time
from typing import Callable, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

TOAST_KINDS = ("success", "error", "warning", "info")

_DEFAULT_TITLES = {
    "success": "Success",
    "error": "Error",
    "warning": "Warning",
    "info": "Notice",
}


class Notifier(Protocol):
    def success(self, message: str) -> str: ...

    def failure(self, message: str) -> str: ...


@dataclass(frozen=True)
class Toast:
    toast_id: str
    kind: str
    title: str
    message: str
    duration_ms: int
    created_at: float

    def expired(self, now: float) -> bool:
        if self.duration_ms <= 0:
            return False
        return (now - self.created_at) * 1000.0 >= self.duration_ms


class ToastFeed:
    """Non-blocking, auto-dismissing notification list.

    Every call adds one toast; there is no deduplication.  Toasts expire once
    their duration has elapsed (checked lazily through :meth:`visible`).
    """

    def __init__(self, *, duration_ms: int = 3000, clock: Callable[[], float] = time.time) -> None:
        self._duration_ms = int(duration_ms)
        self._clock = clock
        self._ids = count(1)
        self._toasts: List[Toast] = []
        self._listeners: List[Callable[[Tuple[Toast, ...]], None]] = []

    def show(self, kind: str, message: str, *, title: Optional[str] = None, duration_ms: Optional[int] = None) -> str:
        if kind not in TOAST_KINDS:
            raise ValueError(f"unknown toast kind {kind!r}")
        toast = Toast(
            toast_id=f"toast-{next(self._ids)}",
            kind=kind,
            title=title or _DEFAULT_TITLES[kind],
            message=message,
            duration_ms=self._duration_ms if duration_ms is None else int(duration_ms),
            created_at=float(self._clock()),
        )
        self._toasts.append(toast)
        level = logging.WARNING if kind == "error" else logging.INFO
        logger.log(level, "toast %s: %s", kind, message)
        self._emit()
        return toast.toast_id

    def success(self, message: str) -> str:
        return self.show("success", message)

    def failure(self, message: str) -> str:
        return self.show("error", message)

    def warning(self, message: str) -> str:
        return self.show("warning", message)

    def info(self, message: str) -> str:
        return self.show("info", message)

    def dismiss(self, toast_id: str) -> None:
        before = len(self._toasts)
        self._toasts = [t for t in self._toasts if t.toast_id != toast_id]
        if len(self._toasts) != before:
            self._emit()

    def visible(self) -> Tuple[Toast, ...]:
        now = float(self._clock())
        live = [t for t in self._toasts if not t.expired(now)]
        if len(live) != len(self._toasts):
            self._toasts = live
            self._emit()
        return tuple(live)

    def history(self, kind: Optional[str] = None) -> Tuple[Toast, ...]:
        """Toasts still held by the feed (expired ones included until pruned)."""

        if kind is None:
            return tuple(self._toasts)
        return tuple(t for t in self._toasts if t.kind == kind)

    def subscribe(self, listener: Callable[[Tuple[Toast, ...]], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def _emit(self) -> None:
        snapshot = tuple(self._toasts)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # pragma: no cover
                logger.exception("toast listener failed")


__all__ = ["TOAST_KINDS", "Notifier", "Toast", "ToastFeed"]
