"""Generic local state container owned by a single view."""

from __future__ import annotations

import logging
from typing import Callable, Generic, List, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class Store(Generic[T]):
    """Hold the client's working copy of one entity.

    ``set`` applies synchronously and notifies subscribers before returning,
    so the new value is observable by the next line of the caller.
    """

    def __init__(self, initial: T) -> None:
        self._value: T = initial
        self._subscribers: List[Callable[[T], None]] = []
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def get(self) -> T:
        return self._value

    def set(self, updater: Callable[[T], T]) -> T:
        value = updater(self._value)
        self._value = value
        self._version += 1
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:  # pragma: no cover - subscriber bugs must not break the store
                logger.exception("store subscriber failed")
        return value

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register *callback*; returns a function that removes it."""

        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

        return _unsubscribe


__all__ = ["Store"]
