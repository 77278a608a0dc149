"""Shared query cache with advisory invalidation."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from tikd.protocol.commands import InvalidationKey

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    fetched_at: float
    stale: bool = False


class QueryCache:
    """Hold fetched query results keyed by tuples such as ``("org-team", id)``.

    ``invalidate`` only marks entries stale and tells listeners; it never
    refetches.  A dependent view refreshes through :meth:`fetch`, which goes
    back to the loader whenever the entry is missing or stale.

    Only the coordinator's commit path calls ``invalidate``; any number of
    views may read.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: Dict[InvalidationKey, CacheEntry] = {}
        self._listeners: List[Callable[[Tuple[InvalidationKey, ...]], None]] = []
        self._invalidation_count = 0

    @property
    def invalidation_count(self) -> int:
        return self._invalidation_count

    def get(self, key: InvalidationKey) -> Any:
        entry = self._entries.get(tuple(key))
        return entry.value if entry is not None else None

    def set(self, key: InvalidationKey, value: Any) -> None:
        self._entries[tuple(key)] = CacheEntry(value=value, fetched_at=float(self._clock()))

    def is_stale(self, key: InvalidationKey) -> bool:
        entry = self._entries.get(tuple(key))
        return entry is None or entry.stale

    def invalidate(self, keys: Iterable[InvalidationKey]) -> Tuple[InvalidationKey, ...]:
        """Mark every entry matching one of *keys* as stale.

        A key matches entries it prefixes, so ``("org-team",)`` marks every
        organization's team listing.  Returns the keys that were signalled.
        """

        signalled = tuple(tuple(key) for key in keys)
        if not signalled:
            return signalled
        for cached_key, entry in self._entries.items():
            if any(cached_key[: len(key)] == key for key in signalled):
                entry.stale = True
        self._invalidation_count += 1
        logger.debug("cache invalidate: keys=%s", signalled)
        for listener in list(self._listeners):
            try:
                listener(signalled)
            except Exception:  # pragma: no cover - listener bugs must not block commit
                logger.exception("cache listener failed")
        return signalled

    def subscribe(self, listener: Callable[[Tuple[InvalidationKey, ...]], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    async def fetch(self, key: InvalidationKey, loader: Callable[[], Awaitable[Any]], *, force: bool = False) -> Any:
        """Return the cached value, loading it when missing, stale or forced."""

        key = tuple(key)
        if not force and not self.is_stale(key):
            return self._entries[key].value
        value = await loader()
        self.set(key, value)
        return value

    def peek(self, key: InvalidationKey) -> Optional[CacheEntry]:
        return self._entries.get(tuple(key))


__all__ = ["CacheEntry", "QueryCache"]
