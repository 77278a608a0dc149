from __future__ import annotations

import asyncio

from tikd.client.control.query_cache import QueryCache


def test_missing_entry_is_stale() -> None:
    cache = QueryCache()
    assert cache.is_stale(("org-team", "a"))
    assert cache.get(("org-team", "a")) is None


def test_invalidate_marks_prefix_matches_stale() -> None:
    cache = QueryCache(clock=lambda: 5.0)
    cache.set(("org-team", "a"), [])
    cache.set(("org-team", "b"), [])
    cache.set(("settings", "notifications"), {})

    signalled = cache.invalidate([("org-team",)])

    assert signalled == (("org-team",),)
    assert cache.is_stale(("org-team", "a"))
    assert cache.is_stale(("org-team", "b"))
    assert not cache.is_stale(("settings", "notifications"))
    assert cache.invalidation_count == 1
    assert cache.peek(("org-team", "a")).fetched_at == 5.0


def test_empty_invalidation_is_not_counted() -> None:
    cache = QueryCache()
    seen = []
    cache.subscribe(seen.append)
    assert cache.invalidate([]) == ()
    assert cache.invalidation_count == 0
    assert seen == []


def test_listeners_receive_keys_and_can_unsubscribe() -> None:
    cache = QueryCache()
    seen = []
    unsubscribe = cache.subscribe(seen.append)
    cache.invalidate([("org-team", "a")])
    unsubscribe()
    cache.invalidate([("org-team", "a")])
    assert seen == [(("org-team", "a"),)]
    assert cache.invalidation_count == 2


def test_fetch_uses_cache_until_invalidated() -> None:
    calls = []

    async def loader():
        calls.append(1)
        return {"n": len(calls)}

    async def _run() -> None:
        cache = QueryCache()
        key = ("settings", "notifications")
        assert await cache.fetch(key, loader) == {"n": 1}
        assert await cache.fetch(key, loader) == {"n": 1}
        cache.invalidate([key])
        assert await cache.fetch(key, loader) == {"n": 2}
        assert await cache.fetch(key, loader, force=True) == {"n": 3}

    asyncio.run(_run())
    assert len(calls) == 3
