from __future__ import annotations

from bookmark_backend.client.cache import StateCache, collection_key


def test_set_get_invalidate_and_subscribe() -> None:
    cache = StateCache()
    seen: list[object] = []
    key = collection_key("c1")
    assert key == "collection:c1"

    unsubscribe = cache.subscribe(key, seen.append)
    cache.set(key, {"v": 1})
    cache.set("collection:other", {"v": 2})

    assert cache.get(key) == {"v": 1}
    assert key in cache
    assert seen == [{"v": 1}]

    cache.invalidate(key)
    assert cache.get(key) is None
    assert key not in cache
    assert seen == [{"v": 1}, None]

    # Invalidating a missing key notifies nobody.
    cache.invalidate(key)
    assert seen == [{"v": 1}, None]

    unsubscribe()
    unsubscribe()
    cache.set(key, {"v": 3})
    assert seen == [{"v": 1}, None]


def test_listener_may_unsubscribe_itself() -> None:
    cache = StateCache()
    seen: list[object] = []
    handles: list[object] = []

    def _once(value: object) -> None:
        seen.append(value)
        unsubscribe = handles[0]
        assert callable(unsubscribe)
        unsubscribe()

    handles.append(cache.subscribe("k", _once))
    cache.subscribe("k", lambda v: seen.append(("second", v)))

    cache.set("k", 1)
    cache.set("k", 2)

    assert seen == [1, ("second", 1), ("second", 2)]
