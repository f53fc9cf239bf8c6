"""Keyed in-memory state shared between the client components.

Subscribers are notified synchronously on ``set`` and ``invalidate``; a
callback receives the new value, or ``None`` after an invalidation.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

Listener = Callable[[Any], None]


def collection_key(collection_id: str) -> str:
    return f"collection:{collection_id}"


class StateCache:
    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value
        self._notify(key, value)

    def invalidate(self, key: str) -> None:
        if key in self._values:
            del self._values[key]
            self._notify(key, None)

    def subscribe(self, key: str, callback: Listener) -> Callable[[], None]:
        self._listeners[key].append(callback)

        def _unsubscribe() -> None:
            listeners = self._listeners.get(key)
            if listeners and callback in listeners:
                listeners.remove(callback)
                if not listeners:
                    del self._listeners[key]

        return _unsubscribe

    def _notify(self, key: str, value: Any) -> None:
        # Copy: a listener may unsubscribe itself while being notified.
        for callback in list(self._listeners.get(key, ())):
            callback(value)
