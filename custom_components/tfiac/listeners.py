"""Event listener registry shared by the client, state and queue."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Any

from .const import LOGGER

if TYPE_CHECKING:
    from collections.abc import Callable

    from homeassistant.core import CALLBACK_TYPE


class ListenerRegistry:
    """Minimal named-event emitter; callbacks run synchronously in order."""

    def __init__(self) -> None:
        """Initialize with no listeners."""
        self._listeners: dict[str, list[Callable[[Any], None]]] = defaultdict(list)

    def add_listener(
        self, event: str, callback: Callable[[Any], None]
    ) -> CALLBACK_TYPE:
        """Register a callback for an event, returning a remover."""
        self._listeners[event].append(callback)

        def remove_listener() -> None:
            callbacks = self._listeners.get(event)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)

        return remove_listener

    def remove_all_listeners(self) -> None:
        """Drop every registered callback."""
        self._listeners.clear()

    def listener_count(self, event: str) -> int:
        """Return how many callbacks are registered for an event."""
        return len(self._listeners.get(event, ()))

    def _emit(self, event: str, payload: Any = None) -> None:
        # Copy so callbacks may unsubscribe while being notified
        for callback in list(self._listeners.get(event, ())):
            try:
                callback(payload)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Error in %s listener", event)
