"""Topic-based publish/subscribe for runtime notifications."""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

FOCUS_CHANGED = "focus.changed"
STATE_CHANGED = "state.changed"
ACTION_RESULT = "action.result"

Listener = Callable[[Any], None]


class EventBus:
    """Synchronous in-process event bus.

    A failing listener is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def subscribe(self, topic: str, fn: Listener) -> Callable[[], None]:
        """Subscribe *fn* to *topic*.  Returns an unsubscribe function."""
        self._listeners.setdefault(topic, []).append(fn)

        def unsubscribe() -> None:
            listeners = self._listeners.get(topic, [])
            if fn in listeners:
                listeners.remove(fn)

        return unsubscribe

    def publish(self, topic: str, payload: Any = None) -> int:
        """Deliver *payload* to every subscriber of *topic*; returns the count."""
        delivered = 0
        for fn in list(self._listeners.get(topic, [])):
            try:
                fn(payload)
            except Exception:
                logger.exception("Listener for %s failed", topic)
                continue
            delivered += 1
        return delivered

    def clear(self) -> None:
        self._listeners.clear()
