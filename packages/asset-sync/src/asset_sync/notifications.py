"""Named events emitted by the action queue and the lock service."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

EventCallback = Callable[..., None]


class EventBus:
    """Synchronous event bus with named events.

    Listeners run inline on the emitting task, in registration order. A
    listener that raises is logged and skipped, so the queue worker and lock
    timers never stall on a broken listener.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventCallback]] = defaultdict(list)

    def on(self, event: str, callback: EventCallback) -> None:
        self._listeners[event].append(callback)

    def off(self, event: str, callback: EventCallback) -> bool:
        """Remove a listener. Returns False if it was not registered."""
        listeners = self._listeners.get(event)
        if not listeners or callback not in listeners:
            return False
        listeners.remove(callback)
        if not listeners:
            del self._listeners[event]
        return True

    def emit(self, event: str, **kwargs: Any) -> None:
        for callback in list(self._listeners.get(event, ())):
            try:
                callback(**kwargs)
            except Exception:
                logger.exception("Listener %r failed on %s", callback, event)


# Queue events
ACTION_SUBMITTED = "action_submitted"
ACTION_COMPLETED = "action_completed"
ACTION_FAILED = "action_failed"

# Lock events
LOCK_ACQUIRED = "lock_acquired"
LOCK_RELEASED = "lock_released"
LOCK_EXPIRED = "lock_expired"
