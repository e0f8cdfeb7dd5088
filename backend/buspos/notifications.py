# Overview: Publish/subscribe port for seat-lock and session-total change events.

"""
Change notification channel.

The services publish events after their transaction commits; any transport
(WebSocket, SSE, polling bridge) subscribes here and handles delivery.
Delivery is best-effort: a failing handler is logged and skipped, it never
affects the operation that published the event.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable

from flask import current_app

Handler = Callable[[str, dict], None]

SEAT_LOCKED = "seat.locked"
SEAT_UNLOCKED = "seat.unlocked"
SEAT_SOLD = "seat.sold"
SESSION_OPENED = "session.opened"
SESSION_CLOSED = "session.closed"
SESSION_TOTALS_CHANGED = "session.totals_changed"

WILDCARD = "*"


class ChangeNotifier:
    """App-scoped subscriber registry, initialized like any Flask extension."""

    def __init__(self, app=None):
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.extensions["change_notifier"] = self

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register a handler for a topic ("*" receives everything). Returns an unsubscribe callable."""
        self._handlers[topic].append(handler)

        def _unsubscribe():
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def clear(self) -> None:
        self._handlers.clear()

    def publish(self, topic: str, payload: dict) -> int:
        """Deliver an event to subscribers. Returns the number of handlers that succeeded."""
        delivered = 0
        for handler in list(self._handlers.get(topic, [])) + list(self._handlers.get(WILDCARD, [])):
            try:
                handler(topic, payload)
                delivered += 1
            except Exception:
                current_app.logger.exception("Change handler failed for %s", topic)
        return delivered


def publish(topic: str, payload: dict) -> int:
    """Publish through the notifier bound to the current app."""
    notifier = current_app.extensions.get("change_notifier")
    if notifier is None:
        return 0
    return notifier.publish(topic, payload)
