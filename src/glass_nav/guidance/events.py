# events.py
# Per-session publish / subscribe for navigation events.

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .models import NavigationEvent, NavigationEventType

logger = logging.getLogger(__name__)

Listener = Callable[[NavigationEvent], None]


class EventBus:
    """
    Ordered listeners per event type.

    Usage:
        dispose = bus.subscribe(NavigationEventType.DESTINATION_REACHED, on_arrived)
        ...
        dispose()
    """

    def __init__(self) -> None:
        self._listeners: Dict[NavigationEventType, List[Listener]] = {}

    def subscribe(self, event_type: NavigationEventType, listener: Listener) -> Callable[[], None]:
        """Register `listener`; returns a callable that removes it again."""
        self._listeners.setdefault(event_type, []).append(listener)

        def dispose() -> None:
            self.unsubscribe(event_type, listener)

        return dispose

    def subscribe_all(self, listener: Listener) -> Callable[[], None]:
        disposers = [self.subscribe(t, listener) for t in NavigationEventType]

        def dispose() -> None:
            for d in disposers:
                d()

        return dispose

    def unsubscribe(self, event_type: NavigationEventType, listener: Listener) -> None:
        listeners = self._listeners.get(event_type)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: NavigationEventType) -> int:
        return len(self._listeners.get(event_type, []))

    def clear(self) -> None:
        self._listeners.clear()

    def emit(self, event_type: NavigationEventType, data: Optional[Dict[str, Any]] = None) -> NavigationEvent:
        """
        Deliver an event to every listener of its type, in subscription order.

        A failing listener is logged and does not stop the others.
        """
        event = NavigationEvent(type=event_type, timestamp=datetime.now(), data=data or {})
        # Copy: listeners may unsubscribe while being notified.
        for listener in list(self._listeners.get(event_type, [])):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Listener for {event_type.value} failed.")
        return event
