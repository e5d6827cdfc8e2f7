"""
Notification Bus for Crucible.

Fire-and-forget publish/subscribe for session lifecycle events. The
cycle runner publishes; the API's SSE manager, the CLI and tests
subscribe. A failing subscriber is logged and never affects the
publisher or the other subscribers.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Events published by a running session."""
    CYCLE_STARTED = "cycle_started"
    CYCLE_COMPLETE = "cycle_complete"
    CLAIM_CHANGED = "claim_changed"
    COST_RECORDED = "cost_recorded"
    SESSION_STOPPED = "session_stopped"


@dataclass
class SessionEvent:
    """One published event."""

    event_type: EventType
    session_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type.value,
            "session_id": self.session_id,
            "data": self.data,
            "timestamp": self.timestamp,
        }


Subscriber = Callable[[SessionEvent], None]


class NotificationBus:
    """
    In-process event bus.

    Subscribers may filter by session id; a subscriber registered with
    ``session_id=None`` receives every event.
    """

    def __init__(self):
        self._subscribers: List[tuple] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber, session_id: Optional[str] = None) -> Callable[[], None]:
        """
        Register a callback.

        Returns:
            A function that removes the subscription
        """
        entry = (session_id, callback)
        with self._lock:
            self._subscribers.append(entry)

        def _unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return _unsubscribe

    def publish(self, event: SessionEvent) -> int:
        """
        Deliver an event to matching subscribers.

        Returns:
            Number of subscribers that accepted the event
        """
        with self._lock:
            targets = [
                callback
                for session_id, callback in self._subscribers
                if session_id is None or session_id == event.session_id
            ]

        delivered = 0
        for callback in targets:
            try:
                callback(event)
                delivered += 1
            except Exception as e:
                logger.warning(f"[BUS] Subscriber failed on {event.event_type.value}: {e}")
        return delivered

    def emit(self, event_type: EventType, session_id: str, **data: Any) -> int:
        """Build and publish an event in one call."""
        return self.publish(SessionEvent(event_type=event_type, session_id=session_id, data=data))

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


class EventRecorder:
    """Subscriber that keeps every event it sees (used by the CLI and tests)."""

    def __init__(self):
        self.events: List[SessionEvent] = []
        self._lock = threading.Lock()

    def __call__(self, event: SessionEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: EventType) -> List[SessionEvent]:
        with self._lock:
            return [e for e in self.events if e.event_type == event_type]
