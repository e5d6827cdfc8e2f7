"""
Server-Sent Events (SSE) Manager for Crucible.

Bridges the session notification bus to streaming HTTP clients.
"""

import asyncio
import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Optional, Set, Tuple

from crucible.notifications import NotificationBus, SessionEvent

logger = logging.getLogger(__name__)

QUEUE_MAXSIZE = 1000


@dataclass
class SSEEvent:
    """A single SSE event."""
    event_type: str
    data: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_session_event(cls, event: SessionEvent) -> "SSEEvent":
        return cls(event_type=event.event_type.value, data=event.data, timestamp=event.timestamp)

    def format(self) -> str:
        """Format as SSE message."""
        payload = {
            "type": self.event_type,
            "data": self.data,
            "timestamp": self.timestamp
        }
        return f"data: {json.dumps(payload, default=str)}\n\n"


class SSEManager:
    """
    Manages SSE connections and event broadcasting.

    Supports multiple subscribers per session with async event streaming.
    Bus callbacks may arrive from any thread; events are handed to each
    subscriber's queue on the loop that owns it.
    """

    def __init__(self, keepalive_s: float = 30.0):
        self.keepalive_s = keepalive_s
        self._queues: Dict[str, Set[Tuple[asyncio.AbstractEventLoop, asyncio.Queue]]] = defaultdict(set)
        self._lock = asyncio.Lock()
        self._unsubscribe = None

    def attach(self, bus: NotificationBus) -> None:
        """Forward every bus event to matching SSE subscribers."""
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = bus.subscribe(self.on_session_event)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_session_event(self, event: SessionEvent) -> None:
        """Bus subscriber: fan an event out without blocking the publisher."""
        self.publish_nowait(event.session_id, SSEEvent.from_session_event(event))

    async def subscribe(self, session_id: str) -> AsyncGenerator[str, None]:
        """
        Subscribe to events for a session.

        Yields SSE-formatted event strings.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_MAXSIZE)
        entry = (asyncio.get_running_loop(), queue)

        async with self._lock:
            self._queues[session_id].add(entry)

        try:
            # Send initial connection event
            yield SSEEvent(
                event_type="connected",
                data={"session_id": session_id, "message": "SSE connection established"}
            ).format()

            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=self.keepalive_s)
                    yield event.format()
                    if event.event_type == "session_stopped":
                        break
                except asyncio.TimeoutError:
                    # Send keepalive
                    yield ": keepalive\n\n"
        finally:
            async with self._lock:
                self._queues[session_id].discard(entry)
                if not self._queues[session_id]:
                    del self._queues[session_id]

    def publish_nowait(self, session_id: str, event: SSEEvent) -> int:
        """
        Queue an event for all subscribers of a session.

        Returns the number of subscribers notified.
        """
        entries = list(self._queues.get(session_id, ()))
        for loop, queue in entries:
            try:
                loop.call_soon_threadsafe(_offer, queue, event, session_id)
            except RuntimeError as e:
                logger.debug(f"SSE subscriber loop closed for session {session_id}: {e}")
        return len(entries)

    def subscriber_count(self, session_id: Optional[str] = None) -> int:
        if session_id is not None:
            return len(self._queues.get(session_id, ()))
        return sum(len(q) for q in self._queues.values())


def _offer(queue: asyncio.Queue, event: SSEEvent, session_id: str) -> None:
    try:
        queue.put_nowait(event)
    except asyncio.QueueFull:
        logger.warning(f"SSE queue full for session {session_id}, dropping event")


# Global SSE manager instance
sse_manager = SSEManager()
