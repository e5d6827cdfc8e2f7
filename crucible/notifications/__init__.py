"""
Session event notifications.
"""

from .bus import EventRecorder, EventType, NotificationBus, SessionEvent

__all__ = ["EventRecorder", "EventType", "NotificationBus", "SessionEvent"]
