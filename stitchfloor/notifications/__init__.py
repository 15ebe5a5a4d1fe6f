"""Notification events and their delivery strategies."""

from .dispatcher import (
    CeleryDispatcher,
    LoggingDispatcher,
    NotificationDispatcher,
    QueuedDispatcher,
    RecordingDispatcher,
    make_dispatcher,
)
from .events import NotificationEvent, NotificationType
from .queue import NotificationQueue

__all__ = [
    "NotificationEvent",
    "NotificationType",
    "NotificationQueue",
    "NotificationDispatcher",
    "LoggingDispatcher",
    "RecordingDispatcher",
    "QueuedDispatcher",
    "CeleryDispatcher",
    "make_dispatcher",
]
