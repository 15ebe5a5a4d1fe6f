"""
Notification Dispatch Strategy
==============================

Strategy pattern for delivering NotificationEvents. The engine calls
``dispatcher.publish(event)`` after a transition commits and moves on:
publish never raises and never blocks on delivery.

Strategies:
- LoggingDispatcher: write each event to the log (default)
- RecordingDispatcher: keep events in memory (tests, dashboards)
- QueuedDispatcher: priority queue drained by a background delivery thread
- CeleryDispatcher: hand each event to a Celery worker
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from ..config import EngineConfig
from .events import NotificationEvent, NotificationType
from .queue import NotificationQueue

logger = logging.getLogger(__name__)

Sink = Callable[[NotificationEvent], None]


class NotificationDispatcher(ABC):
    """Abstract base for notification delivery strategies."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Strategy identifier."""
        ...

    @abstractmethod
    def _send(self, event: NotificationEvent) -> None:
        """Hand the event to the transport. May raise."""
        ...

    def publish(self, event: NotificationEvent) -> None:
        """Fire-and-forget. Transport failures are logged, never raised."""
        try:
            self._send(event)
        except Exception as e:
            logger.warning(
                "[%s] failed to publish %s for %s: %s",
                self.name, event.type.value, event.target_user_id or event.target_role, e,
            )


def log_sink(event: NotificationEvent) -> None:
    logger.info(
        "notify %s -> %s (item=%s lot=%s)",
        event.type.value,
        event.target_user_id or f"role:{event.target_role}",
        event.work_item_id,
        event.lot_number,
    )


class LoggingDispatcher(NotificationDispatcher):
    """Deliver by logging. Useful when no transport is configured."""

    @property
    def name(self) -> str:
        return "log"

    def _send(self, event: NotificationEvent) -> None:
        log_sink(event)


class RecordingDispatcher(NotificationDispatcher):
    """Keep every published event in memory."""

    def __init__(self) -> None:
        self._events: List[NotificationEvent] = []
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "recording"

    def _send(self, event: NotificationEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[NotificationEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: NotificationType) -> List[NotificationEvent]:
        return [e for e in self.events if e.type == event_type]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class QueuedDispatcher(NotificationDispatcher):
    """Enqueue events; a background thread delivers them through a sink.

    Delivery latency and failures stay off the engine's request path. Call
    start() to run the delivery thread, or drain() to deliver synchronously.
    """

    def __init__(self, sink: Sink = log_sink, queue: Optional[NotificationQueue] = None):
        self.sink = sink
        self.queue = queue or NotificationQueue()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def name(self) -> str:
        return "queue"

    def _send(self, event: NotificationEvent) -> None:
        self.queue.enqueue(event)

    def _deliver(self, event: NotificationEvent) -> bool:
        try:
            self.sink(event)
            return True
        except Exception as e:
            logger.warning("Delivery of %s failed: %s", event.type.value, e)
            return False

    def drain(self) -> int:
        """Deliver everything queued right now. Returns events delivered."""
        delivered = 0
        while True:
            event = self.queue.dequeue()
            if event is None:
                return delivered
            if self._deliver(event):
                delivered += 1

    def _run(self) -> None:
        while not self._stop.is_set():
            event = self.queue.get(timeout=0.1)
            if event is not None:
                self._deliver(event)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="stitchfloor-notify", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None


class CeleryDispatcher(NotificationDispatcher):
    """Submit each event to the deliver_notification Celery task."""

    def __init__(self, queue: str = "notifications"):
        self.queue = queue

    @property
    def name(self) -> str:
        return "celery"

    def _send(self, event: NotificationEvent) -> None:
        from .tasks import deliver_notification

        deliver_notification.apply_async(args=[event.serialize()], queue=self.queue)


def make_dispatcher(config: EngineConfig) -> NotificationDispatcher:
    """Build the dispatcher named by ``config.notification_backend``."""
    backend = config.notification_backend
    if backend == "log":
        return LoggingDispatcher()
    if backend == "queue":
        from .loki import get_loki_client

        loki = get_loki_client(config)
        dispatcher = QueuedDispatcher(sink=loki.deliver if loki else log_sink)
        dispatcher.start()
        return dispatcher
    if backend == "celery":
        return CeleryDispatcher(queue=config.celery_queue)
    raise ValueError(f"Unknown notification backend: {backend!r}")


__all__ = [
    "NotificationDispatcher",
    "LoggingDispatcher",
    "RecordingDispatcher",
    "QueuedDispatcher",
    "CeleryDispatcher",
    "log_sink",
    "make_dispatcher",
]
