"""
NotificationQueue (Priority Queue)
==================================

Priority queue between the engine and notification delivery. Emergency
and schedule-change events jump ahead of routine approvals.

Priority ordering (lower number = higher priority):
  0: emergency insertions
  1: schedule changes, supervisor assignments
  2: approvals, rejections, resumptions
  3: everything else
"""

import heapq
import threading
from typing import List, Optional

from .events import NotificationEvent


class NotificationQueue:
    """Thread-safe priority queue for notification events.

    Within the same priority, FIFO ordering is maintained via a sequence
    counter. get() blocks on a condition variable so a delivery thread can
    wait without polling.
    """

    def __init__(self) -> None:
        self._heap: List[tuple] = []  # (priority, seq, NotificationEvent)
        self._seq: int = 0
        self._cond = threading.Condition()

    def enqueue(self, event: NotificationEvent) -> None:
        with self._cond:
            heapq.heappush(self._heap, (event.effective_priority, self._seq, event))
            self._seq += 1
            self._cond.notify()

    def dequeue(self) -> Optional[NotificationEvent]:
        """Remove and return the highest-priority event, or None if empty."""
        with self._cond:
            if not self._heap:
                return None
            _, _, event = heapq.heappop(self._heap)
            return event

    def get(self, timeout: Optional[float] = None) -> Optional[NotificationEvent]:
        """Block until an event is available or *timeout* elapses."""
        with self._cond:
            if not self._heap:
                self._cond.wait(timeout)
            if not self._heap:
                return None
            _, _, event = heapq.heappop(self._heap)
            return event
