"""
In-memory WorkItemStore.

Thread-safe: every read and every commit runs under one lock, and callers
only ever see deep copies, so no caller can mutate shared state without
going through commit().
"""

import threading
from typing import Dict, List, Sequence

from ..errors import NotFound
from ..models import OperatorProfile, WipLot, WorkItem, WorkItemStatus, utc_now
from .base import WorkItemStore


class InMemoryWorkItemStore(WorkItemStore):
    """Dictionary-backed store for tests, demos and single-process servers."""

    def __init__(self) -> None:
        self._lots: Dict[str, WipLot] = {}
        self._operators: Dict[str, OperatorProfile] = {}
        self._items: Dict[str, WorkItem] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    # -- lots ---------------------------------------------------------------

    def save_lot(self, lot: WipLot) -> None:
        with self._lock:
            self._lots[lot.lot_number] = lot.model_copy(deep=True)

    def get_lot(self, lot_number: str) -> WipLot:
        with self._lock:
            try:
                return self._lots[lot_number].model_copy(deep=True)
            except KeyError:
                raise NotFound("Lot", lot_number) from None

    def list_lots(self) -> List[WipLot]:
        with self._lock:
            return [lot.model_copy(deep=True) for lot in self._lots.values()]

    def delete_lot(self, lot_number: str) -> int:
        with self._lock:
            if lot_number not in self._lots:
                raise NotFound("Lot", lot_number)
            doomed = [i for i, item in self._items.items() if item.lot_number == lot_number]
            for item_id in doomed:
                del self._items[item_id]
            del self._lots[lot_number]
            return len(doomed)

    # -- operators ----------------------------------------------------------

    def save_operator(self, operator: OperatorProfile) -> None:
        with self._lock:
            self._operators[operator.id] = operator.model_copy(deep=True)

    def get_operator(self, operator_id: str) -> OperatorProfile:
        with self._lock:
            try:
                return self._operators[operator_id].model_copy(deep=True)
            except KeyError:
                raise NotFound("Operator", operator_id) from None

    def list_operators(self) -> List[OperatorProfile]:
        with self._lock:
            return [op.model_copy(deep=True) for op in self._operators.values()]

    # -- work items ---------------------------------------------------------

    def get(self, item_id: str) -> WorkItem:
        with self._lock:
            try:
                return self._items[item_id].model_copy(deep=True)
            except KeyError:
                raise NotFound("WorkItem", item_id) from None

    def _select(self, predicate) -> List[WorkItem]:
        with self._lock:
            found = [i.model_copy(deep=True) for i in self._items.values() if predicate(i)]
        return self.sort_for_lot(found)

    def list_by_lot(self, lot_number: str) -> List[WorkItem]:
        return self._select(lambda i: i.lot_number == lot_number)

    def list_by_operator(self, operator_id: str) -> List[WorkItem]:
        return self._select(lambda i: i.assigned_operator == operator_id)

    def list_by_status(self, status: WorkItemStatus) -> List[WorkItem]:
        return self._select(lambda i: i.status == status)

    def commit(self, writes: Sequence[WorkItem]) -> List[WorkItem]:
        with self._lock:
            for write in writes:
                self.check_write(self._items.get(write.id), write)
            now = utc_now()
            committed = []
            for write in writes:
                stored = write.model_copy(deep=True)
                stored.version = write.version + 1
                stored.updated_at = now
                self._items[stored.id] = stored
                committed.append(stored.model_copy(deep=True))
            return committed
