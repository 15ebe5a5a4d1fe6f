"""
WorkItemStore ABC
=================

Document-style persistence for lots, operators and WorkItems.

The one primitive the engine's correctness rests on is ``commit()``: an
atomic batch write guarded by each WorkItem's ``version``. A write made
against a stale read is rejected as a whole with ConcurrentModification,
which ``run_transaction()`` turns into an optimistic retry loop.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Sequence

from ..errors import ConcurrentModification, PersistenceFailure, WorkUnavailable
from ..models import OperatorProfile, WipLot, WorkItem, WorkItemStatus

logger = logging.getLogger(__name__)


class WorkItemStore(ABC):
    """Abstract persistent store used by every engine component."""

    # -- lots ---------------------------------------------------------------

    @abstractmethod
    def save_lot(self, lot: WipLot) -> None:
        ...

    @abstractmethod
    def get_lot(self, lot_number: str) -> WipLot:
        """Return the lot or raise NotFound."""
        ...

    @abstractmethod
    def list_lots(self) -> List[WipLot]:
        ...

    @abstractmethod
    def delete_lot(self, lot_number: str) -> int:
        """Delete a lot and, by cascade, its WorkItems. Returns items removed."""
        ...

    # -- operators ----------------------------------------------------------

    @abstractmethod
    def save_operator(self, operator: OperatorProfile) -> None:
        ...

    @abstractmethod
    def get_operator(self, operator_id: str) -> OperatorProfile:
        """Return the operator or raise NotFound."""
        ...

    @abstractmethod
    def list_operators(self) -> List[OperatorProfile]:
        ...

    # -- work items ---------------------------------------------------------

    @abstractmethod
    def get(self, item_id: str) -> WorkItem:
        """Return a detached copy of the WorkItem or raise NotFound."""
        ...

    @abstractmethod
    def list_by_lot(self, lot_number: str) -> List[WorkItem]:
        """All WorkItems of a lot, ordered by sequence_position."""
        ...

    @abstractmethod
    def list_by_operator(self, operator_id: str) -> List[WorkItem]:
        ...

    @abstractmethod
    def list_by_status(self, status: WorkItemStatus) -> List[WorkItem]:
        ...

    @abstractmethod
    def commit(self, writes: Sequence[WorkItem]) -> List[WorkItem]:
        """Atomically write a batch of WorkItems.

        Each write's ``version`` must equal the stored version (0 for a new
        item). On success every written item is stored with ``version + 1``
        and the stored copies are returned in input order.

        Raises:
            ConcurrentModification: a version precondition failed; nothing
                was written.
            WorkUnavailable: a write targets a completed WorkItem.
            PersistenceFailure: the backend failed.
        """
        ...

    def add_many(self, items: Sequence[WorkItem]) -> List[WorkItem]:
        """Insert new WorkItems (all at version 0) in one atomic batch."""
        return self.commit(items)

    @staticmethod
    def check_write(stored: Optional[WorkItem], write: WorkItem) -> None:
        """Version and terminal-state preconditions shared by all backends."""
        if stored is None:
            if write.version != 0:
                raise ConcurrentModification(write.id, write.version, None)
            return
        if stored.version != write.version:
            raise ConcurrentModification(write.id, write.version, stored.version)
        if stored.status == WorkItemStatus.COMPLETED:
            raise WorkUnavailable(
                write.id, f"Work item {write.id} is completed and read-only",
                status=stored.status.value,
            )

    @staticmethod
    def sort_for_lot(items: Sequence[WorkItem]) -> List[WorkItem]:
        return sorted(items, key=lambda i: (i.sequence_position, i.created_at, i.id))


def run_transaction(
    store: WorkItemStore,
    work: Callable[[], Sequence[WorkItem]],
    retries: int,
    label: str = "transaction",
) -> Dict[str, WorkItem]:
    """Optimistic read-modify-write loop.

    *work* reads what it needs from the store, checks its preconditions
    (raising a WorkflowError to abort) and returns the WorkItems to write.
    A ConcurrentModification re-runs *work* from a fresh read, so every
    retry re-evaluates the preconditions against current state.

    Returns:
        Committed WorkItems keyed by id.
    """
    last: Optional[ConcurrentModification] = None
    for attempt in range(1, retries + 1):
        writes = list(work())
        if not writes:
            return {}
        try:
            committed = store.commit(writes)
            return {item.id: item for item in committed}
        except ConcurrentModification as e:
            last = e
            logger.debug("%s: conflict on attempt %d/%d (%s)", label, attempt, retries, e)
    raise PersistenceFailure(
        f"{label}: gave up after {retries} conflicting attempts",
        label=label,
        attempts=retries,
    ) from last


__all__ = ["WorkItemStore", "run_transaction"]
