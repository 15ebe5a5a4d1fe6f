"""
Workflow Scheduler
==================

Answers "what work is available" and "what is queued for operator X", and
promotes pending WorkItems once their dependencies complete.

Promotion on completion is a pure function over the lot's items so the
Assignment Coordinator can fold it into the same commit that marks the
dependency completed.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from ..config import EngineConfig, ResumePolicy
from ..errors import NotFound
from ..models import QUEUED_STATUSES, WorkItem, WorkItemStatus, utc_now
from ..store.base import WorkItemStore, run_transaction

logger = logging.getLogger(__name__)


def unmet_dependencies(item: WorkItem, by_id: Mapping[str, WorkItem]) -> List[str]:
    """Dependencies of *item* that are missing or not yet completed."""
    unmet = []
    for dep in item.dependencies:
        other = by_id.get(dep)
        if other is None or not other.is_completed:
            unmet.append(dep)
    return unmet


class WorkflowScheduler:
    """Ready-set derivation and dependent promotion."""

    def __init__(self, store: WorkItemStore, config: EngineConfig):
        self.store = store
        self.config = config

    def open_blocker(self, items: Iterable[WorkItem], exclude: Optional[str] = None) -> Optional[str]:
        """Id of the newest open blocking emergency item, if one holds the lot."""
        if self.config.resume_policy == ResumePolicy.IMMEDIATE:
            return None
        blockers = [i for i in items if i.blocks_lot and i.id != exclude]
        if not blockers:
            return None
        return max(blockers, key=lambda i: (i.created_at, i.id)).id

    @staticmethod
    def promote(item: WorkItem, blocker: Optional[str] = None) -> None:
        """pending -> ready, or straight to paused while a blocking insertion is open."""
        if blocker is None:
            item.status = WorkItemStatus.READY
            return
        item.status = WorkItemStatus.PAUSED_FOR_INSERTION
        item.original_status = WorkItemStatus.READY
        item.paused_by = blocker
        item.paused_at = utc_now()

    def unmet_for(self, item: WorkItem) -> List[str]:
        """Read *item*'s dependencies from the store and return the unmet ones."""
        by_id: Dict[str, WorkItem] = {}
        for dep in item.dependencies:
            try:
                by_id[dep] = self.store.get(dep)
            except NotFound:
                pass
        return unmet_dependencies(item, by_id)

    def dependencies_satisfied(self, item: WorkItem) -> bool:
        return not self.unmet_for(item)

    def promote_dependents(
        self,
        completed: WorkItem,
        lot_items: Iterable[WorkItem],
        blocker: Optional[str] = None,
    ) -> List[WorkItem]:
        """Promote every pending dependent of *completed* whose dependencies are now met.

        *completed* must already carry status completed. Mutates and returns
        the promoted items; persisting them is the caller's job.
        """
        lot_items = list(lot_items)
        by_id = {i.id: i for i in lot_items}
        by_id[completed.id] = completed
        promoted = []
        for item in lot_items:
            if item.id == completed.id or completed.id not in item.dependencies:
                continue
            if item.status != WorkItemStatus.PENDING:
                continue
            if unmet_dependencies(item, by_id):
                continue
            self.promote(item, blocker)
            promoted.append(item)
        return promoted

    def ready_set(self, lot_number: str) -> List[WorkItem]:
        """Promote every pending item of the lot whose dependencies are met.

        Returns:
            All ready WorkItems of the lot, ordered by sequence position.
        """
        self.store.get_lot(lot_number)

        def work() -> List[WorkItem]:
            items = self.store.list_by_lot(lot_number)
            by_id = {i.id: i for i in items}
            blocker = self.open_blocker(items)
            writes = []
            for item in items:
                if item.status == WorkItemStatus.PENDING and not unmet_dependencies(item, by_id):
                    self.promote(item, blocker)
                    writes.append(item)
            return writes

        promoted = run_transaction(self.store, work, self.config.max_cas_retries, "ready_set")
        if promoted:
            logger.info("Lot %s: promoted %d pending items", lot_number, len(promoted))
        return [i for i in self.store.list_by_lot(lot_number) if i.status == WorkItemStatus.READY]

    def operator_queue(self, operator_id: str) -> List[WorkItem]:
        """Non-completed work held by an operator, ordered by sequence position."""
        items = [i for i in self.store.list_by_operator(operator_id) if i.status in QUEUED_STATUSES]
        return WorkItemStore.sort_for_lot(items)


__all__ = ["WorkflowScheduler", "unmet_dependencies"]
