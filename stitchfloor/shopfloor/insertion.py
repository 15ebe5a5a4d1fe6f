"""
Emergency Insertion Engine
==========================

Splices unplanned work into a lot that already has items in flight.

1. Position: after the item in progress (+0.5), before the next ready or
   assigned item (-0.5), or the parallel sentinel.
2. Pause: blocking insertions move every ready/assigned item of the lot to
   paused_for_insertion, saving the prior status. Inserting the new item
   and pausing happen in one commit, which also rewrites the lot's pending
   items and open blockers unchanged so racing completions re-read. A
   blocking item must have its dependencies completed already.
3. Recalculate: the non-completed, non-emergency items are rebuilt in
   position order, the new item is spliced in and every item of the
   rebuilt list gets a fresh integer position and neighbour links.
4. Queues: operators holding affected items are sent their new queue.
5. Resume: paused items return to their saved status when the emergency
   item completes (ResumePolicy.ON_COMPLETION) or right after step 3
   (ResumePolicy.IMMEDIATE).

If step 3 fails the paused items stay paused and the error propagates.
recalculate_sequence() and resume_paused() are the recovery handles.
"""

import logging
import math
import uuid
from typing import Dict, List, Optional, Sequence

from ..config import EngineConfig, ResumePolicy
from ..errors import DependencyUnsatisfied, NotFound, WorkflowError, WorkUnavailable
from ..models import (
    EmergencyWorkSpec,
    InsertionPoint,
    LotStatus,
    WorkItem,
    WorkItemStatus,
    utc_now,
)
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.events import NotificationEvent, NotificationType
from ..store.base import WorkItemStore, run_transaction
from .routing import validate_lot_dependencies
from .scheduler import WorkflowScheduler, unmet_dependencies

logger = logging.getLogger(__name__)

PAUSABLE_STATUSES = frozenset({WorkItemStatus.READY, WorkItemStatus.ASSIGNED})


def is_parallel_insertion(item: WorkItem) -> bool:
    return item.is_emergency_insertion and item.insertion_point == InsertionPoint.PARALLEL


def effective_status(item: WorkItem) -> WorkItemStatus:
    """Status an item had before it was paused."""
    if item.status == WorkItemStatus.PAUSED_FOR_INSERTION and item.original_status:
        return item.original_status
    return item.status


def restore_paused_items(
    items: Sequence[WorkItem],
    emergency_id: str,
    hand_over_to: Optional[str] = None,
) -> List[WorkItem]:
    """Release items paused by *emergency_id*.

    With *hand_over_to* the items stay paused but are held by that other
    open emergency item instead. Mutates and returns the touched items.
    """
    touched = []
    for item in items:
        if item.status != WorkItemStatus.PAUSED_FOR_INSERTION or item.paused_by != emergency_id:
            continue
        if hand_over_to:
            item.paused_by = hand_over_to
        else:
            item.status = item.original_status or WorkItemStatus.READY
            item.original_status = None
            item.paused_by = None
            item.paused_at = None
        touched.append(item)
    return touched


def splice_index(sequence: Sequence[WorkItem], insertion_point: InsertionPoint) -> int:
    """Index in a position-ordered list where an insertion lands."""
    if insertion_point == InsertionPoint.AFTER_CURRENT:
        for n, item in enumerate(sequence):
            if item.status == WorkItemStatus.IN_PROGRESS:
                return n + 1
        return 0
    for n, item in enumerate(sequence):
        if effective_status(item) in PAUSABLE_STATUSES:
            return n
    return len(sequence)


class EmergencyInsertionEngine:
    """Supervisor-initiated insertion of unplanned work."""

    def __init__(
        self,
        store: WorkItemStore,
        scheduler: WorkflowScheduler,
        dispatcher: NotificationDispatcher,
        config: EngineConfig,
    ):
        self.store = store
        self.scheduler = scheduler
        self.dispatcher = dispatcher
        self.config = config

    # ------------------------------------------------------------------
    # Position
    # ------------------------------------------------------------------

    def calculate_position(self, items: Sequence[WorkItem], insertion_point: InsertionPoint) -> float:
        """Sequence position for a new emergency item.

        Args:
            items: The lot's WorkItems ordered by sequence position.
            insertion_point: Where the new item goes.
        """
        ordered = [i for i in items if not is_parallel_insertion(i)]
        sequential = [i.sequence_position for i in ordered]
        if insertion_point == InsertionPoint.PARALLEL:
            # Above every sequential item, however long the lot
            if sequential and max(sequential) >= self.config.parallel_position:
                return float(math.floor(max(sequential)) + 1)
            return self.config.parallel_position

        if insertion_point == InsertionPoint.AFTER_CURRENT:
            current = next((i for i in ordered if i.status == WorkItemStatus.IN_PROGRESS), None)
            if current is not None:
                return current.sequence_position + 0.5
        elif insertion_point == InsertionPoint.BEFORE_NEXT:
            upcoming = next((i for i in ordered if i.status in PAUSABLE_STATUSES), None)
            if upcoming is not None:
                return upcoming.sequence_position - 0.5

        # Nothing to anchor on: end of the lot
        return float(math.floor(max(sequential)) + 1) if sequential else 1.0

    def _emergency_item(
        self,
        item_id: str,
        lot_number: str,
        spec: EmergencyWorkSpec,
        insertion_point: InsertionPoint,
        position: float,
        items: Sequence[WorkItem],
    ) -> WorkItem:
        by_id = {i.id: i for i in items}
        item = WorkItem(
            id=item_id,
            lot_number=lot_number,
            article=spec.article,
            size=spec.size,
            color=spec.color,
            pieces=spec.pieces,
            bundle_id=spec.bundle_id,
            workflow_id=f"WF-{spec.bundle_id}" if spec.bundle_id else f"WF-{lot_number}",
            operation=spec.operation,
            machine_type=spec.machine_type,
            estimated_time=spec.estimated_time,
            dependencies=list(spec.dependencies),
            sequence_position=position,
            requested_by=spec.requested_by,
            is_emergency_insertion=True,
            insertion_point=insertion_point,
            insertion_reason=spec.reason or None,
        )
        if unmet_dependencies(item, by_id):
            item.status = WorkItemStatus.PENDING
        else:
            item.status = WorkItemStatus.READY
        return item

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------

    def insert_emergency_work(
        self,
        lot_number: str,
        spec: EmergencyWorkSpec,
        insertion_point: Optional[InsertionPoint] = None,
    ) -> WorkItem:
        """Insert the requested emergency work into a running lot.

        Raises:
            NotFound: unknown lot, or a dependency outside the lot.
            WorkUnavailable: the lot is closed.
            CycleDetected: the new dependencies would close a cycle.
            DependencyUnsatisfied: a blocking insertion names dependencies
                that are not completed yet.
            PersistenceFailure: insert or recalculation could not commit.
                When recalculation fails the paused items stay paused.
        """
        point = InsertionPoint(insertion_point or spec.insertion_point)
        lot = self.store.get_lot(lot_number)
        if lot.status == LotStatus.CLOSED:
            raise WorkUnavailable(lot_number, f"Lot {lot_number} is closed", status=lot.status.value)

        new_id = f"{lot_number}:EM:{uuid.uuid4().hex[:8]}"

        def work() -> List[WorkItem]:
            items = self.store.list_by_lot(lot_number)
            position = self.calculate_position(items, point)
            emergency = self._emergency_item(new_id, lot_number, spec, point, position, items)
            validate_lot_dependencies(items + [emergency])
            writes = [emergency]
            if point.blocking:
                # Its own dependencies would be paused behind it
                if emergency.status == WorkItemStatus.PENDING:
                    unmet = unmet_dependencies(emergency, {i.id: i for i in items})
                    raise DependencyUnsatisfied(new_id, unmet)
                now = utc_now()
                for other in items:
                    if other.status in PAUSABLE_STATUSES:
                        other.original_status = other.status
                        other.status = WorkItemStatus.PAUSED_FOR_INSERTION
                        other.paused_by = new_id
                        other.paused_at = now
                        writes.append(other)
                    elif other.status == WorkItemStatus.PENDING or other.blocks_lot:
                        # Unchanged, written so a racing promotion or resume conflicts
                        writes.append(other)
            return writes

        committed = run_transaction(
            self.store, work, self.config.max_cas_retries, f"insert_emergency({lot_number})",
        )
        emergency = committed[new_id]
        paused = sum(1 for i in committed.values() if i.paused_by == new_id)
        logger.info(
            "Lot %s: inserted emergency item %s (%s at %.1f), paused %d items",
            lot_number, new_id, point.value, emergency.sequence_position, paused,
        )
        self.dispatcher.publish(NotificationEvent.for_item(
            NotificationType.EMERGENCY_INSERTED, emergency,
            target_role="supervisor",
            insertion_point=point.value,
            reason=spec.reason,
            paused=paused,
        ))

        if point.blocking:
            try:
                self.recalculate_sequence(lot_number, new_id)
            except WorkflowError:
                logger.error(
                    "Lot %s: recalculation after %s failed, %d items remain paused",
                    lot_number, new_id, paused,
                )
                raise
        return self.store.get(new_id)

    # ------------------------------------------------------------------
    # Recalculate
    # ------------------------------------------------------------------

    def recalculate_sequence(self, lot_number: str, emergency_id: str) -> List[WorkItem]:
        """Re-derive positions and neighbour links around an emergency item.

        Completed items and other emergency items keep their positions; the
        rebuilt list is numbered with the smallest free integers in order.
        Dependencies are left untouched.

        Returns:
            The WorkItems whose ordering changed, as committed.
        """
        resumed_ids: List[str] = []

        def work() -> List[WorkItem]:
            items = self.store.list_by_lot(lot_number)
            emergency = next((i for i in items if i.id == emergency_id), None)
            if emergency is None:
                raise NotFound("WorkItem", emergency_id)
            if not emergency.is_emergency_insertion:
                raise WorkUnavailable(emergency_id, f"{emergency_id} is not an emergency insertion")
            if emergency.is_completed:
                raise WorkUnavailable(
                    emergency_id, f"Emergency item {emergency_id} is already completed",
                    status=emergency.status.value,
                )
            point = emergency.insertion_point or InsertionPoint.AFTER_CURRENT
            if not point.blocking:
                return []

            rebuild = [i for i in items if not i.is_completed and not i.is_emergency_insertion]
            fixed = {
                i.sequence_position for i in items
                if (i.is_completed or i.is_emergency_insertion) and i.id != emergency_id
            }
            idx = splice_index(rebuild, point)
            sequence = rebuild[:idx] + [emergency] + rebuild[idx:]

            writes: Dict[str, WorkItem] = {}
            candidate = max(1, math.floor(min(i.sequence_position for i in sequence)))
            for n, item in enumerate(sequence):
                while candidate in fixed:
                    candidate += 1
                predecessors = [sequence[n - 1].id] if n > 0 else []
                successors = [sequence[n + 1].id] if n + 1 < len(sequence) else []
                if (item.sequence_position != candidate
                        or item.predecessors != predecessors
                        or item.successors != successors):
                    item.sequence_position = float(candidate)
                    item.predecessors = predecessors
                    item.successors = successors
                    writes[item.id] = item
                candidate += 1

            emergency.workflow_recalculated = True
            writes[emergency.id] = emergency

            resumed_ids.clear()
            if self.config.resume_policy == ResumePolicy.IMMEDIATE:
                for item in restore_paused_items(items, emergency_id):
                    writes[item.id] = item
                    resumed_ids.append(item.id)
            return list(writes.values())

        committed = run_transaction(
            self.store, work, self.config.max_cas_retries, f"recalculate({lot_number})",
        )
        if not committed:
            logger.debug("Lot %s: %s is parallel, nothing to resequence", lot_number, emergency_id)
            return []

        changed = [i for i in committed.values() if i.id != emergency_id]
        logger.info(
            "Lot %s: resequenced %d items around %s", lot_number, len(changed), emergency_id,
        )
        self._notify_queues(changed, committed[emergency_id])
        for item_id in resumed_ids:
            self._notify_resumed(committed[item_id])
        return changed

    # ------------------------------------------------------------------
    # Resume
    # ------------------------------------------------------------------

    def resume_paused(self, emergency_id: str) -> List[WorkItem]:
        """Restore every item paused by *emergency_id* to its saved status."""
        emergency = self.store.get(emergency_id)

        def work() -> List[WorkItem]:
            return restore_paused_items(self.store.list_by_lot(emergency.lot_number), emergency_id)

        committed = run_transaction(
            self.store, work, self.config.max_cas_retries, f"resume({emergency_id})",
        )
        resumed = list(committed.values())
        logger.info("Lot %s: resumed %d items paused by %s",
                    emergency.lot_number, len(resumed), emergency_id)
        for item in resumed:
            self._notify_resumed(item)
        return resumed

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _notify_queues(self, changed: Sequence[WorkItem], emergency: WorkItem) -> None:
        operators = sorted({i.assigned_operator for i in changed if i.assigned_operator})
        for operator_id in operators:
            queue = self.scheduler.operator_queue(operator_id)
            self.dispatcher.publish(NotificationEvent(
                type=NotificationType.WORKFLOW_CHANGE,
                target_user_id=operator_id,
                work_item_id=emergency.id,
                lot_number=emergency.lot_number,
                payload={
                    "emergency_id": emergency.id,
                    "operation": emergency.operation,
                    "reason": emergency.insertion_reason,
                    "queue": [i.id for i in queue],
                },
            ))

    def _notify_resumed(self, item: WorkItem) -> None:
        self.dispatcher.publish(NotificationEvent.for_item(
            NotificationType.WORK_RESUMED, item,
            target_user_id=item.assigned_operator,
            target_role="operator",
        ))


__all__ = [
    "EmergencyInsertionEngine",
    "restore_paused_items",
    "splice_index",
    "effective_status",
    "is_parallel_insertion",
]
