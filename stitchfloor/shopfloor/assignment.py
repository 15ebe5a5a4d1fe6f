"""
Assignment Coordinator
======================

Claim, approve, reject, assign, reassign, start and complete a WorkItem.

Each operation is one optimistic transaction: read the item, check the
status precondition, write the transition guarded by the version that was
read. Two operators racing to self-assign the same item both read version
N; only the first commit lands, the second re-reads, sees the claim and
fails with WorkUnavailable.

Notifications are published after the commit and never affect its outcome.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..config import EngineConfig
from ..errors import DependencyUnsatisfied, MachineTypeMismatch, WorkUnavailable
from ..machines import compatibility_reason, is_compatible
from ..models import (
    ASSIGNED_LIKE_STATUSES,
    WorkItem,
    WorkItemStatus,
    utc_now,
)
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.events import NotificationEvent, NotificationType
from ..store.base import WorkItemStore, run_transaction
from .insertion import restore_paused_items
from .scheduler import WorkflowScheduler

logger = logging.getLogger(__name__)

ASSIGNABLE_STATUSES = frozenset({WorkItemStatus.READY, WorkItemStatus.PENDING})


def _unavailable(item: WorkItem, action: str) -> WorkUnavailable:
    return WorkUnavailable(
        item.id,
        f"Cannot {action} work item {item.id} in status {item.status.value}",
        status=item.status.value,
    )


class AssignmentCoordinator:
    """Atomic state transitions on single WorkItems."""

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

    def _transition(self, item_id: str, mutate: Callable[[WorkItem], None], label: str) -> WorkItem:
        """Run *mutate* on a fresh read of one item and commit it."""
        def work() -> List[WorkItem]:
            item = self.store.get(item_id)
            mutate(item)
            return [item]

        return run_transaction(self.store, work, self.config.max_cas_retries, label)[item_id]

    def _check_dependencies(self, item: WorkItem) -> None:
        if item.status == WorkItemStatus.PENDING:
            unmet = self.scheduler.unmet_for(item)
            if unmet:
                raise DependencyUnsatisfied(item.id, unmet)

    def _check_machine(self, item: WorkItem, operator_id: str) -> None:
        operator = self.store.get_operator(operator_id)
        if not is_compatible(operator.machines, item.machine_type):
            logger.info("%s refused for %s: %s", item.id, operator_id,
                        compatibility_reason(operator.machines, item.machine_type))
            raise MachineTypeMismatch(item.id, item.machine_type, operator.machines)

    # ------------------------------------------------------------------
    # Operator-initiated
    # ------------------------------------------------------------------

    def self_assign(self, item_id: str, operator_id: str) -> WorkItem:
        """Operator claims ready work, pending supervisor approval."""
        def mutate(item: WorkItem) -> None:
            if item.status not in ASSIGNABLE_STATUSES:
                raise _unavailable(item, "self-assign")
            if item.assigned_operator and item.assigned_operator != operator_id:
                raise WorkUnavailable(
                    item.id, f"Work item {item.id} is already claimed by {item.assigned_operator}",
                    status=item.status.value,
                )
            self._check_dependencies(item)
            now = utc_now()
            item.status = WorkItemStatus.SELF_ASSIGNED
            item.assigned_operator = operator_id
            item.requested_by = operator_id
            item.self_assigned_at = now

        item = self._transition(item_id, mutate, f"self_assign({item_id})")
        logger.info("%s self-assigned %s", operator_id, item_id)
        self.dispatcher.publish(NotificationEvent.for_item(
            NotificationType.SELF_ASSIGNMENT_REQUEST, item,
            target_role="supervisor",
            requested_by=operator_id,
            action_required=True,
        ))
        return item

    def start(self, item_id: str, operator_id: str) -> WorkItem:
        def mutate(item: WorkItem) -> None:
            if item.status not in ASSIGNED_LIKE_STATUSES:
                raise _unavailable(item, "start")
            if item.assigned_operator != operator_id:
                raise WorkUnavailable(
                    item.id, f"Work item {item.id} is not assigned to {operator_id}",
                    status=item.status.value,
                )
            item.status = WorkItemStatus.IN_PROGRESS
            item.started_at = utc_now()

        item = self._transition(item_id, mutate, f"start({item_id})")
        logger.info("%s started %s", operator_id, item_id)
        self.dispatcher.publish(NotificationEvent.for_item(
            NotificationType.WORK_STARTED, item, target_role="supervisor", operator_id=operator_id,
        ))
        return item

    def complete(
        self,
        item_id: str,
        operator_id: Optional[str] = None,
        completion_data: Optional[Dict[str, Any]] = None,
    ) -> WorkItem:
        """Finish in-progress work.

        In the same commit: dependents whose dependencies are now all met
        move pending -> ready, and, when the item is a blocking emergency
        insertion, the items it paused are resumed. Two completions feeding
        the same join both write the join item, so the later one retries and
        sees the earlier.
        """
        data = dict(completion_data or {})
        outcome: Dict[str, List[str]] = {"promoted": [], "resumed": []}

        def work() -> List[WorkItem]:
            head = self.store.get(item_id)
            lot_items = self.store.list_by_lot(head.lot_number)
            item = next((i for i in lot_items if i.id == item_id), head)
            if item.status != WorkItemStatus.IN_PROGRESS:
                raise _unavailable(item, "complete")
            if operator_id is not None and item.assigned_operator != operator_id:
                raise WorkUnavailable(
                    item.id, f"Work item {item.id} is not assigned to {operator_id}",
                    status=item.status.value,
                )

            was_blocking = item.blocks_lot
            # Pending dependents and the open blocker are written even when
            # unchanged, so a racing completion or insertion fails its version check
            waiting = [
                i for i in lot_items
                if item.id in i.dependencies and i.status == WorkItemStatus.PENDING
            ]
            item.status = WorkItemStatus.COMPLETED
            item.completed_at = utc_now()
            item.completed_pieces = int(data.get("completed_pieces", item.pieces))
            item.completion_data = data

            blocker = self.scheduler.open_blocker(lot_items, exclude=item.id)
            promoted = self.scheduler.promote_dependents(item, lot_items, blocker)
            resumed = []
            if was_blocking:
                resumed = restore_paused_items(lot_items, item.id, hand_over_to=blocker)

            outcome["promoted"] = [i.id for i in promoted]
            outcome["resumed"] = [] if blocker else [i.id for i in resumed]
            writes = {item.id: item}
            for other in waiting + promoted + resumed:
                writes[other.id] = other
            if blocker is not None:
                writes.setdefault(blocker, next(i for i in lot_items if i.id == blocker))
            return list(writes.values())

        committed = run_transaction(
            self.store, work, self.config.max_cas_retries, f"complete({item_id})",
        )
        item = committed[item_id]
        logger.info(
            "Completed %s (%d pieces), promoted %d, resumed %d",
            item_id, item.completed_pieces, len(outcome["promoted"]), len(outcome["resumed"]),
        )

        self.dispatcher.publish(NotificationEvent.for_item(
            NotificationType.WORK_COMPLETED, item,
            target_role="supervisor",
            operator_id=item.assigned_operator,
            completed_pieces=item.completed_pieces,
        ))
        for promoted_id in outcome["promoted"]:
            promoted = committed[promoted_id]
            if promoted.status == WorkItemStatus.READY:
                self.dispatcher.publish(NotificationEvent.for_item(
                    NotificationType.WORK_READY, promoted, target_role="operator",
                ))
        for resumed_id in outcome["resumed"]:
            resumed = committed[resumed_id]
            self.dispatcher.publish(NotificationEvent.for_item(
                NotificationType.WORK_RESUMED, resumed,
                target_user_id=resumed.assigned_operator,
                target_role="operator",
            ))
        return item

    # ------------------------------------------------------------------
    # Supervisor-initiated
    # ------------------------------------------------------------------

    def approve(self, item_id: str, supervisor_id: str) -> WorkItem:
        def mutate(item: WorkItem) -> None:
            if item.status != WorkItemStatus.SELF_ASSIGNED:
                raise _unavailable(item, "approve")
            now = utc_now()
            item.status = WorkItemStatus.ASSIGNED
            item.assigned_by = supervisor_id
            item.approved_by = supervisor_id
            item.assigned_at = now

        item = self._transition(item_id, mutate, f"approve({item_id})")
        logger.info("%s approved %s for %s", supervisor_id, item_id, item.assigned_operator)
        self.dispatcher.publish(NotificationEvent.for_item(
            NotificationType.WORK_APPROVED, item,
            target_user_id=item.assigned_operator,
            approved_by=supervisor_id,
        ))
        return item

    def reject(self, item_id: str, supervisor_id: str, reason: Optional[str] = None) -> WorkItem:
        requester: Dict[str, Optional[str]] = {}

        def mutate(item: WorkItem) -> None:
            if item.status != WorkItemStatus.SELF_ASSIGNED:
                raise _unavailable(item, "reject")
            requester["id"] = item.requested_by or item.assigned_operator
            item.status = WorkItemStatus.READY
            item.assigned_operator = None
            item.assigned_by = None
            item.requested_by = None
            item.self_assigned_at = None
            item.rejected_by = supervisor_id
            item.rejection_reason = reason
            item.rejected_at = utc_now()

        item = self._transition(item_id, mutate, f"reject({item_id})")
        logger.info("%s rejected %s requested by %s: %s",
                    supervisor_id, item_id, requester.get("id"), reason)
        self.dispatcher.publish(NotificationEvent.for_item(
            NotificationType.WORK_REJECTED, item,
            target_user_id=requester.get("id"),
            rejected_by=supervisor_id,
            reason=reason,
        ))
        return item

    def assign(self, item_id: str, operator_id: str, supervisor_id: str) -> WorkItem:
        """Supervisor hands ready work to an operator whose machines can run it.

        Raises:
            MachineTypeMismatch: the operator's machines exclude the required
                type. The WorkItem is left untouched.
        """
        def mutate(item: WorkItem) -> None:
            if item.status not in ASSIGNABLE_STATUSES:
                raise _unavailable(item, "assign")
            self._check_dependencies(item)
            self._check_machine(item, operator_id)
            item.status = WorkItemStatus.ASSIGNED
            item.assigned_operator = operator_id
            item.assigned_by = supervisor_id
            item.assigned_at = utc_now()

        item = self._transition(item_id, mutate, f"assign({item_id})")
        logger.info("%s assigned %s to %s", supervisor_id, item_id, operator_id)
        self.dispatcher.publish(NotificationEvent.for_item(
            NotificationType.WORK_ASSIGNMENT, item,
            target_user_id=operator_id,
            assigned_by=supervisor_id,
        ))
        return item

    def reassign(self, item_id: str, new_operator_id: str, supervisor_id: str) -> WorkItem:
        previous: Dict[str, Optional[str]] = {}

        def mutate(item: WorkItem) -> None:
            if item.status not in ASSIGNED_LIKE_STATUSES:
                raise _unavailable(item, "reassign")
            if item.assigned_operator == new_operator_id:
                raise WorkUnavailable(
                    item.id, f"Work item {item.id} is already assigned to {new_operator_id}",
                    status=item.status.value,
                )
            self._check_machine(item, new_operator_id)
            now = utc_now()
            previous["id"] = item.assigned_operator
            item.reassigned_from = item.assigned_operator
            item.assigned_operator = new_operator_id
            item.status = WorkItemStatus.ASSIGNED
            item.assigned_by = supervisor_id
            item.assigned_at = now
            item.reassigned_at = now

        item = self._transition(item_id, mutate, f"reassign({item_id})")
        logger.info("%s reassigned %s from %s to %s",
                    supervisor_id, item_id, previous.get("id"), new_operator_id)
        for target in (previous.get("id"), new_operator_id):
            if target:
                self.dispatcher.publish(NotificationEvent.for_item(
                    NotificationType.WORK_REASSIGNED, item,
                    target_user_id=target,
                    reassigned_from=previous.get("id"),
                    reassigned_to=new_operator_id,
                    assigned_by=supervisor_id,
                ))
        return item

    def pending_approvals(self) -> List[WorkItem]:
        """Self-assigned work awaiting a supervisor, oldest request first."""
        items = self.store.list_by_status(WorkItemStatus.SELF_ASSIGNED)
        return sorted(items, key=lambda i: (i.self_assigned_at or "", i.id))


__all__ = ["AssignmentCoordinator", "ASSIGNABLE_STATUSES"]
