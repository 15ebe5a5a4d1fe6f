"""
Notification Events
===================

Structured events the engine publishes to the Notification Dispatcher.
The engine never waits on delivery; an event is a fact about a state
transition that already committed.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..models import utc_now


class NotificationType(str, Enum):
    SELF_ASSIGNMENT_REQUEST = "self_assignment_request"
    WORK_APPROVED = "work_approved"
    WORK_REJECTED = "work_rejected"
    WORK_ASSIGNMENT = "work_assignment"
    WORK_REASSIGNED = "work_reassigned"
    WORK_STARTED = "work_started"
    WORK_COMPLETED = "work_completed"
    WORK_READY = "work_ready"
    EMERGENCY_INSERTED = "emergency_inserted"
    WORKFLOW_CHANGE = "workflow_change"
    WORK_RESUMED = "work_resumed"


# Delivery priority, lower = sooner. Unlisted types default to 3.
TYPE_PRIORITY: Dict[NotificationType, int] = {
    NotificationType.EMERGENCY_INSERTED: 0,
    NotificationType.WORKFLOW_CHANGE: 1,
    NotificationType.WORK_ASSIGNMENT: 1,
    NotificationType.WORK_REASSIGNED: 1,
    NotificationType.SELF_ASSIGNMENT_REQUEST: 2,
    NotificationType.WORK_APPROVED: 2,
    NotificationType.WORK_REJECTED: 2,
    NotificationType.WORK_RESUMED: 2,
}


class NotificationEvent(BaseModel):
    """One message for an operator (target_user_id) or a role (target_role)."""
    type: NotificationType
    target_user_id: Optional[str] = None
    target_role: Optional[str] = None
    work_item_id: Optional[str] = None
    lot_number: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: Optional[int] = None
    created_at: str = Field(default_factory=utc_now)

    @property
    def effective_priority(self) -> int:
        if self.priority is not None and self.priority >= 0:
            return self.priority
        return TYPE_PRIORITY.get(self.type, 3)

    @classmethod
    def for_item(
        cls,
        event_type: NotificationType,
        item: Any,
        target_user_id: Optional[str] = None,
        target_role: Optional[str] = None,
        **payload: Any,
    ) -> "NotificationEvent":
        """Event about a WorkItem, with its operation and bundle in the payload."""
        body = {
            "operation": item.operation,
            "bundle_id": item.bundle_id,
            "machine_type": item.machine_type,
            "status": item.status.value,
        }
        body.update(payload)
        return cls(
            type=event_type,
            target_user_id=target_user_id,
            target_role=None if target_user_id else (target_role or "supervisor"),
            work_item_id=item.id,
            lot_number=item.lot_number,
            payload=body,
        )

    def serialize(self) -> Dict[str, Any]:
        """Serialize for Celery transport."""
        return self.model_dump(mode="json")

    @staticmethod
    def deserialize(data: Dict[str, Any]) -> "NotificationEvent":
        return NotificationEvent(**data)


__all__ = ["NotificationType", "NotificationEvent", "TYPE_PRIORITY"]
