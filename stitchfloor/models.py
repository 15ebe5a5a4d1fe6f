"""
StitchFloor Models
==================

WipLot: one fabric intake (rolls x article size/ratio configuration).
WorkItem: one sewing operation on one bundle, the unit of assignment.
WorkItemStatus: the closed set of lifecycle states.

All models use Pydantic BaseModel (not dataclass). Timestamps are ISO-8601
strings in UTC, the same shape they take on the wire.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import CycleDetected


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class WorkItemStatus(str, Enum):
    """Lifecycle states for a WorkItem.

    pending -> ready -> {self_assigned | assigned} -> in_progress -> completed
    Backward edges: self_assigned -> ready (reject), assigned-like -> assigned
    (reassign). ready/assigned -> paused_for_insertion -> saved prior state.
    """
    PENDING = "pending"
    READY = "ready"
    SELF_ASSIGNED = "self_assigned"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PAUSED_FOR_INSERTION = "paused_for_insertion"


# States an operator's queue is made of.
QUEUED_STATUSES = frozenset({
    WorkItemStatus.ASSIGNED,
    WorkItemStatus.SELF_ASSIGNED,
    WorkItemStatus.IN_PROGRESS,
})

# States that carry an operator assignment and may be reassigned.
ASSIGNED_LIKE_STATUSES = frozenset({
    WorkItemStatus.ASSIGNED,
    WorkItemStatus.SELF_ASSIGNED,
})


class WorkflowType(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class InsertionPoint(str, Enum):
    """Where an emergency WorkItem is spliced into a running lot."""
    AFTER_CURRENT = "after_current"
    BEFORE_NEXT = "before_next"
    PARALLEL = "parallel"

    @property
    def blocking(self) -> bool:
        """Blocking insertions pause downstream work until they resolve."""
        return self is not InsertionPoint.PARALLEL


class LotStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class Roll(BaseModel):
    """A fabric roll within a lot. Pure data."""
    roll_number: int
    color: str
    layer_count: int = Field(ge=0)
    marked_weight: float = 0.0
    actual_weight: float = 0.0
    pieces: Optional[int] = None  # derived at generation time


class ArticleConfig(BaseModel):
    """Per-article size run and ratio for a lot.

    ``sizes`` and ``ratios`` arrive from intake screens either as lists or
    as free text using any of ``: , ; |`` as delimiters.
    """
    article_number: str
    style_name: str = ""
    garment_type: Optional[str] = None  # overrides detection from style_name
    sizes: Union[str, List[str]] = ""
    ratios: Union[str, List[Union[int, str]]] = ""


class WipLot(BaseModel):
    """One intake event. Immutable after generation except ``status``."""
    lot_number: str
    fabric_name: str = ""
    fabric_type: str = ""
    fabric_width: Optional[float] = None
    rolls: List[Roll] = Field(default_factory=list)
    articles: List[ArticleConfig] = Field(default_factory=list)
    status: LotStatus = LotStatus.ACTIVE
    created_at: str = Field(default_factory=utc_now)

    @field_validator("lot_number")
    @classmethod
    def _lot_number_present(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("lot_number is required")
        return v


class OperatorProfile(BaseModel):
    """Operator (or supervisor) as seen by the engine."""
    id: str
    name: str = ""
    machines: List[str] = Field(default_factory=list)
    role: str = "operator"  # "operator", "supervisor"
    active: bool = True


class WorkItem(BaseModel):
    """One sewing operation on one bundle.

    ``version`` is the optimistic-concurrency token. Stores bump it on every
    committed write and reject writes made against a stale read.
    """
    id: str
    lot_number: str

    # Bundle identity
    article: str = ""
    article_name: str = ""
    size: str = ""
    color: str = ""
    roll_number: Optional[int] = None
    pieces: int = 0
    bundle_id: str = ""
    workflow_id: str = ""
    garment_type: Optional[str] = None

    # Operation
    operation: str
    machine_type: str
    estimated_time: float = 0.0
    operation_sequence: Optional[float] = None
    workflow_type: WorkflowType = WorkflowType.SEQUENTIAL
    parallel_group: Optional[str] = None

    # Graph and ordering
    dependencies: List[str] = Field(default_factory=list)
    sequence_position: float = 0.0
    predecessors: List[str] = Field(default_factory=list)
    successors: List[str] = Field(default_factory=list)

    # State
    status: WorkItemStatus = WorkItemStatus.PENDING
    assigned_operator: Optional[str] = None
    requested_by: Optional[str] = None
    assigned_by: Optional[str] = None
    approved_by: Optional[str] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    reassigned_from: Optional[str] = None

    # Timestamps
    created_at: str = Field(default_factory=utc_now)
    updated_at: Optional[str] = None
    self_assigned_at: Optional[str] = None
    assigned_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    rejected_at: Optional[str] = None
    reassigned_at: Optional[str] = None

    # Completion
    completed_pieces: int = 0
    completion_data: Dict[str, Any] = Field(default_factory=dict)

    # Emergency insertion metadata
    is_emergency_insertion: bool = False
    insertion_point: Optional[InsertionPoint] = None
    insertion_reason: Optional[str] = None
    paused_by: Optional[str] = None
    original_status: Optional[WorkItemStatus] = None
    paused_at: Optional[str] = None
    workflow_recalculated: bool = False

    version: int = 0

    @model_validator(mode="after")
    def _no_self_dependency(self) -> "WorkItem":
        if self.id in self.dependencies:
            raise CycleDetected([self.id])
        return self

    @property
    def is_completed(self) -> bool:
        return self.status == WorkItemStatus.COMPLETED

    @property
    def blocks_lot(self) -> bool:
        """Open emergency work that holds downstream items paused."""
        return (
            self.is_emergency_insertion
            and not self.is_completed
            and self.insertion_point is not None
            and self.insertion_point.blocking
        )

    def touch(self) -> None:
        self.updated_at = utc_now()

    def serialize(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @staticmethod
    def deserialize(data: Dict[str, Any]) -> "WorkItem":
        return WorkItem(**data)


class EmergencyWorkSpec(BaseModel):
    """Supervisor request to inject unplanned work into a running lot."""
    operation: str
    machine_type: str
    estimated_time: float = 0.0
    insertion_point: InsertionPoint = InsertionPoint.AFTER_CURRENT
    pieces: int = 0
    article: str = ""
    size: str = ""
    color: str = ""
    bundle_id: str = ""
    dependencies: List[str] = Field(default_factory=list)
    reason: str = ""
    requested_by: Optional[str] = None


__all__ = [
    "utc_now",
    "WorkItemStatus",
    "QUEUED_STATUSES",
    "ASSIGNED_LIKE_STATUSES",
    "WorkflowType",
    "InsertionPoint",
    "LotStatus",
    "Roll",
    "ArticleConfig",
    "WipLot",
    "OperatorProfile",
    "WorkItem",
    "EmergencyWorkSpec",
]
