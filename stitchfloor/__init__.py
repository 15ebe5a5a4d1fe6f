"""
StitchFloor: production workflow engine for garment WIP lots.

Expands fabric lots into dependency-ordered sewing operations, tracks each
operation through claim, approval, start and completion, and splices
emergency work into running lots.
"""

__version__ = "1.0.0"

from .config import EngineConfig, ResumePolicy
from .errors import (
    ConcurrentModification,
    CycleDetected,
    DependencyUnsatisfied,
    InvalidTemplate,
    MachineTypeMismatch,
    NotFound,
    PersistenceFailure,
    WorkflowError,
    WorkUnavailable,
)
from .models import (
    ArticleConfig,
    EmergencyWorkSpec,
    InsertionPoint,
    LotStatus,
    OperatorProfile,
    Roll,
    WipLot,
    WorkItem,
    WorkItemStatus,
)
from .shopfloor.engine import ProductionEngine

__all__ = [
    "__version__",
    "EngineConfig",
    "ResumePolicy",
    "ProductionEngine",
    "WipLot",
    "Roll",
    "ArticleConfig",
    "WorkItem",
    "WorkItemStatus",
    "InsertionPoint",
    "LotStatus",
    "OperatorProfile",
    "EmergencyWorkSpec",
    "WorkflowError",
    "NotFound",
    "WorkUnavailable",
    "MachineTypeMismatch",
    "DependencyUnsatisfied",
    "CycleDetected",
    "InvalidTemplate",
    "PersistenceFailure",
    "ConcurrentModification",
]
