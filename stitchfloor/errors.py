"""
Workflow Errors
===============

Error taxonomy for the production workflow engine.

Every state-machine precondition is rejected with a specific subclass;
nothing is coerced into a generic failure. Each error carries a stable
``code`` so transports (HTTP, Celery) can map it without string matching.
"""

from typing import Any, Dict, Iterable, List, Optional


class WorkflowError(Exception):
    """Base class for all engine errors."""

    code = "WORKFLOW_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFound(WorkflowError):
    """Referenced WorkItem, lot or operator does not exist."""

    code = "NOT_FOUND"

    def __init__(self, kind: str, ident: str):
        super().__init__(f"{kind} {ident!r} not found", kind=kind, id=ident)
        self.kind = kind
        self.ident = ident


class WorkUnavailable(WorkflowError):
    """Status precondition failed for the requested transition."""

    code = "WORK_UNAVAILABLE"

    def __init__(self, work_item_id: str, message: str, status: Optional[str] = None):
        super().__init__(message, work_item_id=work_item_id, status=status)
        self.work_item_id = work_item_id
        self.status = status


class MachineTypeMismatch(WorkflowError):
    """Operator's machine set excludes the WorkItem's required machine."""

    code = "MACHINE_TYPE_MISMATCH"

    def __init__(self, work_item_id: str, required_machine: str, operator_machines: Iterable[str]):
        machines = list(operator_machines)
        super().__init__(
            f"Cannot assign {required_machine} work ({work_item_id}) to an operator "
            f"running {', '.join(machines) or 'no machines'}",
            work_item_id=work_item_id,
            required_machine=required_machine,
            operator_machines=machines,
        )
        self.required_machine = required_machine
        self.operator_machines: List[str] = machines


class DependencyUnsatisfied(WorkflowError):
    """Item cannot be readied or assigned while dependencies are open."""

    code = "DEPENDENCY_UNSATISFIED"

    def __init__(self, work_item_id: str, unmet: Iterable[str]):
        unmet_ids = sorted(unmet)
        super().__init__(
            f"Work item {work_item_id} has {len(unmet_ids)} incomplete dependencies",
            work_item_id=work_item_id,
            unmet=unmet_ids,
        )
        self.unmet = unmet_ids


class CycleDetected(WorkflowError):
    """Dependency graph would contain a cycle (or a self-loop)."""

    code = "CYCLE_DETECTED"

    def __init__(self, item_ids: Iterable[str]):
        ids = sorted(item_ids)
        super().__init__(f"Dependency cycle through {', '.join(ids)}", item_ids=ids)
        self.item_ids = ids


class InvalidTemplate(WorkflowError):
    """Operation template references an operation it does not define."""

    code = "INVALID_TEMPLATE"


class PersistenceFailure(WorkflowError):
    """Underlying store error. Always surfaced, never swallowed."""

    code = "PERSISTENCE_FAILURE"


class ConcurrentModification(PersistenceFailure):
    """A versioned write lost the race against another writer."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, item_id: str, expected: int, actual: Optional[int]):
        super().__init__(
            f"Version conflict on {item_id}: expected {expected}, found {actual}",
            item_id=item_id,
            expected=expected,
            actual=actual,
        )
        self.item_id = item_id


__all__ = [
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
