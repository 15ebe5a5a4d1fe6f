"""
ShopFloor: production workflow orchestration.

Generator -> Scheduler -> Assignment Coordinator, with the Emergency
Insertion Engine splicing unplanned work into running lots.
"""

from .assignment import AssignmentCoordinator
from .engine import ProductionEngine
from .generator import GenerationReport, WorkItemGenerator, parse_smart_input
from .insertion import EmergencyInsertionEngine
from .routing import build_layers, check_acyclic, resolve_template_dependencies
from .scheduler import WorkflowScheduler

__all__ = [
    "ProductionEngine",
    "WorkItemGenerator",
    "GenerationReport",
    "parse_smart_input",
    "WorkflowScheduler",
    "AssignmentCoordinator",
    "EmergencyInsertionEngine",
    "build_layers",
    "check_acyclic",
    "resolve_template_dependencies",
]
