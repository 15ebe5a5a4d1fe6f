"""
Operation Catalog
=================

Maps a garment type to its ordered template of sewing operations.

Each step names the machine it needs, an estimated duration (minutes), its
workflow kind, the operations (by name) it depends on, and an optional
parallel group. The built-in templates cover the factory's standard
garments; deployments can register their own.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from .errors import InvalidTemplate
from .models import WorkflowType

logger = logging.getLogger(__name__)


class OperationStep(BaseModel):
    """One step of a garment's operation template."""
    operation: str
    machine: str
    sequence: float = 0.0
    estimated_time: float = 0.0
    workflow_type: WorkflowType = WorkflowType.SEQUENTIAL
    depends_on: List[str] = Field(default_factory=list)
    parallel_group: Optional[str] = None


class OperationCatalog(ABC):
    """Source of operation templates consumed by the generator."""

    @abstractmethod
    def operations_for(self, garment_type_id: Optional[str]) -> List[OperationStep]:
        """Ordered template for a garment type, or [] when unknown."""
        ...

    def detect_garment_type(self, style_name: str) -> Optional[str]:
        """Guess the garment type from a style name. None when no rule matches."""
        return detect_garment_type(style_name)


def detect_garment_type(style_name: str) -> Optional[str]:
    """Keyword match on the style name, most specific garment first."""
    lower = (style_name or "").lower()
    if "polo" in lower:
        return "polo"
    if "t-shirt" in lower or "tshirt" in lower:
        return "tshirt"
    if "shirt" in lower:
        return "shirt"
    if "pant" in lower or "trouser" in lower:
        return "pants"
    if "jacket" in lower or "blazer" in lower or "coat" in lower:
        return "jacket"
    return None


def _step(operation, machine, sequence, minutes, depends_on=(), parallel_group=None):
    return OperationStep(
        operation=operation,
        machine=machine,
        sequence=sequence,
        estimated_time=minutes,
        workflow_type=WorkflowType.PARALLEL if parallel_group else WorkflowType.SEQUENTIAL,
        depends_on=list(depends_on),
        parallel_group=parallel_group,
    )


DEFAULT_TEMPLATES: Dict[str, List[OperationStep]] = {
    "polo": [
        # Preparation runs in parallel straight after cutting
        _step("placket", "single-needle", 1.1, 15, parallel_group="preparation"),
        _step("shoulder_join", "overlock", 1.2, 12, parallel_group="preparation"),
        _step("collar", "single-needle", 1.3, 20, parallel_group="preparation"),
        _step("collar_attach", "single-needle", 2.1, 18, ["collar", "shoulder_join"]),
        _step("placket_attach", "single-needle", 2.2, 12, ["placket", "collar_attach"]),
        _step("side_seam", "overlock", 2.3, 15, ["shoulder_join"]),
        _step("printing", "manual", 2.5, 15, ["side_seam"], parallel_group="decoration"),
        _step("embroidery", "embroidery", 2.6, 25, ["side_seam"], parallel_group="decoration"),
        _step("sleeve_attach", "overlock", 3.1, 18, ["collar_attach", "side_seam"]),
        _step("hemming", "flatlock", 3.2, 10, ["sleeve_attach"]),
        _step("buttonhole", "buttonhole", 4.1, 5, ["placket_attach"], parallel_group="finishing"),
        _step("button_attach", "button-attach", 4.2, 3, ["buttonhole"]),
        _step("label_attach", "single-needle", 4.3, 5, ["hemming"], parallel_group="finishing"),
        _step("quality_check", "manual", 5, 10, ["button_attach", "label_attach"]),
    ],
    "tshirt": [
        _step("shoulder_join", "overlock", 1, 10),
        _step("printing", "manual", 1.5, 15, ["shoulder_join"], parallel_group="decoration"),
        _step("applique", "manual", 1.7, 20, ["shoulder_join"], parallel_group="decoration"),
        _step("side_seam", "overlock", 2, 15, ["shoulder_join"]),
        _step("sleeve_attach", "overlock", 3, 18, ["side_seam"]),
        _step("hemming", "flatlock", 4, 8, ["sleeve_attach"]),
        _step("label_attach", "single-needle", 5, 5, ["hemming"]),
        _step("quality_check", "manual", 6, 8, ["label_attach"]),
    ],
    # No annotations: run as a sequential chain in listed order
    "shirt": [
        _step("collar", "single-needle", 1, 25),
        _step("sleeve_attach", "single-needle", 2, 22),
        _step("side_seam", "single-needle", 3, 20),
        _step("buttonhole", "buttonhole", 4, 8),
        _step("button_attach", "button-attach", 5, 12),
        _step("pressing", "pressing", 6, 15),
    ],
    "pants": [
        _step("waistband", "single-needle", 1, 18),
        _step("side_seam", "overlock", 2, 25),
        _step("inseam", "overlock", 3, 20),
        _step("hemming", "flatlock", 4, 12),
        _step("buttonhole", "buttonhole", 5, 5),
        _step("button_attach", "button-attach", 6, 3),
        _step("pressing", "pressing", 7, 12),
    ],
    "jacket": [
        _step("collar", "single-needle", 1, 30),
        _step("shoulder_join", "single-needle", 2, 25),
        _step("sleeve_attach", "single-needle", 3, 35),
        _step("side_seam", "single-needle", 4, 28),
        _step("buttonhole", "buttonhole", 5, 15),
        _step("button_attach", "button-attach", 6, 20),
        _step("pressing", "pressing", 7, 25),
    ],
}


def validate_template(garment_type_id: str, steps: Iterable[OperationStep]) -> None:
    """Reject templates whose dependencies name operations they do not define."""
    steps = list(steps)
    known = {s.operation for s in steps}
    for s in steps:
        missing = [d for d in s.depends_on if d not in known]
        if missing:
            raise InvalidTemplate(
                f"Template {garment_type_id!r}: {s.operation} depends on undefined "
                f"operation(s) {', '.join(missing)}",
                garment_type=garment_type_id,
                operation=s.operation,
                missing=missing,
            )


class StaticOperationCatalog(OperationCatalog):
    """In-process catalog seeded with the built-in garment templates."""

    def __init__(self, templates: Optional[Dict[str, List[OperationStep]]] = None):
        self._templates: Dict[str, List[OperationStep]] = {}
        source = DEFAULT_TEMPLATES if templates is None else templates
        for garment_type_id, steps in source.items():
            self.register(garment_type_id, steps)

    def register(self, garment_type_id: str, steps: Iterable[OperationStep]) -> None:
        steps = [OperationStep.model_validate(s) for s in steps]
        validate_template(garment_type_id, steps)
        self._templates[garment_type_id] = steps
        logger.debug("Registered template %s (%d operations)", garment_type_id, len(steps))

    def garment_types(self) -> List[str]:
        return sorted(self._templates)

    def operations_for(self, garment_type_id: Optional[str]) -> List[OperationStep]:
        if garment_type_id is None:
            return []
        return [s.model_copy() for s in self._templates.get(garment_type_id, [])]


__all__ = [
    "OperationStep",
    "OperationCatalog",
    "StaticOperationCatalog",
    "DEFAULT_TEMPLATES",
    "detect_garment_type",
    "validate_template",
]
