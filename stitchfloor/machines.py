"""
Machine Compatibility
=====================

Normalization of free-text machine names and the compatibility rule used
before any supervisor assignment:

- exact match after normalization ("Single Needle" == "single_needle")
- recognized synonyms ("iron" == "pressing", "sn" == "single-needle")
- a universal multi-skill capability runs everything
- manual work needs no machine at all
"""

import re
from typing import Dict, Iterable, List, Optional, Set

MULTI_SKILL = "multi-skill"
MANUAL = "manual"

# Canonical machine type -> accepted spellings.
MACHINE_ALIASES: Dict[str, List[str]] = {
    "single-needle": ["single-needle", "singleneedle", "single_needle", "sn", "single needle"],
    "double-needle": ["double-needle", "doubleneedle", "double_needle", "dn", "double needle"],
    "overlock": ["overlock", "over-lock", "over_lock", "ol", "over lock"],
    "flatlock": ["flatlock", "flat-lock", "flat_lock", "fl", "flat lock"],
    "kansai": ["kansai", "kansai-special", "kansai_special", "ks"],
    "buttonhole": ["buttonhole", "button-hole", "button_hole", "bh", "button hole"],
    "button-attach": ["button-attach", "buttonattach", "button_attach", "ba", "button attach"],
    "embroidery": ["embroidery", "emb"],
    "cutting": ["cutting", "cutter", "cut", "knife"],
    "pressing": ["pressing", "press", "iron", "steam"],
    "inspection": ["inspection", "quality", "qc", "check"],
    MANUAL: ["manual", "hand", "finishing", "trim"],
    MULTI_SKILL: [
        "multi-skill", "multiskill", "multi_skill", "multi-machine", "multimachine",
        "multi_machine", "all", "universal",
    ],
}


def _squash(value: str) -> str:
    return re.sub(r"[-_\s]", "", value.strip().lower())


_ALIAS_INDEX: Dict[str, str] = {
    _squash(alias): canonical
    for canonical, aliases in MACHINE_ALIASES.items()
    for alias in aliases
}


def normalize_machine_type(machine_type: Optional[str]) -> Optional[str]:
    """Map a machine name onto its canonical type.

    Unknown names come back squashed (lowercase, no separators) so two
    spellings of the same unknown machine still compare equal.
    """
    if not machine_type or not machine_type.strip():
        return None
    squashed = _squash(machine_type)
    return _ALIAS_INDEX.get(squashed, squashed)


def normalize_machine_set(machines: Iterable[str]) -> Set[str]:
    return {m for m in (normalize_machine_type(x) for x in machines) if m}


def is_compatible(operator_machines: Iterable[str], required_machine: Optional[str]) -> bool:
    """Whether an operator's machine set can run work needing *required_machine*."""
    required = normalize_machine_type(required_machine)
    if required is None or required == MANUAL:
        return True
    available = normalize_machine_set(operator_machines)
    if MULTI_SKILL in available:
        return True
    return required in available


def compatibility_reason(operator_machines: Iterable[str], required_machine: Optional[str]) -> str:
    """Human-readable explanation of the is_compatible() verdict."""
    machines = list(operator_machines)
    required = normalize_machine_type(required_machine)
    available = normalize_machine_set(machines)
    if required is None or required == MANUAL:
        return "Manual work needs no machine"
    if MULTI_SKILL in available:
        return "Multi-skill operator can handle any work type"
    if not available:
        return "Operator machine type not specified"
    if required in available:
        return f"Exact machine match: {required}"
    return f"Machine mismatch: operator has {', '.join(sorted(available))}, work requires {required}"


__all__ = [
    "MULTI_SKILL",
    "MANUAL",
    "MACHINE_ALIASES",
    "normalize_machine_type",
    "normalize_machine_set",
    "is_compatible",
    "compatibility_reason",
]
