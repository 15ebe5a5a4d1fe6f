"""
ShopFloor Routing
=================

Pure functions over the WorkItem dependency graph.

- resolve_template_dependencies(): operation-name references -> step indices
- build_layers(): topological sort into layers (Kahn's algorithm)
- check_acyclic(): reject graphs with self-loops or cycles
- validate_lot_dependencies(): same-lot and acyclicity checks for a whole lot
"""

from collections import defaultdict
from typing import Dict, Hashable, Iterable, List, Mapping, Sequence, TypeVar

from ..catalog import OperationStep
from ..errors import CycleDetected, NotFound
from ..models import WorkflowType, WorkItem

K = TypeVar("K", bound=Hashable)


def resolve_template_dependencies(steps: Sequence[OperationStep]) -> List[List[int]]:
    """Translate each step's ``depends_on`` names into indices of earlier steps.

    If no step in the template carries a dependency annotation and every step
    is sequential, the template is read as a plain chain: each step depends on
    the one listed before it.

    Args:
        steps: Ordered operation template.

    Returns:
        One list of step indices per step.
    """
    if not steps:
        return []

    annotated = any(s.depends_on for s in steps)
    any_parallel = any(s.workflow_type == WorkflowType.PARALLEL for s in steps)
    if not annotated and not any_parallel:
        return [[] if i == 0 else [i - 1] for i in range(len(steps))]

    index_by_name: Dict[str, int] = {}
    for i, s in enumerate(steps):
        index_by_name.setdefault(s.operation, i)

    resolved: List[List[int]] = []
    for i, s in enumerate(steps):
        deps = []
        for name in s.depends_on:
            j = index_by_name[name]
            if j == i:
                raise CycleDetected([s.operation])
            if j not in deps:
                deps.append(j)
        resolved.append(deps)
    return resolved


def build_layers(graph: Mapping[K, Iterable[K]]) -> List[List[K]]:
    """Topological sort into execution layers (Kahn's algorithm).

    Each layer holds nodes whose dependencies all sit in earlier layers, i.e.
    work that can proceed concurrently. References to nodes outside *graph*
    are ignored (already-satisfied external predecessors).

    Args:
        graph: node -> the nodes it depends on.

    Returns:
        List of layers, each a sorted list of nodes.

    Raises:
        CycleDetected: a self-loop, or nodes left that all wait on each other.
    """
    if not graph:
        return []

    in_degree: Dict[K, int] = {node: 0 for node in graph}
    dependents: Dict[K, List[K]] = defaultdict(list)

    for node, deps in graph.items():
        for dep in set(deps):
            if dep == node:
                raise CycleDetected([str(node)])
            if dep in in_degree:
                in_degree[node] += 1
                dependents[dep].append(node)

    layers: List[List[K]] = []
    remaining = set(graph)

    while remaining:
        ready = sorted(n for n in remaining if in_degree[n] == 0)

        if not ready:
            raise CycleDetected([str(n) for n in remaining])

        layers.append(ready)
        for node in ready:
            remaining.discard(node)
            for dependent in dependents.get(node, []):
                if dependent in remaining:
                    in_degree[dependent] = max(0, in_degree[dependent] - 1)

    return layers


def check_acyclic(graph: Mapping[K, Iterable[K]]) -> None:
    """Raise CycleDetected if *graph* contains a self-loop or a cycle."""
    build_layers(graph)


def validate_lot_dependencies(items: Iterable[WorkItem]) -> None:
    """Check the lot-wide invariants of the dependency relation.

    Every dependency must name a WorkItem of the same lot, no item may depend
    on itself, and the relation taken lot-wide must be acyclic.
    """
    items = list(items)
    by_id = {item.id: item for item in items}
    for item in items:
        for dep in item.dependencies:
            other = by_id.get(dep)
            if other is None or other.lot_number != item.lot_number:
                raise NotFound("WorkItem", dep)
    check_acyclic({item.id: item.dependencies for item in items})


__all__ = [
    "resolve_template_dependencies",
    "build_layers",
    "check_acyclic",
    "validate_lot_dependencies",
]
