"""
Tests for stitchfloor.shopfloor.routing
=======================================
"""

import pytest

from stitchfloor.catalog import OperationStep
from stitchfloor.errors import CycleDetected, NotFound
from stitchfloor.shopfloor.routing import (
    build_layers,
    check_acyclic,
    resolve_template_dependencies,
    validate_lot_dependencies,
)

from helpers import make_item


def step(name, depends_on=(), parallel_group=None):
    return OperationStep(
        operation=name,
        machine="overlock",
        depends_on=list(depends_on),
        workflow_type="parallel" if parallel_group else "sequential",
        parallel_group=parallel_group,
    )


# ===========================================================================
# Template dependencies
# ===========================================================================


class TestResolveTemplateDependencies:

    def test_no_annotations_creates_sequential_chain(self):
        deps = resolve_template_dependencies([step("a"), step("b"), step("c")])
        assert deps == [[], [0], [1]]

    def test_annotations_by_name(self):
        deps = resolve_template_dependencies([
            step("cut"),
            step("print", ["cut"], parallel_group="deco"),
            step("embroider", ["cut"], parallel_group="deco"),
            step("finish", ["print", "embroider"]),
        ])
        assert deps == [[], [0], [0], [1, 2]]

    def test_parallel_steps_without_annotations_are_independent(self):
        deps = resolve_template_dependencies([
            step("a", parallel_group="g"), step("b", parallel_group="g"),
        ])
        assert deps == [[], []]

    def test_self_reference_rejected(self):
        with pytest.raises(CycleDetected):
            resolve_template_dependencies([step("a", ["a"])])

    def test_empty(self):
        assert resolve_template_dependencies([]) == []


# ===========================================================================
# Layers and cycles
# ===========================================================================


class TestBuildLayers:

    def test_diamond(self):
        graph = {"a": [], "b": ["a"], "c": ["a"], "d": ["b", "c"]}
        assert build_layers(graph) == [["a"], ["b", "c"], ["d"]]

    def test_external_references_ignored(self):
        assert build_layers({"b": ["done-elsewhere"]}) == [["b"]]

    def test_cycle_raises(self):
        with pytest.raises(CycleDetected) as exc:
            build_layers({"a": ["c"], "b": ["a"], "c": ["b"]})
        assert exc.value.item_ids == ["a", "b", "c"]

    def test_cycle_reports_only_stuck_nodes(self):
        with pytest.raises(CycleDetected) as exc:
            build_layers({"root": [], "a": ["root", "b"], "b": ["a"]})
        assert exc.value.item_ids == ["a", "b"]

    def test_self_loop_raises(self):
        with pytest.raises(CycleDetected):
            check_acyclic({"a": ["a"]})

    def test_empty(self):
        assert build_layers({}) == []


class TestValidateLotDependencies:

    def test_valid_lot(self):
        validate_lot_dependencies([make_item("a"), make_item("b", ["a"])])

    def test_dependency_outside_lot(self):
        with pytest.raises(NotFound):
            validate_lot_dependencies([
                make_item("a", lot_number="L1"),
                make_item("b", ["a"], lot_number="L2"),
            ])

    def test_missing_dependency(self):
        with pytest.raises(NotFound):
            validate_lot_dependencies([make_item("b", ["ghost"])])

    def test_cycle(self):
        with pytest.raises(CycleDetected):
            validate_lot_dependencies([make_item("a", ["b"]), make_item("b", ["a"])])
