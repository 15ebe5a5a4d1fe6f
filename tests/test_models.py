"""
Tests for stitchfloor.models and stitchfloor.errors
===================================================
"""

import pytest
from pydantic import ValidationError

from stitchfloor.errors import (
    ConcurrentModification,
    CycleDetected,
    MachineTypeMismatch,
    NotFound,
    PersistenceFailure,
)
from stitchfloor.models import (
    InsertionPoint,
    WipLot,
    WorkItem,
    WorkItemStatus,
)

from helpers import make_item


# ===========================================================================
# WorkItem
# ===========================================================================


class TestWorkItem:

    def test_defaults(self):
        item = make_item("i1")
        assert item.status == WorkItemStatus.PENDING
        assert item.assigned_operator is None
        assert item.version == 0
        assert not item.is_emergency_insertion

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            make_item("i1", status="half_done")

    def test_self_dependency_rejected(self):
        with pytest.raises(CycleDetected) as exc:
            make_item("i1", dependencies=["i1"])
        assert exc.value.item_ids == ["i1"]

    def test_serialize_roundtrip(self):
        item = make_item(
            "i1", dependencies=["i0"], status="ready", sequence_position=2.5,
            insertion_point="before_next", version=3,
        )
        restored = WorkItem.deserialize(item.serialize())
        assert restored == item
        assert restored.status is WorkItemStatus.READY
        assert restored.insertion_point is InsertionPoint.BEFORE_NEXT

    def test_blocks_lot(self):
        blocking = make_item("e1", is_emergency_insertion=True, insertion_point="after_current")
        parallel = make_item("e2", is_emergency_insertion=True, insertion_point="parallel")
        done = make_item("e3", is_emergency_insertion=True, insertion_point="before_next",
                         status="completed")
        assert blocking.blocks_lot
        assert not parallel.blocks_lot
        assert not done.blocks_lot
        assert not make_item("plain").blocks_lot


class TestInsertionPoint:

    def test_blocking(self):
        assert InsertionPoint.AFTER_CURRENT.blocking
        assert InsertionPoint.BEFORE_NEXT.blocking
        assert not InsertionPoint.PARALLEL.blocking


class TestWipLot:

    def test_lot_number_required(self):
        with pytest.raises(ValidationError):
            WipLot(lot_number="   ")

    def test_lot_number_trimmed(self):
        assert WipLot(lot_number=" L-7 ").lot_number == "L-7"


# ===========================================================================
# Errors
# ===========================================================================


class TestErrors:

    def test_machine_mismatch_carries_both_sides(self):
        err = MachineTypeMismatch("i1", "overlock", ["single-needle"])
        data = err.to_dict()
        assert data["code"] == "MACHINE_TYPE_MISMATCH"
        assert data["details"]["required_machine"] == "overlock"
        assert data["details"]["operator_machines"] == ["single-needle"]

    def test_not_found_message(self):
        err = NotFound("WorkItem", "x")
        assert err.code == "NOT_FOUND"
        assert "WorkItem 'x' not found" in str(err)

    def test_concurrent_modification_is_persistence_failure(self):
        assert isinstance(ConcurrentModification("i1", 1, 2), PersistenceFailure)
