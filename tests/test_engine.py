"""
Tests for stitchfloor.shopfloor.engine
======================================

Lot lifecycle, progress reporting and operator matching on the public
engine surface.
"""

import pytest

from stitchfloor.config import EngineConfig
from stitchfloor.errors import NotFound
from stitchfloor.models import LotStatus, OperatorProfile, WorkItemStatus
from stitchfloor.notifications.dispatcher import LoggingDispatcher
from stitchfloor.shopfloor.engine import ProductionEngine
from stitchfloor.store.memory import InMemoryWorkItemStore

from helpers import by_operation, make_lot


def finish(engine, item_id, operator_id):
    engine.assign(item_id, operator_id, "sup-1")
    engine.start(item_id, operator_id)
    engine.complete(item_id, operator_id)


class TestLotLifecycle:

    def test_progress(self, engine, operators):
        report = engine.generate(make_lot(sizes="S:M", ratios="1:1"))
        small = by_operation(report.work_items, size="S")
        finish(engine, small["side_seam"].id, "op-ol")
        finish(engine, small["label_attach"].id, "op-sn")

        progress = engine.lot_progress("L1")
        assert progress["status"] == "active"
        assert progress["total_items"] == 4
        assert progress["completed_items"] == 2
        assert progress["by_status"]["completed"] == 2
        assert progress["by_status"]["ready"] == 1
        assert progress["by_status"]["pending"] == 1
        assert progress["bundles_total"] == 2
        assert progress["bundles_completed"] == 1
        assert progress["completed_pieces"] == 10
        assert progress["percent_complete"] == 50.0

    def test_progress_of_empty_lot(self, engine, store):
        store.save_lot(make_lot("L7"))
        assert engine.lot_progress("L7")["percent_complete"] == 0.0

    def test_close(self, engine):
        engine.generate(make_lot())
        assert engine.close_lot("L1").status == LotStatus.CLOSED
        assert engine.get_lot("L1").status == LotStatus.CLOSED

    def test_delete_cascades(self, engine, store):
        engine.generate(make_lot("L1", sizes="S:M", ratios="1:1"))
        engine.generate(make_lot("L2"))

        assert engine.delete_lot("L1") == 4
        assert store.list_by_lot("L1") == []
        assert len(store.list_by_lot("L2")) == 2
        with pytest.raises(NotFound):
            engine.lot_items("L1")
        assert [lot.lot_number for lot in engine.list_lots()] == ["L2"]

    def test_lot_items_unknown(self, engine):
        with pytest.raises(NotFound):
            engine.lot_items("L404")


class TestOperatorMatching:

    def test_compatible_operators(self, engine, operators):
        report = engine.generate(make_lot())
        seam = by_operation(report.work_items)["side_seam"]
        ids = [op.id for op in engine.compatible_operators(seam.id)]
        assert ids == ["op-ol", "op-both", "op-multi"]

    def test_inactive_operators_excluded(self, engine, operators):
        engine.register_operator(OperatorProfile(id="op-off", machines=["overlock"], active=False))
        report = engine.generate(make_lot())
        seam = by_operation(report.work_items)["side_seam"]
        assert "op-off" not in [op.id for op in engine.compatible_operators(seam.id)]

    def test_available_work(self, engine, operators):
        report = engine.generate(make_lot(garment_type="fanout"))
        items = by_operation(report.work_items)
        assert engine.available_work_for("op-sn") == []

        finish(engine, items["shoulder_join"].id, "op-ol")
        # Manual printing fits anyone, embroidery only the multi-skill operator
        assert [i.operation for i in engine.available_work_for("op-sn")] == ["printing"]
        assert sorted(i.operation for i in engine.available_work_for("op-multi")) == [
            "embroidery", "printing",
        ]

    def test_unknown_operator(self, engine):
        with pytest.raises(NotFound):
            engine.available_work_for("nobody")


class TestFromConfig:

    def test_defaults(self):
        engine = ProductionEngine.from_config(EngineConfig())
        assert isinstance(engine.store, InMemoryWorkItemStore)
        assert isinstance(engine.dispatcher, LoggingDispatcher)

    def test_injected_empty_collaborators_are_kept(self, catalog):
        store = InMemoryWorkItemStore()
        dispatcher = LoggingDispatcher()
        engine = ProductionEngine(store=store, catalog=catalog, dispatcher=dispatcher)
        assert engine.store is store
        assert engine.dispatcher is dispatcher
        assert engine.catalog is catalog

        report = engine.generate(make_lot())
        assert len(store) == len(report.work_items)
        assert {i.id for i in store.list_by_lot("L1")} == {i.id for i in report.work_items}

    def test_engines_are_isolated(self):
        first = ProductionEngine.from_config(EngineConfig())
        second = ProductionEngine.from_config(EngineConfig())
        first.generate(make_lot(garment_type=None, style_name="Polo T-Shirt"))
        assert second.list_lots() == []

    def test_end_to_end_polo(self):
        engine = ProductionEngine()
        report = engine.generate(make_lot(garment_type=None, style_name="Polo T-Shirt"))
        ready = engine.ready_work("L1")
        assert {i.operation for i in ready} == {"placket", "shoulder_join", "collar"}
        assert all(i.status == WorkItemStatus.READY for i in ready)
        assert len(engine.lot_items("L1")) == len(report.work_items)
