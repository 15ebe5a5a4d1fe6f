"""Builders shared by the test modules."""

import threading

from stitchfloor.catalog import OperationStep
from stitchfloor.models import ArticleConfig, Roll, WipLot, WorkItem
from stitchfloor.store.memory import InMemoryWorkItemStore

# Two-step chain: an overlock seam followed by a single-needle label.
CHAIN = [
    OperationStep(operation="side_seam", machine="overlock", sequence=1, estimated_time=10),
    OperationStep(operation="label_attach", machine="single-needle", sequence=2, estimated_time=5),
]

# One prep step fanning out to two parallel steps.
FANOUT = [
    OperationStep(operation="shoulder_join", machine="overlock", sequence=1, estimated_time=10),
    OperationStep(operation="printing", machine="manual", sequence=2, estimated_time=15,
                  workflow_type="parallel", depends_on=["shoulder_join"], parallel_group="decoration"),
    OperationStep(operation="embroidery", machine="embroidery", sequence=2, estimated_time=20,
                  workflow_type="parallel", depends_on=["shoulder_join"], parallel_group="decoration"),
]


# Two independent halves joined by one step.
JOIN = [
    OperationStep(operation="front_panel", machine="overlock", sequence=1, estimated_time=10),
    OperationStep(operation="back_panel", machine="single-needle", sequence=1, estimated_time=10),
    OperationStep(operation="panel_join", machine="overlock", sequence=2, estimated_time=12,
                  depends_on=["front_panel", "back_panel"]),
]


class RendezvousStore(InMemoryWorkItemStore):
    """Holds the next *parties* list_by_lot() calls until all of them have read.

    Lets threaded tests force two transactions onto the same snapshot
    before either commits.
    """

    def __init__(self):
        super().__init__()
        self._gate = threading.Lock()
        self._waiting = 0
        self._barrier = None

    def hold(self, parties):
        self._waiting = parties
        self._barrier = threading.Barrier(parties, timeout=5)

    def list_by_lot(self, lot_number):
        items = super().list_by_lot(lot_number)
        with self._gate:
            gated = self._waiting > 0
            if gated:
                self._waiting -= 1
        if gated:
            self._barrier.wait()
        return items


def run_threads(*calls):
    """Run each (fn, *args) in its own thread; return the exceptions raised."""
    errors = []

    def guard(fn, *args):
        try:
            fn(*args)
        except Exception as e:  # collected for the assertion
            errors.append(e)

    threads = [threading.Thread(target=guard, args=call) for call in calls]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return errors

def make_lot(
    lot_number="L1",
    sizes="S",
    ratios="1",
    garment_type="chain",
    style_name="Test Garment",
    rolls=None,
) -> WipLot:
    return WipLot(
        lot_number=lot_number,
        fabric_name="Cotton Jersey",
        rolls=rolls or [Roll(roll_number=1, color="Blue", layer_count=10)],
        articles=[ArticleConfig(
            article_number="A1",
            style_name=style_name,
            garment_type=garment_type,
            sizes=sizes,
            ratios=ratios,
        )],
    )


def by_operation(items, size=None):
    """Map operation name -> WorkItem (optionally for one size)."""
    return {i.operation: i for i in items if size is None or i.size == size}


def make_item(item_id, dependencies=(), lot_number="L1", **fields) -> WorkItem:
    fields.setdefault("operation", "op")
    fields.setdefault("machine_type", "overlock")
    return WorkItem(id=item_id, lot_number=lot_number, dependencies=list(dependencies), **fields)
