"""
ProductionEngine
================

The engine's public surface. Wires one store, one catalog and one
notification dispatcher into the generator, scheduler, coordinator and
insertion engine, all built from one explicit EngineConfig.

    engine = ProductionEngine.from_config(EngineConfig.from_env())
    report = engine.generate(lot)
    engine.self_assign(item_id, "op-7")

Nothing here is module-level state: two engines with two in-memory stores
are fully isolated.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from ..catalog import OperationCatalog, StaticOperationCatalog
from ..config import EngineConfig
from ..errors import WorkUnavailable
from ..machines import is_compatible
from ..models import (
    EmergencyWorkSpec,
    InsertionPoint,
    LotStatus,
    OperatorProfile,
    WipLot,
    WorkItem,
    WorkItemStatus,
)
from ..notifications.dispatcher import LoggingDispatcher, NotificationDispatcher, make_dispatcher
from ..store import InMemoryWorkItemStore, WorkItemStore, make_store
from .assignment import AssignmentCoordinator
from .generator import GenerationReport, WorkItemGenerator
from .insertion import EmergencyInsertionEngine
from .scheduler import WorkflowScheduler

logger = logging.getLogger(__name__)


class ProductionEngine:
    """Production workflow orchestration for WIP lots."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        store: Optional[WorkItemStore] = None,
        catalog: Optional[OperationCatalog] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.config = config if config is not None else EngineConfig()
        # An empty store is falsy
        self.store = store if store is not None else InMemoryWorkItemStore()
        self.catalog = catalog if catalog is not None else StaticOperationCatalog()
        self.dispatcher = dispatcher if dispatcher is not None else LoggingDispatcher()

        self.generator = WorkItemGenerator(self.catalog, self.config)
        self.scheduler = WorkflowScheduler(self.store, self.config)
        self.coordinator = AssignmentCoordinator(
            self.store, self.scheduler, self.dispatcher, self.config,
        )
        self.insertion = EmergencyInsertionEngine(
            self.store, self.scheduler, self.dispatcher, self.config,
        )

    @classmethod
    def from_config(
        cls, config: EngineConfig, catalog: Optional[OperationCatalog] = None,
    ) -> "ProductionEngine":
        """Build an engine with the store and dispatcher named in *config*."""
        store = make_store(config.store_backend, config.redis_url)
        dispatcher = make_dispatcher(config)
        logger.info(
            "Engine: store=%s notifications=%s resume_policy=%s",
            config.store_backend, config.notification_backend, config.resume_policy.value,
        )
        return cls(config=config, store=store, catalog=catalog, dispatcher=dispatcher)

    # ------------------------------------------------------------------
    # Generation and lots
    # ------------------------------------------------------------------

    def generate(self, lot: WipLot) -> GenerationReport:
        """Expand and persist a lot. Returns the full generation report.

        Raises:
            WorkUnavailable: the lot already has WorkItems.
        """
        if self.store.list_by_lot(lot.lot_number):
            raise WorkUnavailable(lot.lot_number, f"Lot {lot.lot_number} is already generated")
        report = self.generator.generate(lot)
        report.work_items = self.store.add_many(report.work_items)
        self.store.save_lot(report.lot)
        return report

    def generate_work_items(self, lot: WipLot) -> List[WorkItem]:
        return self.generate(lot).work_items

    def get_lot(self, lot_number: str) -> WipLot:
        return self.store.get_lot(lot_number)

    def list_lots(self) -> List[WipLot]:
        return self.store.list_lots()

    def lot_items(self, lot_number: str) -> List[WorkItem]:
        self.store.get_lot(lot_number)
        return self.store.list_by_lot(lot_number)

    def close_lot(self, lot_number: str) -> WipLot:
        lot = self.store.get_lot(lot_number)
        lot.status = LotStatus.CLOSED
        self.store.save_lot(lot)
        logger.info("Lot %s closed", lot_number)
        return lot

    def delete_lot(self, lot_number: str) -> int:
        """Delete a lot and its WorkItems. Returns the number of items removed."""
        removed = self.store.delete_lot(lot_number)
        logger.info("Lot %s deleted with %d work items", lot_number, removed)
        return removed

    def lot_progress(self, lot_number: str) -> Dict[str, Any]:
        """Status counts, bundle completion and percent complete for a lot."""
        lot = self.store.get_lot(lot_number)
        items = self.store.list_by_lot(lot_number)
        counts = Counter(i.status.value for i in items)

        bundles: Dict[str, List[WorkItem]] = {}
        for item in items:
            if item.bundle_id and not item.is_emergency_insertion:
                bundles.setdefault(item.bundle_id, []).append(item)
        finished = [b for b in bundles.values() if all(i.is_completed for i in b)]

        completed = counts.get(WorkItemStatus.COMPLETED.value, 0)
        return {
            "lot_number": lot_number,
            "status": lot.status.value,
            "total_items": len(items),
            "completed_items": completed,
            "by_status": {s.value: counts.get(s.value, 0) for s in WorkItemStatus},
            "bundles_total": len(bundles),
            "bundles_completed": len(finished),
            "completed_pieces": sum(b[0].pieces for b in finished),
            "percent_complete": round(100.0 * completed / len(items), 1) if items else 0.0,
        }

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def register_operator(self, operator: OperatorProfile) -> OperatorProfile:
        self.store.save_operator(operator)
        logger.info("Registered %s %s (%s)", operator.role, operator.id, ", ".join(operator.machines))
        return operator

    def get_operator(self, operator_id: str) -> OperatorProfile:
        return self.store.get_operator(operator_id)

    def compatible_operators(self, work_item_id: str) -> List[OperatorProfile]:
        """Active operators whose machines can run the WorkItem."""
        item = self.store.get(work_item_id)
        return [
            op for op in self.store.list_operators()
            if op.active and op.role == "operator" and is_compatible(op.machines, item.machine_type)
        ]

    def available_work_for(self, operator_id: str) -> List[WorkItem]:
        """Ready WorkItems the operator's machines can run."""
        operator = self.store.get_operator(operator_id)
        return [
            i for i in self.store.list_by_status(WorkItemStatus.READY)
            if is_compatible(operator.machines, i.machine_type)
        ]

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def ready_work(self, lot_number: str) -> List[WorkItem]:
        return self.scheduler.ready_set(lot_number)

    def operator_queue(self, operator_id: str) -> List[WorkItem]:
        return self.scheduler.operator_queue(operator_id)

    def pending_approvals(self) -> List[WorkItem]:
        return self.coordinator.pending_approvals()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def self_assign(self, work_item_id: str, operator_id: str) -> WorkItem:
        return self.coordinator.self_assign(work_item_id, operator_id)

    def approve(self, work_item_id: str, supervisor_id: str) -> WorkItem:
        return self.coordinator.approve(work_item_id, supervisor_id)

    def reject(self, work_item_id: str, supervisor_id: str, reason: Optional[str] = None) -> WorkItem:
        return self.coordinator.reject(work_item_id, supervisor_id, reason)

    def assign(self, work_item_id: str, operator_id: str, supervisor_id: str) -> WorkItem:
        return self.coordinator.assign(work_item_id, operator_id, supervisor_id)

    def reassign(self, work_item_id: str, new_operator_id: str, supervisor_id: str) -> WorkItem:
        return self.coordinator.reassign(work_item_id, new_operator_id, supervisor_id)

    def start(self, work_item_id: str, operator_id: str) -> WorkItem:
        return self.coordinator.start(work_item_id, operator_id)

    def complete(
        self,
        work_item_id: str,
        operator_id: Optional[str] = None,
        completion_data: Optional[Dict[str, Any]] = None,
    ) -> WorkItem:
        return self.coordinator.complete(work_item_id, operator_id, completion_data)

    # ------------------------------------------------------------------
    # Emergency insertion
    # ------------------------------------------------------------------

    def insert_emergency_work(
        self,
        lot_number: str,
        spec: EmergencyWorkSpec,
        insertion_point: Optional[InsertionPoint] = None,
    ) -> WorkItem:
        return self.insertion.insert_emergency_work(lot_number, spec, insertion_point)

    def recalculate_sequence(self, lot_number: str, emergency_id: str) -> List[WorkItem]:
        return self.insertion.recalculate_sequence(lot_number, emergency_id)

    def resume_paused(self, emergency_id: str) -> List[WorkItem]:
        return self.insertion.resume_paused(emergency_id)


__all__ = ["ProductionEngine"]
