#!/usr/bin/env python3
"""
StitchFloor Web Server

Exposes the production workflow engine over HTTP.

Endpoints:
    POST   /lots                       - Intake a WIP lot and generate its work items
    GET    /lots/{lot}                 - Lot details
    DELETE /lots/{lot}                 - Delete a lot and its work items
    POST   /lots/{lot}/close           - Close a lot
    GET    /lots/{lot}/items           - All work items, in sequence order
    GET    /lots/{lot}/ready           - Ready set (promotes satisfied pending items)
    GET    /lots/{lot}/progress        - Status counts and completion
    POST   /lots/{lot}/emergency       - Insert emergency work
    POST   /lots/{lot}/recalculate     - Re-run sequence recalculation
    POST   /operators                  - Register an operator
    GET    /operators/{id}/queue       - Operator queue
    GET    /operators/{id}/available   - Ready work the operator can run
    GET    /approvals                  - Self-assignments awaiting a supervisor
    GET    /work-items/{id}            - One work item
    GET    /work-items/{id}/operators  - Operators whose machines fit the item
    POST   /work-items/{id}/{action}   - self-assign, approve, reject, assign,
                                         reassign, start, complete, resume
    GET    /health                     - Health check

Usage:
    stitchfloor-server                  # Start server on port 8000
    stitchfloor-server --port 8080      # Custom port
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from .config import EngineConfig
from .errors import (
    CycleDetected,
    DependencyUnsatisfied,
    InvalidTemplate,
    MachineTypeMismatch,
    NotFound,
    PersistenceFailure,
    WorkflowError,
    WorkUnavailable,
)
from .intake import WipIntakeAdapter
from .models import EmergencyWorkSpec, InsertionPoint, OperatorProfile, WorkItem
from .shopfloor.engine import ProductionEngine

logger = logging.getLogger(__name__)

# Most specific class first.
_STATUS_BY_ERROR = [
    (NotFound, 404),
    (WorkUnavailable, 409),
    (DependencyUnsatisfied, 409),
    (MachineTypeMismatch, 422),
    (CycleDetected, 422),
    (InvalidTemplate, 422),
    (PersistenceFailure, 503),
]


def status_for(error: WorkflowError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 400


# =============================================================================
# Request Models
# =============================================================================

class ActionRequest(BaseModel):
    """Body for POST /work-items/{id}/{action}.

    actor_id is whoever performs the action: the operator for self-assign,
    start and complete, the supervisor for approve, reject, assign and
    reassign. operator_id names the target operator of assign/reassign.
    """
    actor_id: str
    operator_id: Optional[str] = None
    reason: Optional[str] = None
    completion_data: Dict[str, Any] = Field(default_factory=dict)


class RecalculateRequest(BaseModel):
    emergency_id: str


def _items(items: List[WorkItem]) -> List[Dict[str, Any]]:
    return [i.serialize() for i in items]


# =============================================================================
# Application
# =============================================================================

def create_app(engine: Optional[ProductionEngine] = None) -> FastAPI:
    """Build the FastAPI app around *engine* (from environment when None)."""
    if engine is None:
        engine = ProductionEngine.from_config(EngineConfig.from_env())
    intake = WipIntakeAdapter()

    app = FastAPI(
        title="StitchFloor",
        description="Production workflow engine for garment WIP lots",
        version="1.0.0",
    )
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError):
        status = status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=status, content=exc.to_dict())

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=422,
            content={
                "code": "INVALID_PAYLOAD",
                "message": "Invalid payload",
                "details": {"errors": exc.errors(
                    include_url=False, include_context=False, include_input=False,
                )},
            },
        )

    # -------------------------------------------------------------------------
    # Lots
    # -------------------------------------------------------------------------

    @app.post("/lots", status_code=201)
    def create_lot(payload: Dict[str, Any]):
        """Intake a WIP payload and generate its work items."""
        lot = intake.parse_payload(payload)
        report = engine.generate(lot)
        body = report.model_dump(mode="json")
        body["total_pieces"] = report.total_pieces
        return body

    @app.get("/lots/{lot_number}")
    def get_lot(lot_number: str):
        return engine.get_lot(lot_number).model_dump(mode="json")

    @app.delete("/lots/{lot_number}")
    def delete_lot(lot_number: str):
        removed = engine.delete_lot(lot_number)
        return {"deleted": lot_number, "work_items_removed": removed}

    @app.post("/lots/{lot_number}/close")
    def close_lot(lot_number: str):
        return engine.close_lot(lot_number).model_dump(mode="json")

    @app.get("/lots/{lot_number}/items")
    def lot_items(lot_number: str):
        return _items(engine.lot_items(lot_number))

    @app.get("/lots/{lot_number}/ready")
    def ready_work(lot_number: str):
        return _items(engine.ready_work(lot_number))

    @app.get("/lots/{lot_number}/progress")
    def lot_progress(lot_number: str):
        return engine.lot_progress(lot_number)

    @app.post("/lots/{lot_number}/emergency", status_code=201)
    def insert_emergency(lot_number: str, spec: EmergencyWorkSpec):
        item = engine.insert_emergency_work(lot_number, spec, InsertionPoint(spec.insertion_point))
        return item.serialize()

    @app.post("/lots/{lot_number}/recalculate")
    def recalculate(lot_number: str, request: RecalculateRequest):
        return _items(engine.recalculate_sequence(lot_number, request.emergency_id))

    # -------------------------------------------------------------------------
    # Operators
    # -------------------------------------------------------------------------

    @app.post("/operators", status_code=201)
    def register_operator(operator: OperatorProfile):
        return engine.register_operator(operator).model_dump(mode="json")

    @app.get("/operators/{operator_id}/queue")
    def operator_queue(operator_id: str):
        return _items(engine.operator_queue(operator_id))

    @app.get("/operators/{operator_id}/available")
    def available_work(operator_id: str):
        return _items(engine.available_work_for(operator_id))

    @app.get("/approvals")
    def pending_approvals():
        return _items(engine.pending_approvals())

    # -------------------------------------------------------------------------
    # Work items
    # -------------------------------------------------------------------------

    @app.get("/work-items/{item_id}")
    def get_work_item(item_id: str):
        return engine.store.get(item_id).serialize()

    @app.get("/work-items/{item_id}/operators")
    def compatible_operators(item_id: str):
        return [op.model_dump(mode="json") for op in engine.compatible_operators(item_id)]

    @app.post("/work-items/{item_id}/{action}")
    def work_item_action(item_id: str, action: str, request: ActionRequest):
        """Run one state transition on a work item."""
        actor = request.actor_id
        if action == "self-assign":
            return engine.self_assign(item_id, request.operator_id or actor).serialize()
        if action == "approve":
            return engine.approve(item_id, actor).serialize()
        if action == "reject":
            return engine.reject(item_id, actor, request.reason).serialize()
        if action in ("assign", "reassign"):
            if not request.operator_id:
                raise HTTPException(status_code=422, detail=f"{action} requires operator_id")
            if action == "assign":
                return engine.assign(item_id, request.operator_id, actor).serialize()
            return engine.reassign(item_id, request.operator_id, actor).serialize()
        if action == "start":
            return engine.start(item_id, request.operator_id or actor).serialize()
        if action == "complete":
            return engine.complete(
                item_id, request.operator_id or actor, request.completion_data,
            ).serialize()
        if action == "resume":
            return _items(engine.resume_paused(item_id))
        raise HTTPException(status_code=404, detail=f"Unknown action: {action}")

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "store": type(engine.store).__name__,
            "notifications": engine.dispatcher.name,
            "lots": len(engine.list_lots()),
        }

    return app


# =============================================================================
# Main
# =============================================================================

def main():
    """Run the server."""
    # .env values take precedence over the shell environment
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=True)

    parser = argparse.ArgumentParser(description="StitchFloor Web Server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument(
        "--loglevel",
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Log level (default: info)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.loglevel.upper()),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    import uvicorn
    uvicorn.run(
        "stitchfloor.server:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
