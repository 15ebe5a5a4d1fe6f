"""
StitchFloor CLI
===============

Usage:
    stitchfloor generate lot.json            # Expand a WIP payload, print the report
    stitchfloor generate lot.json --items    # Include every work item
    stitchfloor templates                    # List built-in garment templates
    stitchfloor serve --port 8080            # Run the HTTP server
"""

import argparse
import json
import logging
import sys

from .catalog import StaticOperationCatalog
from .config import EngineConfig
from .intake import WipIntakeAdapter
from .shopfloor.generator import WorkItemGenerator

logger = logging.getLogger("stitchfloor.cli")


def _generate(args) -> int:
    with open(args.payload) as f:
        payload = json.load(f)
    lot = WipIntakeAdapter().parse_payload(payload)
    report = WorkItemGenerator(StaticOperationCatalog(), EngineConfig.from_env()).generate(lot)

    summary = {
        "lot_number": lot.lot_number,
        "work_items": len(report.work_items),
        "bundles": len(report.bundles),
        "total_pieces": report.total_pieces,
        "pieces_by_size": report.pieces_by_size,
        "pieces_by_roll": report.pieces_by_roll,
        "skipped": [s.model_dump() for s in report.skipped],
    }
    if args.items:
        summary["items"] = [i.serialize() for i in report.work_items]
    print(json.dumps(summary, indent=2))
    return 0


def _templates(args) -> int:
    catalog = StaticOperationCatalog()
    for garment_type in catalog.garment_types():
        steps = catalog.operations_for(garment_type)
        print(f"{garment_type}: {len(steps)} operations")
        for step in steps:
            deps = f" (after {', '.join(step.depends_on)})" if step.depends_on else ""
            group = f" [{step.parallel_group}]" if step.parallel_group else ""
            print(f"  {step.sequence:>4}  {step.operation:<16} {step.machine:<14} "
                  f"{step.estimated_time:>5.0f}m{group}{deps}")
    return 0


def _serve(args) -> int:
    import uvicorn

    uvicorn.run(
        "stitchfloor.server:create_app",
        factory=True,
        host=args.host,
        port=args.port,
    )
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="stitchfloor",
        description="Garment production workflow engine",
    )
    parser.add_argument(
        "--loglevel",
        default="warning",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Log level (default: warning)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate work items for a WIP payload")
    gen.add_argument("payload", help="Path to a WIP intake JSON file")
    gen.add_argument("--items", action="store_true", help="Print every work item")
    gen.set_defaults(func=_generate)

    tpl = sub.add_parser("templates", help="List garment operation templates")
    tpl.set_defaults(func=_templates)

    srv = sub.add_parser("serve", help="Run the HTTP server")
    srv.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    srv.add_argument("--port", type=int, default=8000, help="Port to bind to")
    srv.set_defaults(func=_serve)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.loglevel.upper()),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
