"""
Worker CLI
==========

Entry point for a Celery worker that delivers notification events
published by CeleryDispatcher.

Usage:
    stitchfloor-worker                          # Log every delivered event
    stitchfloor-worker --concurrency 4          # Four delivery processes
    stitchfloor-worker --queue floor-2          # Listen on another queue
    stitchfloor-worker --loki http://loki:3100  # Push events to Loki
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stitchfloor-worker",
        description="Deliver StitchFloor notification events from a Celery queue",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=2,
        help="Number of delivery processes (default: 2)",
    )
    parser.add_argument(
        "--queue",
        default=os.getenv("STITCHFLOOR_CELERY_QUEUE", "notifications"),
        help="Celery queue to consume (default: $STITCHFLOOR_CELERY_QUEUE or notifications)",
    )
    parser.add_argument(
        "--loki",
        metavar="URL",
        default=None,
        help="Push delivered events to this Loki endpoint instead of logging them",
    )
    parser.add_argument(
        "--loglevel",
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Log level (default: info)",
    )
    return parser


def worker_argv(args: argparse.Namespace) -> list:
    """Arguments handed to celery_app.worker_main()."""
    return [
        "worker",
        f"--concurrency={args.concurrency}",
        f"--queues={args.queue}",
        f"--loglevel={args.loglevel}",
        "--hostname=stitchfloor-notify@%h",
    ]


def main(argv=None):
    """Start a Celery worker for notification delivery."""
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=True)

    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.loglevel.upper()),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    logger = logging.getLogger("stitchfloor.worker")

    # tasks.py reads these through EngineConfig.from_env() per delivery
    if args.loki:
        os.environ["STITCHFLOOR_LOKI_ENABLED"] = "true"
        os.environ["STITCHFLOOR_LOKI_ENDPOINT"] = args.loki

    try:
        from .tasks import celery_app
    except ImportError:
        print("Error: celery and redis packages required.", file=sys.stderr)
        print("Install with: pip install stitchfloor[worker]", file=sys.stderr)
        return 1

    logger.info(
        "Delivering notifications from queue '%s' to %s",
        args.queue, args.loki or "the log",
    )
    celery_app.worker_main(worker_argv(args))
    return 0


if __name__ == "__main__":
    sys.exit(main())
