"""
Celery Application Factory
==========================

Builds the Celery app that carries NotificationEvents from the engine to
notification workers. Redis is the broker; results are not kept because
CeleryDispatcher never waits on a delivery.

Environment variables:
    STITCHFLOOR_CELERY_BROKER_URL: Redis broker URL (default: redis://localhost:6379/0)
    STITCHFLOOR_CELERY_RESULT_BACKEND: Redis result backend (default: redis://localhost:6379/1)
    STITCHFLOOR_CELERY_QUEUE: queue deliveries are routed to (default: notifications)
"""

import os
from typing import Optional

_DEFAULT_BROKER = "redis://localhost:6379/0"
_DEFAULT_BACKEND = "redis://localhost:6379/1"
_DEFAULT_QUEUE = "notifications"

DELIVER_TASK = "stitchfloor.notifications.deliver"


def make_celery_app(
    broker_url: Optional[str] = None,
    result_backend: Optional[str] = None,
    queue: Optional[str] = None,
):
    """Create the notification Celery app.

    Arguments left as None fall back to the environment, then to the
    local Redis defaults.
    """
    from celery import Celery

    broker_url = broker_url or os.getenv("STITCHFLOOR_CELERY_BROKER_URL", _DEFAULT_BROKER)
    result_backend = result_backend or os.getenv(
        "STITCHFLOOR_CELERY_RESULT_BACKEND", _DEFAULT_BACKEND,
    )
    queue = queue or os.getenv("STITCHFLOOR_CELERY_QUEUE", _DEFAULT_QUEUE)

    app = Celery("stitchfloor.notifications", broker=broker_url, backend=result_backend)
    app.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        # A delivery lost with its worker is redelivered
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_ignore_result=True,
        task_default_queue=queue,
        task_routes={DELIVER_TASK: {"queue": queue}},
    )
    return app
