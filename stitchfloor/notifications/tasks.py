"""
Celery Tasks
============

Worker-side delivery of notification events published by CeleryDispatcher.

The worker reconstructs the event and pushes it to Loki when enabled,
otherwise it logs it. Delivery errors are retried a bounded number of
times; the engine that published the event never waits on the outcome.
"""

import logging

from .celery_app import DELIVER_TASK, make_celery_app

celery_app = make_celery_app()

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name=DELIVER_TASK,
                 max_retries=3, default_retry_delay=5)
def deliver_notification(self, event_data: dict) -> dict:
    """Deliver one serialized NotificationEvent.

    Args:
        event_data: NotificationEvent.serialize() output.

    Returns:
        Small status dict for inspection.
    """
    from ..config import EngineConfig
    from .dispatcher import log_sink
    from .events import NotificationEvent
    from .loki import get_loki_client

    event = NotificationEvent.deserialize(event_data)
    loki = get_loki_client(EngineConfig.from_env())

    try:
        if loki is not None:
            loki.deliver(event)
            sink = "loki"
        else:
            log_sink(event)
            sink = "log"
    except Exception as e:
        logger.warning("Delivery of %s failed (attempt %d): %s",
                       event.type.value, self.request.retries + 1, e)
        raise self.retry(exc=e)

    return {"status": "delivered", "type": event.type.value, "sink": sink}
