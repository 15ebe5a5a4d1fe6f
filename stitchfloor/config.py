"""
Engine Configuration
====================

Explicit configuration passed into ProductionEngine and its components.
Nothing in the engine reads process-wide state on its own; entry points
build an EngineConfig (usually via from_env()) and hand it down.

Environment variables:
    STITCHFLOOR_MAX_CAS_RETRIES: optimistic transaction attempts (default: 5)
    STITCHFLOOR_PARALLEL_POSITION: sentinel position for parallel insertions (default: 999)
    STITCHFLOOR_RESUME_POLICY: "on_completion" or "immediate" (default: on_completion)
    STITCHFLOOR_STORE: "memory" or "redis" (default: memory)
    STITCHFLOOR_REDIS_URL: Redis URL for the redis store (default: redis://localhost:6379/2)
    STITCHFLOOR_NOTIFICATIONS: "log", "queue" or "celery" (default: log)
    STITCHFLOOR_CELERY_QUEUE: Celery queue for notification delivery (default: notifications)
    STITCHFLOOR_LOKI_ENABLED / _ENDPOINT / _LABELS: Loki delivery sink
"""

import os
from enum import Enum

from pydantic import BaseModel, Field


class ResumePolicy(str, Enum):
    """When items paused by a blocking insertion are resumed.

    on_completion: paused items resume in the same unit that completes the
        emergency item.
    immediate: paused items resume as soon as the sequence is recalculated.
    """
    ON_COMPLETION = "on_completion"
    IMMEDIATE = "immediate"


class EngineConfig(BaseModel):
    """Settings for one ProductionEngine instance."""

    max_cas_retries: int = Field(default=5, ge=1)
    parallel_position: float = 999.0
    resume_policy: ResumePolicy = ResumePolicy.ON_COMPLETION

    # Minimal template used when a garment type has no catalog entry
    fallback_operation: str = "general_sewing"
    fallback_machine: str = "single-needle"
    fallback_estimated_time: float = 15.0

    store_backend: str = "memory"  # "memory", "redis"
    redis_url: str = "redis://localhost:6379/2"

    notification_backend: str = "log"  # "log", "queue", "celery"
    celery_queue: str = "notifications"

    loki_enabled: bool = False
    loki_endpoint: str = "http://localhost:3100"
    loki_labels: str = "service=stitchfloor,component=notifications"
    loki_timeout_s: int = 5

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from STITCHFLOOR_* environment variables."""
        return cls(
            max_cas_retries=int(os.getenv("STITCHFLOOR_MAX_CAS_RETRIES", "5")),
            parallel_position=float(os.getenv("STITCHFLOOR_PARALLEL_POSITION", "999")),
            resume_policy=os.getenv("STITCHFLOOR_RESUME_POLICY", ResumePolicy.ON_COMPLETION.value),
            store_backend=os.getenv("STITCHFLOOR_STORE", "memory"),
            redis_url=os.getenv("STITCHFLOOR_REDIS_URL", "redis://localhost:6379/2"),
            notification_backend=os.getenv("STITCHFLOOR_NOTIFICATIONS", "log"),
            celery_queue=os.getenv("STITCHFLOOR_CELERY_QUEUE", "notifications"),
            loki_enabled=os.getenv("STITCHFLOOR_LOKI_ENABLED", "false").lower() == "true",
            loki_endpoint=os.getenv("STITCHFLOOR_LOKI_ENDPOINT", "http://localhost:3100"),
            loki_labels=os.getenv(
                "STITCHFLOOR_LOKI_LABELS", "service=stitchfloor,component=notifications",
            ),
            loki_timeout_s=int(os.getenv("STITCHFLOOR_LOKI_TIMEOUT_S", "5")),
        )
