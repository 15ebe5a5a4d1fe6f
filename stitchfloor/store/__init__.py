"""
Store Package
=============

Persistence for lots, operators and WorkItems behind the WorkItemStore ABC.
The Redis backend is optional (``pip install stitchfloor[worker]``).
"""

from .base import WorkItemStore, run_transaction
from .memory import InMemoryWorkItemStore

__all__ = ["WorkItemStore", "InMemoryWorkItemStore", "run_transaction", "make_store"]


def make_store(backend: str = "memory", redis_url: str = "") -> WorkItemStore:
    """Build a store for the configured backend name."""
    if backend == "memory":
        return InMemoryWorkItemStore()
    if backend == "redis":
        from .redis_store import RedisWorkItemStore
        return RedisWorkItemStore.from_url(redis_url)
    raise ValueError(f"Unknown store backend: {backend!r}")
