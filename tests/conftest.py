"""Shared fixtures: an isolated engine per test with a recording dispatcher."""

import pytest

from stitchfloor.catalog import StaticOperationCatalog
from stitchfloor.config import EngineConfig
from stitchfloor.models import OperatorProfile
from stitchfloor.notifications.dispatcher import RecordingDispatcher
from stitchfloor.shopfloor.engine import ProductionEngine
from stitchfloor.store.memory import InMemoryWorkItemStore

from helpers import CHAIN, FANOUT, JOIN


@pytest.fixture
def catalog():
    c = StaticOperationCatalog()
    c.register("chain", CHAIN)
    c.register("fanout", FANOUT)
    c.register("join", JOIN)
    return c


@pytest.fixture
def store():
    return InMemoryWorkItemStore()


@pytest.fixture
def recorder():
    return RecordingDispatcher()


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def engine(config, store, catalog, recorder):
    return ProductionEngine(config=config, store=store, catalog=catalog, dispatcher=recorder)


@pytest.fixture
def operators(engine):
    """op-sn runs single-needle, op-ol overlock, op-both both, op-multi anything."""
    profiles = [
        OperatorProfile(id="op-sn", name="Sita", machines=["Single Needle"]),
        OperatorProfile(id="op-ol", name="Ram", machines=["overlock"]),
        OperatorProfile(id="op-both", name="Hari", machines=["SN", "over lock"]),
        OperatorProfile(id="op-multi", name="Gita", machines=["multi-machine"]),
        OperatorProfile(id="sup-1", name="Maya", role="supervisor"),
    ]
    for p in profiles:
        engine.register_operator(p)
    return {p.id: p for p in profiles}
