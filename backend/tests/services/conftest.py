"""Service test fixtures - fake inventory server, shared cache and wired services.

Invariants:
    - Every test gets a fresh FakeInventoryServer seeded with the standard graph
    - The real InventoryApi runs against it through httpx.MockTransport
    - The SyncEngine has no socket: push frames are fed to handle_push_message directly

Design Decisions:
    - The cache loader is the engine's pull, as in production, so lazy reads go
      through the same path the runtime uses
"""

import pytest

from spoolsync.core.entity_cache import EntityCache
from spoolsync.services.lane_resolver import LaneResolver
from spoolsync.services.sync_engine import SyncEngine
from spoolsync.services.usage_ledger import UsageLedger
from tests.fake_inventory import FakeController, FakeInventoryServer, RecordingListener

LANE_STATUS = {
    "AFC": {"lanes": ["lane1", "lane2", "lane3"]},
    "AFC_stepper lane1": {"name": "lane1", "lane": 1, "spool_id": 2},
    "AFC_stepper lane2": {"name": "lane2", "lane": 2, "spool_id": 1},
    "AFC_lane lane3": {"name": "lane3", "lane": 3},
}


@pytest.fixture
def fake_server():
    server = FakeInventoryServer()
    server.seed_standard()
    return server


@pytest.fixture
def api(fake_server):
    client = fake_server.api()
    yield client
    client.close()


@pytest.fixture
def cache():
    return EntityCache()


@pytest.fixture
def engine(cache, api):
    return SyncEngine(cache, api, address="inventory.test")


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def ledger(engine, cache, api, listener):
    return UsageLedger(cache, api, listener, max_workers=2)


@pytest.fixture
def controller():
    return FakeController(LANE_STATUS)


@pytest.fixture
def resolver(engine, cache, controller):
    return LaneResolver(cache, controller)
