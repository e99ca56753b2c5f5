"""API test fixtures - runtime on the fake inventory server + FastAPI test client.

Invariants:
    - get_runtime dependency overridden with a runtime wired to the fakes
    - No push channel: the runtime is built with push disabled

Design Decisions:
    - ASGITransport does not run the lifespan, so the runtime is injected through
      the dependency override rather than app.state
"""

import pytest
from httpx import ASGITransport, AsyncClient

from spoolsync.api.dependencies import get_runtime
from spoolsync.config import Settings
from spoolsync.main import app
from spoolsync.services.inventory_runtime import InventoryRuntime
from tests.fake_inventory import FakeController, FakeInventoryServer

LANE_STATUS = {
    "AFC": {"lanes": ["lane1", "lane2"]},
    "AFC_stepper lane1": {"name": "lane1", "lane": 1, "spool_id": 2},
    "AFC_stepper lane2": {"name": "lane2", "lane": 2, "spool_id": 2},
}


@pytest.fixture
def fake_server():
    server = FakeInventoryServer()
    server.seed_standard()
    return server


@pytest.fixture
def controller():
    return FakeController(LANE_STATUS)


@pytest.fixture
def runtime(fake_server, controller):
    settings = Settings(
        inventory_address="inventory.test", push_enabled=False, pull_on_start=False,
    )
    inventory_runtime = InventoryRuntime(settings, api=fake_server.api(), controller=controller)
    yield inventory_runtime
    inventory_runtime.close()


@pytest.fixture
async def client(runtime):
    app.dependency_overrides[get_runtime] = lambda: runtime

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
