"""Route dependencies - access to the process InventoryRuntime."""

from fastapi import Request

from spoolsync.services.inventory_runtime import InventoryRuntime


def get_runtime(request: Request) -> InventoryRuntime:
    """The runtime built by the lifespan; tests override this dependency."""
    return request.app.state.runtime
