"""spoolsync API - FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map SpoolSyncError -> structured JSON responses
    - CORS configured from settings (not hardcoded)
    - The InventoryRuntime is built and started in the lifespan, closed on shutdown

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Runtime kept on app.state and reached through a dependency, so tests override
      the dependency instead of patching module globals
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from spoolsync.api.error_handlers import register_error_handlers
from spoolsync.api.routes import health, inventory, lanes, usage
from spoolsync.config import get_settings
from spoolsync.infrastructure.observability import setup_logging
from spoolsync.services.inventory_runtime import InventoryRuntime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    runtime = InventoryRuntime(settings)
    # the initial pull blocks on the inventory server
    await run_in_threadpool(runtime.start)
    app.state.runtime = runtime
    logger.info(f"spoolsync API started against {settings.inventory_address}")
    yield
    logger.info("spoolsync API shutting down")
    await run_in_threadpool(runtime.close)


app = FastAPI(title="spoolsync API", version="1.0.0", lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(inventory.router)
app.include_router(usage.router)
app.include_router(lanes.router)

register_error_handlers(app)
