import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI, status
from regulatory_outbox.core.db import init_db, close_db
from regulatory_outbox.core.wiring import build_outbox
from regulatory_outbox.consumers.outbox_dispatcher import IntervalTicker
from regulatory_outbox.api.v1.outbox import router as outbox_router
from regulatory_outbox.core.config import (
    DISPATCHER_ENABLED,
    LOG_LEVEL,
    POLL_INTERVAL_MS,
    PROJECT_NAME,
    VERSION,
)
from regulatory_outbox.core.exception_handlers import setup_exception_handlers

logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("regulatory_outbox")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db() # Connect to DB and generate schemas
    outbox = build_outbox()
    app.state.outbox = outbox

    stop = asyncio.Event()
    dispatcher_task = None
    if DISPATCHER_ENABLED:
        dispatcher_task = asyncio.create_task(
            outbox.dispatcher.run(IntervalTicker(POLL_INTERVAL_MS / 1000), stop)
        )
    yield
    stop.set()
    if dispatcher_task is not None:
        dispatcher_task.cancel()
        with suppress(asyncio.CancelledError):
            await dispatcher_task
    await close_db()
    log.info(f"{PROJECT_NAME} stopped.")

app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    # Configure API documentation and paths
    docs_url="/docs",
    redoc_url="/redoc"
)

# Operator endpoints for outbox recovery and observability
app.include_router(outbox_router, prefix="/api/v1/outbox", tags=["Outbox Operations"])


setup_exception_handlers(app)

@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME}
