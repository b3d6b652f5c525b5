"""
Application entrypoint: HTTP + WebSocket server with database lifecycle.

The database pool is opened before the app accepts traffic. If Postgres cannot
be reached the startup fails and the process exits instead of running with
messages and presence silently going nowhere.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from signal_hub.config import settings
from signal_hub.db.pool import db_pool
from signal_hub.db.schema import ensure_schema
from signal_hub.infrastructure.observability.logging import get_logger, setup_logging
from signal_hub.middleware import CORSMiddleware
from signal_hub.realtime.hub import Hub
from signal_hub.repositories.message_repository import MessageRepository
from signal_hub.repositories.user_repository import UserRepository
from signal_hub.routes import health, presence, realtime

setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool on startup, close it on shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    try:
        await db_pool.initialize()
        if settings.DB_AUTO_CREATE_SCHEMA:
            await ensure_schema()
    except Exception as e:
        logger.critical(
            "Cannot reach the database, refusing to start",
            error=str(e),
            error_type=type(e).__name__,
        )
        await db_pool.close()
        raise

    logger.info("All services initialized successfully", events=app.state.hub.events)

    yield

    logger.info("Application shutting down", **app.state.hub.stats())
    try:
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))


app = FastAPI(
    title="Signal Hub",
    description="Presence, chat relay and call signaling over WebSockets",
    version="0.1.0",
    lifespan=lifespan,
)

app.state.hub = Hub(users=UserRepository(), messages=MessageRepository())

app.add_middleware(
    CORSMiddleware,
    allowed_origins=settings.allowed_origins(),
    allow_credentials=True,
)

app.include_router(health.router)
app.include_router(presence.router)
app.include_router(realtime.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


def run() -> None:
    """Console entrypoint."""
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
