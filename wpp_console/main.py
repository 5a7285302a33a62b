"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from wpp_console.config import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the console registry; on shutdown stop every mounted console."""
    from wpp_console.core.telemetry import setup_all_instrumentation, shutdown_telemetry
    from wpp_console.services import ConsoleRegistry, EventJournal

    setup_all_instrumentation(app)

    redis = Redis.from_url(settings.REDIS_URL, decode_responses=True) if settings.EVENT_JOURNAL_ENABLED else None
    if redis is not None:
        logger.info("Journaling event stream frames to Redis")
    app.state.registry = ConsoleRegistry(journal=EventJournal(redis) if redis is not None else None)

    yield

    await app.state.registry.close()
    if redis is not None:
        await redis.aclose()
    shutdown_telemetry()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="WhatsApp Inbox Console API",
        description="Real-time conversation sync and ownership for the WhatsApp inbox console",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url=None,
        openapi_url="/api/openapi.json" if settings.DEBUG else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.DEBUG else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from wpp_console.api.v1.router import api_router

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check(request: Request):
        """Health check with the event stream state of each mounted console."""
        registry = getattr(request.app.state, "registry", None)
        sessions = registry.sessions if registry is not None else {}
        return {
            "status": "healthy",
            "consoles": {device_id: session.connection_state.value for device_id, session in sessions.items()},
        }

    return app


app = create_app()
