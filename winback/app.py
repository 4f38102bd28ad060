"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from winback.routers import cron, winback_config

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    try:
        from winback.scheduler import scheduler
        scheduler.start()
        logger.info("Scheduler started — win-back steps and attribution scheduled")
    except Exception as e:
        logger.warning("Scheduler failed to start: %s", e)

    yield

    try:
        from winback.scheduler import scheduler
        if scheduler.running:
            scheduler.shutdown(wait=False)
    except Exception as e:
        logger.warning("Scheduler shutdown failed: %s", e)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Win-Back Automation",
        description="Dormant-customer win-back engine: timed outreach steps and conversion attribution.",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.get("/health", include_in_schema=False)
    async def health():
        return {"status": "ok"}

    for r in [cron, winback_config]:
        app.include_router(r.router)

    return app
