"""
Main application entry point for the Electricity Price Window service.
Initializes FastAPI app, database, optional scheduler, and starts the service.
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from src.api.routes import router as api_router
from src.config import settings
from src.database.service import db_service
from src.logging_config import get_logger, setup_logging
from src.scheduler.simple_scheduler import simple_scheduler

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup and shutdown procedures.

    Without the in-process scheduler, ingestion is triggered via POST /ingest.
    """
    setup_logging()
    await db_service.init()

    if settings.scheduler_enabled:
        await simple_scheduler.start()
    else:
        logger.info("In-process scheduler disabled, waiting for external ingestion triggers")

    logger.info("Service started", provider=settings.price_provider, feed_timeout=settings.feed_timeout_seconds)

    yield

    await simple_scheduler.stop()
    await db_service.close()
    logger.info("Service stopped")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """
    app = FastAPI(
        title="Electricity Price Windows",
        description="Cheapest time windows for flexible loads based on published spot prices",
        version="1.0.0",
        docs_url="/docs" if settings.api_debug else None,
        redoc_url="/redoc" if settings.api_debug else None,
        lifespan=lifespan,
    )

    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )
