"""
Archivist - FastAPI Application

Run locally:
    uvicorn archivist.main:app --port 8787
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from . import __version__
from .config import configure_logging, get_settings
from .core.errors import setup_error_handlers
from .db import close_db_pool, init_db_pool
from .routers.health import router as health_router
from .routers.ingest import router as ingest_router
from .routers.upload import router as upload_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Startup opens the database pool when DATABASE_URL is configured; shutdown
    closes it.
    """
    settings = get_settings()
    configure_logging(settings)

    logger.info(f"Starting Archivist v{__version__} ({settings.ENVIRONMENT})")

    if settings.DATABASE_URL:
        try:
            await init_db_pool()
        except Exception as e:
            # Keep serving /health; queue-backed routes fail until the DB is back
            logger.error(f"Failed to initialize database pool: {e}")
    else:
        logger.warning("DATABASE_URL not set; queue and index store are unavailable")

    yield

    logger.info("Shutting down Archivist...")
    await close_db_pool()


def create_app() -> FastAPI:
    """Application factory."""
    app = FastAPI(
        title="Archivist",
        description="Bulk ingestion of archived content envelopes into the index store.",
        version=__version__,
        lifespan=lifespan,
    )

    setup_error_handlers(app)

    app.include_router(health_router)
    app.include_router(ingest_router)
    app.include_router(upload_router)

    return app


app = create_app()
