"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from boxsync import __version__
from boxsync.api.errors import register_error_handlers
from boxsync.api.routes import (
    accounts_router,
    auth_router,
    health_router,
    jobs_router,
    sync_router,
)
from boxsync.config import get_settings
from boxsync.db import close_db, init_db
from boxsync.observability.logging import setup_logging
from boxsync.observability.metrics import setup_metrics
from boxsync.observability.tracing import instrument_fastapi, setup_tracing

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Set up observability and the status store for the API process."""
    setup_logging("api")
    setup_metrics()
    setup_tracing("api")
    await init_db()

    logger.info("API started", extra={"version": __version__})

    yield

    await close_db()
    logger.info("API shutdown")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: The configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="BoxSync API",
        description="Idempotent job queue and sync backend for on-site boxes",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(accounts_router)
    app.include_router(sync_router)
    app.include_router(jobs_router)

    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()

    uvicorn.run(
        "boxsync.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


app = create_app()


if __name__ == "__main__":
    run()
