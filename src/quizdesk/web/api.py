"""FastAPI application factory.

Main entry point for the quizdesk Web API.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quizdesk import __version__
from quizdesk.config.app_config import load_app_config
from quizdesk.web.routes import health_router, portal_router, tabs_router
from quizdesk.web.tabs import get_tab_manager

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    config = load_app_config()
    logger.info(
        "api_startup",
        users_url=config.document_store.collection_url(),
        refresh_interval=config.sync.refresh_interval,
    )
    yield
    await get_tab_manager().shutdown()
    logger.info("api_shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="quizdesk API",
        description="Teacher and content-creator portal backend",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware for web clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(tabs_router)
    app.include_router(portal_router)

    return app


# Default app instance for uvicorn
app = create_app()
