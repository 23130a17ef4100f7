"""
Main FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.v1 import v1_router
from .config.settings import Settings, get_settings
from .core.container import ServiceContainer, build_container
from .core.logging import configure_logging

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Application settings, loaded from the environment when omitted
        container: Prebuilt service container, built from settings when omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    configure_logging(settings)
    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(
            "Starting Authenticity Verification Service",
            version=__version__,
            environment=settings.app_env,
            debug_mode=settings.app_debug
        )
        await container.start(create_schema=settings.app_env != "production")

        yield

        logger.info("Shutting down Authenticity Verification Service")
        await container.stop()

    app = FastAPI(
        title="Authenticity Verification API",
        description="QR-code product authenticity verification with risk scoring and audit ledger",
        version=__version__,
        lifespan=lifespan
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(v1_router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Authenticity Verification API",
            "version": __version__,
            "status": "operational",
            "docs": "/docs"
        }

    return app


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.api_host, port=settings.api_port, reload=False)


if __name__ == "__main__":
    run()
