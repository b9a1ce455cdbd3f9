"""
Pairline - WhatsApp document and message gateway

FastAPI application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pairline import __version__
from pairline.app.api import events_router, whatsapp_router
from pairline.app.dependencies import (
    get_session_manager,
    get_settings,
    initialize_services,
    shutdown_services,
)
from pairline.errors import GatewayError
from pairline.session import SessionManager

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting Pairline services...")
    try:
        await initialize_services()
        logger.info("Pairline services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise

    yield

    # Shutdown
    logger.info("Shutting down Pairline services...")
    try:
        await shutdown_services()
        logger.info("Pairline services shut down successfully")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Render caller-facing errors with their status code and JSON body."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.to_dict()}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(use_lifespan: bool = True) -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title="Pairline",
        description="Send WhatsApp messages and documents through a QR-paired session",
        version=__version__,
        lifespan=lifespan if use_lifespan else None,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    app.add_exception_handler(GatewayError, gateway_error_handler)

    app.include_router(whatsapp_router)
    app.include_router(events_router)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, str]:
        """Root endpoint with service info."""
        return {
            "service": settings.service_name,
            "version": __version__,
            "status": "running",
        }

    @app.get("/health", tags=["health"])
    async def health_check(
        session: SessionManager = Depends(get_session_manager),
    ) -> dict[str, Any]:
        """
        Health check endpoint.

        The service is healthy whenever it is up; WhatsApp readiness is
        reported separately since the session heals itself.
        """
        status = session.current_status()
        return {
            "status": "healthy",
            "whatsapp": {
                "state": status.state.value,
                "ready": status.ready,
                "reinit_pending": session.reinit_pending,
            },
            "observers": session.broadcaster.observer_count,
        }

    return app


app = create_app()


def run() -> None:
    """Console entry point."""
    import uvicorn

    logger.info(f"Server is running on http://{settings.host}:{settings.port}")
    uvicorn.run(
        "pairline.app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
