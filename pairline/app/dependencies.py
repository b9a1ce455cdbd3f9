"""
Dependency Injection for Pairline.

Provides the singleton SessionManager, EventBroadcaster and
DispatchPipeline. Routes receive them through FastAPI `Depends`, so
tests can swap them with `app.dependency_overrides`.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Optional

from pairline.addressing import NumberingPlan
from pairline.config import AppSettings
from pairline.dispatch import DispatchPipeline
from pairline.session import EventBroadcaster, SessionManager
from pairline.transports import TransportFactory, create_bridge_transport

logger = logging.getLogger(__name__)


def _first_env(*names: str, default: str | None = None) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern. PORT/IP (and their NODEJS_
    variants set by shared hosting panels) control the listener.
    """
    return AppSettings(
        # Service
        service_name=os.getenv("PAIRLINE_SERVICE_NAME", "pairline"),
        environment=os.getenv("PAIRLINE_ENVIRONMENT", "development"),
        debug=os.getenv("PAIRLINE_DEBUG", "false").lower() == "true",
        log_level=os.getenv("PAIRLINE_LOG_LEVEL", "INFO").upper(),
        # Listener
        host=_first_env("IP", "NODEJS_IP", default="localhost"),
        port=_first_env("PORT", "NODEJS_PORT", default="3000"),
        # Bridge
        bridge_url=os.getenv("PAIRLINE_BRIDGE_URL", "http://localhost:3001"),
        bridge_secret=os.getenv("PAIRLINE_BRIDGE_SECRET", ""),
        bridge_timeout=os.getenv("PAIRLINE_BRIDGE_TIMEOUT", "30"),
        client_id=os.getenv("PAIRLINE_CLIENT_ID", "inventory-wa"),
        session_dir=os.getenv("PAIRLINE_SESSION_DIR", ".wwebjs_auth/session-inventory-wa"),
        # Addressing
        country_code=os.getenv("PAIRLINE_COUNTRY_CODE", "94"),
        # Recovery
        reinit_delay=os.getenv("PAIRLINE_REINIT_DELAY", "2.0"),
        reset_delay=os.getenv("PAIRLINE_RESET_DELAY", "1.0"),
        max_reinit_attempts=os.getenv("PAIRLINE_MAX_REINIT_ATTEMPTS") or None,
        # Dispatch
        send_timeout=os.getenv("PAIRLINE_SEND_TIMEOUT", "60"),
        # Uploads
        upload_dir=os.getenv("PAIRLINE_UPLOAD_DIR", "uploads"),
        max_upload_bytes=os.getenv("PAIRLINE_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)),
    )


# Global instances (initialized on first access)
_broadcaster: Optional[EventBroadcaster] = None
_session_manager: Optional[SessionManager] = None
_pipeline: Optional[DispatchPipeline] = None


def build_transport_factory(settings: AppSettings) -> TransportFactory:
    """Factory handed to the SessionManager; one bridge session per call."""
    secret = settings.bridge_secret.get_secret_value() or None

    def factory():
        return create_bridge_transport(
            base_url=settings.bridge_url,
            client_id=settings.client_id,
            secret=secret,
            timeout=settings.bridge_timeout,
        )

    return factory


def get_broadcaster() -> EventBroadcaster:
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = EventBroadcaster()
    return _broadcaster


def get_session_manager() -> SessionManager:
    """
    Get the process-wide SessionManager.

    Created on first call; started by initialize_services().
    """
    global _session_manager
    if _session_manager is None:
        settings = get_settings()
        _session_manager = SessionManager(
            transport_factory=build_transport_factory(settings),
            broadcaster=get_broadcaster(),
            session_dir=settings.session_dir,
            reinit_delay=settings.reinit_delay,
            reset_delay=settings.reset_delay,
            max_reinit_attempts=settings.max_reinit_attempts,
        )
    return _session_manager


def get_dispatch_pipeline() -> DispatchPipeline:
    global _pipeline
    if _pipeline is None:
        settings = get_settings()
        _pipeline = DispatchPipeline(
            get_session_manager(),
            plan=NumberingPlan(country_code=settings.country_code),
            send_timeout=settings.send_timeout,
        )
    return _pipeline


async def initialize_services() -> None:
    """
    Initialize all services on application startup.

    Called from FastAPI lifespan. A bridge that is down does not fail
    startup; the SessionManager keeps retrying in the background.
    """
    settings = get_settings()
    os.makedirs(settings.upload_dir, exist_ok=True)

    get_dispatch_pipeline()
    await get_session_manager().start()
    logger.info("Waiting for WhatsApp connection. Scan QR code if prompted.")


async def shutdown_services() -> None:
    """
    Cleanup all services on application shutdown.

    Called from FastAPI lifespan.
    """
    global _session_manager, _pipeline, _broadcaster
    if _session_manager:
        await _session_manager.stop()
    _session_manager = None
    _pipeline = None
    if _broadcaster:
        _broadcaster.clear()
    _broadcaster = None
