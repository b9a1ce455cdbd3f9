"""Pairline HTTP routers."""

from .events import router as events_router
from .whatsapp import router as whatsapp_router

__all__ = ["events_router", "whatsapp_router"]
