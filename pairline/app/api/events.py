"""
Lifecycle event stream for Pairline.

Observers (dashboards waiting for a QR code) connect to /wa-events and
receive Server-Sent Events:

    event: wa-qr       data: {"qr": "<code>"}
    event: wa-status   data: {"status": "Connected", "user": "..."}

A new connection gets the pending QR code, if any, straight away.
"""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator, Dict

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from pairline.app.dependencies import get_session_manager
from pairline.session import QueueObserver, SessionManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])

PING_SECONDS = 15


async def stream_events(
    session: SessionManager,
    observer: QueueObserver,
) -> AsyncGenerator[Dict[str, Any], None]:
    """Yield SSE messages for one observer until the client goes away."""
    session.subscribe(observer)
    logger.info("Event stream observer connected")
    try:
        while True:
            event = await observer.next_event()
            yield {"event": event.name, "data": json.dumps(event.to_payload())}
    finally:
        session.unsubscribe(observer)
        logger.info("Event stream observer disconnected")


@router.get("/wa-events", summary="Stream session lifecycle events (SSE)")
async def wa_events(session: SessionManager = Depends(get_session_manager)) -> EventSourceResponse:
    return EventSourceResponse(stream_events(session, QueueObserver()), ping=PING_SECONDS)
