"""
WhatsApp Bridge Transport for Pairline.

Talks to a WhatsApp Web automation bridge: a companion process that
drives the headless browser, holds the linked-device credentials and
exposes a small HTTP API per named session. Pairline never touches the
browser or the QR cryptography itself.

Bridge API (all paths relative to /sessions/{client_id}):
    POST /start     Launch (or resume) the browser session
    GET  /events    Newline-delimited JSON lifecycle events, one per line:
                        {"event": "qr", "qr": "<code>"}
                        {"event": "authenticated"}
                        {"event": "ready", "wid": "<id>" | {...}}
                        {"event": "auth_failure", "message": "<msg>"}
                        {"event": "disconnected", "reason": "<reason>"}
    POST /messages  {"chatId", "content"} -> {"id"}
    POST /media     {"chatId", "media": {"mimetype", "data", "filename"},
                     "caption"} -> {"id"}
    POST /stop      Close the browser session

Example:
    transport = BridgeTransport(
        base_url="http://localhost:3001",
        client_id="inventory-wa",
    )
    await transport.start(emit)
    result = await transport.send_text("94771234567@s.whatsapp.net", "Hi")
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any

import httpx

from pairline.errors import TransportFatal

from .protocol import EventEmitter, MediaPayload, SendResult, TransportEvent, TransportEventKind

logger = logging.getLogger(__name__)

_TERMINAL_EVENTS = {TransportEventKind.AUTH_FAILURE, TransportEventKind.DISCONNECTED}


class BridgeTransport:
    """
    Transport adapter backed by an HTTP WhatsApp automation bridge.

    One instance maps to one browser session. The SessionManager builds a
    new instance for every (re)initialization and stops the old one first.
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        *,
        secret: str | None = None,
        timeout: float = 30.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize bridge transport.

        Args:
            base_url: Bridge root URL
            client_id: Session name on the bridge
            secret: Optional bearer token the bridge expects
            timeout: Timeout for non-streaming bridge calls
            http_transport: Custom httpx transport (tests use MockTransport)
        """
        self._base_url = base_url.rstrip("/")
        self._client_id = client_id
        self._secret = secret
        self._timeout = timeout
        self._http_transport = http_transport

        self._client: httpx.AsyncClient | None = None
        self._reader: asyncio.Task[None] | None = None
        self._stopping = False

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def is_running(self) -> bool:
        return self._client is not None and not self._stopping

    def _path(self, action: str) -> str:
        return f"/sessions/{self._client_id}/{action}"

    def _headers(self) -> dict[str, str]:
        if self._secret:
            return {"Authorization": f"Bearer {self._secret}"}
        return {}

    async def start(self, emit: EventEmitter) -> None:
        if self._client is not None:
            logger.debug(f"[bridge:{self._client_id}] start() called twice, ignoring")
            return

        self._stopping = False
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers(),
            timeout=self._timeout,
            transport=self._http_transport,
        )

        try:
            response = await self._client.post(self._path("start"), json={"headless": True})
            response.raise_for_status()
        except httpx.HTTPError as e:
            await self._close_client()
            raise TransportFatal(f"Bridge session start failed: {e}", reason=str(e)) from e

        logger.info(f"[bridge:{self._client_id}] Session started on {self._base_url}")
        self._reader = asyncio.create_task(
            self._read_events(emit),
            name=f"bridge-events-{self._client_id}",
        )

    async def stop(self) -> None:
        if self._client is None:
            return
        self._stopping = True

        if self._reader is not None:
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
            self._reader = None

        try:
            await self._client.post(self._path("stop"))
        except httpx.HTTPError as e:
            logger.warning(f"[bridge:{self._client_id}] Stop request failed: {e}")

        await self._close_client()
        logger.info(f"[bridge:{self._client_id}] Session stopped")

    async def send_text(self, address: str, body: str) -> SendResult:
        return await self._post_message(
            "messages",
            {"chatId": address, "content": body},
        )

    async def send_media(
        self,
        address: str,
        media: MediaPayload,
        caption: str | None = None,
    ) -> SendResult:
        payload: dict[str, Any] = {
            "chatId": address,
            "media": {
                "mimetype": media.mimetype,
                "data": media.to_base64(),
                "filename": media.filename,
            },
        }
        if caption:
            payload["caption"] = caption
        return await self._post_message("media", payload)

    async def _post_message(self, action: str, payload: dict[str, Any]) -> SendResult:
        if self._client is None or self._stopping:
            return SendResult(success=False, error="bridge session is not running")

        try:
            response = await self._client.post(self._path(action), json=payload)
            response.raise_for_status()
            data = response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            detail = e.response.text or str(e)
            logger.error(f"[bridge:{self._client_id}] {action} rejected: {detail}")
            return SendResult(success=False, error=detail)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[bridge:{self._client_id}] {action} failed: {e}", exc_info=True)
            return SendResult(success=False, error=str(e))

        message_id = data.get("id") if isinstance(data, dict) else None
        return SendResult(success=True, message_id=str(message_id) if message_id else None)

    async def _read_events(self, emit: EventEmitter) -> None:
        """Forward bridge events to the emitter until the stream ends."""
        assert self._client is not None
        reason = "event stream closed"

        try:
            async with self._client.stream(
                "GET",
                self._path("events"),
                timeout=httpx.Timeout(self._timeout, read=None),
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    event = self._parse_event(line)
                    if event is None:
                        continue
                    emit(event)
                    if event.kind in _TERMINAL_EVENTS:
                        return
        except httpx.HTTPError as e:
            reason = f"event stream error: {e}"

        if not self._stopping:
            logger.warning(f"[bridge:{self._client_id}] {reason}")
            emit(TransportEvent.disconnected(reason))

    def _parse_event(self, line: str) -> TransportEvent | None:
        line = line.strip()
        if not line:
            return None

        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.warning(f"[bridge:{self._client_id}] Ignoring malformed event: {line[:80]}")
            return None

        name = data.get("event") if isinstance(data, dict) else None
        if name == "qr":
            return TransportEvent.qr(str(data.get("qr") or ""))
        if name == "authenticated":
            return TransportEvent.authenticated()
        if name == "ready":
            return TransportEvent.ready(_identity_from_wid(data.get("wid")))
        if name == "auth_failure":
            return TransportEvent.auth_failure(data.get("message"))
        if name == "disconnected":
            return TransportEvent.disconnected(data.get("reason"))

        logger.debug(f"[bridge:{self._client_id}] Unknown event: {name}")
        return None

    async def _close_client(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def _identity_from_wid(wid: Any) -> str | None:
    """Accept a serialized wid string or the bridge's {user, server} object."""
    if wid is None:
        return None
    if isinstance(wid, dict):
        if wid.get("_serialized"):
            return str(wid["_serialized"])
        user = wid.get("user")
        server = wid.get("server")
        if user and server:
            return f"{user}@{server}"
        return str(user) if user else None
    return str(wid)


def create_bridge_transport(
    base_url: str,
    client_id: str,
    secret: str | None = None,
    timeout: float = 30.0,
) -> BridgeTransport:
    """
    Factory function for creating BridgeTransport.

    Convenience function for configuration-driven setup.
    """
    return BridgeTransport(
        base_url=base_url,
        client_id=client_id,
        secret=secret,
        timeout=timeout,
    )
