"""
Tests for the WhatsApp bridge transport.

Uses httpx.MockTransport in place of a running bridge.
"""

import base64
import json

import httpx
import pytest

from fakes import wait_until
from pairline.errors import TransportFatal
from pairline.transports import (
    BridgeTransport,
    MediaPayload,
    TransportAdapter,
    TransportEventKind,
    create_bridge_transport,
)


class FakeBridge:
    """Request recorder and canned responses for one bridge session."""

    def __init__(self, events=(), start_status=200, send_status=200, events_error=None):
        self.events = list(events)
        self.start_status = start_status
        self.send_status = send_status
        self.events_error = events_error
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/start"):
            return httpx.Response(self.start_status, json={"ok": self.start_status == 200})
        if path.endswith("/events"):
            if self.events_error is not None:
                raise self.events_error
            body = "\n".join(
                line if isinstance(line, str) else json.dumps(line) for line in self.events
            )
            return httpx.Response(200, content=(body + "\n").encode())
        if path.endswith("/messages") or path.endswith("/media"):
            if self.send_status != 200:
                return httpx.Response(self.send_status, text="chat not found")
            return httpx.Response(200, json={"id": "true_94771234567@c.us_3EB0"})
        if path.endswith("/stop"):
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(404)

    def transport(self, **kwargs):
        return BridgeTransport(
            base_url="http://bridge.test/",
            client_id="inventory-wa",
            http_transport=httpx.MockTransport(self.handler),
            **kwargs,
        )

    def paths(self):
        return [(r.method, r.url.path) for r in self.requests]

    def last_json(self):
        return json.loads(self.requests[-1].content)


# =============================================================================
# Lifecycle Events
# =============================================================================


class TestEventStream:
    """Tests for forwarding bridge events."""

    @pytest.mark.asyncio
    async def test_forwards_events_then_reports_closed_stream(self):
        bridge = FakeBridge(
            events=[
                {"event": "qr", "qr": "2@abc"},
                {"event": "authenticated"},
                {"event": "ready", "wid": {"user": "94771234567", "server": "c.us"}},
            ]
        )
        transport = bridge.transport()
        received = []

        await transport.start(received.append)
        await wait_until(lambda: len(received) == 4)

        kinds = [e.kind for e in received]
        assert kinds == [
            TransportEventKind.QR,
            TransportEventKind.AUTHENTICATED,
            TransportEventKind.READY,
            TransportEventKind.DISCONNECTED,
        ]
        assert received[0].challenge == "2@abc"
        assert received[2].identity == "94771234567@c.us"
        assert received[3].detail == "event stream closed"
        assert ("POST", "/sessions/inventory-wa/start") in bridge.paths()
        assert ("GET", "/sessions/inventory-wa/events") in bridge.paths()

        await transport.stop()

    @pytest.mark.asyncio
    async def test_terminal_event_ends_stream(self):
        bridge = FakeBridge(
            events=[
                {"event": "auth_failure", "message": "restore failed"},
                {"event": "qr", "qr": "never-forwarded"},
            ]
        )
        transport = bridge.transport()
        received = []

        await transport.start(received.append)
        await wait_until(lambda: len(received) >= 1)
        await transport.stop()

        assert len(received) == 1
        assert received[0].kind == TransportEventKind.AUTH_FAILURE
        assert received[0].detail == "restore failed"

    @pytest.mark.asyncio
    async def test_serialized_wid(self):
        bridge = FakeBridge(
            events=[
                {"event": "ready", "wid": {"_serialized": "94771234567@c.us"}},
                {"event": "disconnected", "reason": "NAVIGATION"},
            ]
        )
        transport = bridge.transport()
        received = []

        await transport.start(received.append)
        await wait_until(lambda: len(received) == 2)
        await transport.stop()

        assert received[0].identity == "94771234567@c.us"
        assert received[1].detail == "NAVIGATION"

    @pytest.mark.asyncio
    async def test_skips_malformed_and_unknown_lines(self):
        bridge = FakeBridge(
            events=[
                "not json",
                "",
                {"event": "loading_screen", "percent": 50},
                ["a", "list"],
                {"event": "qr", "qr": "2@abc"},
            ]
        )
        transport = bridge.transport()
        received = []

        await transport.start(received.append)
        await wait_until(lambda: len(received) == 2)
        await transport.stop()

        assert received[0].kind == TransportEventKind.QR
        assert received[1].kind == TransportEventKind.DISCONNECTED

    @pytest.mark.asyncio
    async def test_stream_error_reported_as_disconnect(self):
        bridge = FakeBridge(events_error=httpx.ConnectError("connection refused"))
        transport = bridge.transport()
        received = []

        await transport.start(received.append)
        await wait_until(lambda: len(received) == 1)
        await transport.stop()

        assert received[0].kind == TransportEventKind.DISCONNECTED
        assert received[0].detail.startswith("event stream error:")


# =============================================================================
# Start / Stop
# =============================================================================


class TestStartStop:
    """Tests for session start and shutdown."""

    @pytest.mark.asyncio
    async def test_start_failure_is_fatal(self):
        bridge = FakeBridge(start_status=500)
        transport = bridge.transport()

        with pytest.raises(TransportFatal):
            await transport.start(lambda event: None)

        assert not transport.is_running

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self):
        bridge = FakeBridge(events=[{"event": "qr", "qr": "2@abc"}])
        transport = bridge.transport()
        received = []

        await transport.start(received.append)
        await transport.start(received.append)
        await wait_until(lambda: len(received) == 2)
        await transport.stop()

        starts = [p for p in bridge.paths() if p[1].endswith("/start")]
        assert len(starts) == 1

    @pytest.mark.asyncio
    async def test_stop_posts_and_is_idempotent(self):
        bridge = FakeBridge(events=[{"event": "qr", "qr": "2@abc"}])
        transport = bridge.transport()

        await transport.start(lambda event: None)
        assert transport.is_running

        await transport.stop()
        await transport.stop()

        stops = [p for p in bridge.paths() if p[1].endswith("/stop")]
        assert stops == [("POST", "/sessions/inventory-wa/stop")]
        assert not transport.is_running

    @pytest.mark.asyncio
    async def test_stop_before_start(self):
        bridge = FakeBridge()
        transport = bridge.transport()

        await transport.stop()

        assert bridge.requests == []

    @pytest.mark.asyncio
    async def test_bearer_secret_sent(self):
        bridge = FakeBridge(events=[{"event": "qr", "qr": "2@abc"}])
        transport = bridge.transport(secret="s3cret")

        await transport.start(lambda event: None)
        await transport.stop()

        assert bridge.requests[0].headers["authorization"] == "Bearer s3cret"


# =============================================================================
# Sending
# =============================================================================


class TestSending:
    """Tests for send_text and send_media."""

    @pytest.mark.asyncio
    async def test_send_text(self):
        bridge = FakeBridge(events=[{"event": "qr", "qr": "2@abc"}])
        transport = bridge.transport()
        await transport.start(lambda event: None)

        result = await transport.send_text("94771234567@s.whatsapp.net", "Hello")
        payload = bridge.last_json()
        path = bridge.requests[-1].url.path
        await transport.stop()

        assert result.success
        assert result.message_id == "true_94771234567@c.us_3EB0"
        assert path == "/sessions/inventory-wa/messages"
        assert payload == {"chatId": "94771234567@s.whatsapp.net", "content": "Hello"}

    @pytest.mark.asyncio
    async def test_send_media_with_caption(self):
        bridge = FakeBridge(events=[{"event": "qr", "qr": "2@abc"}])
        transport = bridge.transport()
        await transport.start(lambda event: None)

        media = MediaPayload(mimetype="application/pdf", data=b"%PDF", filename="INV-1.pdf")
        result = await transport.send_media("94771234567@s.whatsapp.net", media, caption="Invoice")
        payload = bridge.last_json()
        await transport.stop()

        assert result.success
        assert payload["chatId"] == "94771234567@s.whatsapp.net"
        assert payload["caption"] == "Invoice"
        assert payload["media"]["mimetype"] == "application/pdf"
        assert payload["media"]["filename"] == "INV-1.pdf"
        assert base64.b64decode(payload["media"]["data"]) == b"%PDF"

    @pytest.mark.asyncio
    async def test_send_media_without_caption(self):
        bridge = FakeBridge(events=[{"event": "qr", "qr": "2@abc"}])
        transport = bridge.transport()
        await transport.start(lambda event: None)

        media = MediaPayload(mimetype="application/pdf", data=b"%PDF", filename="INV-1.pdf")
        await transport.send_media("94771234567@s.whatsapp.net", media)
        payload = bridge.last_json()
        await transport.stop()

        assert "caption" not in payload

    @pytest.mark.asyncio
    async def test_rejected_send(self):
        bridge = FakeBridge(events=[{"event": "qr", "qr": "2@abc"}], send_status=500)
        transport = bridge.transport()
        await transport.start(lambda event: None)

        result = await transport.send_text("94771234567@s.whatsapp.net", "Hello")
        await transport.stop()

        assert not result.success
        assert result.error == "chat not found"

    @pytest.mark.asyncio
    async def test_send_before_start(self):
        transport = FakeBridge().transport()

        result = await transport.send_text("94771234567@s.whatsapp.net", "Hello")

        assert not result.success
        assert result.error == "bridge session is not running"


class TestFactory:
    """Tests for create_bridge_transport."""

    def test_creates_adapter(self):
        transport = create_bridge_transport("http://localhost:3001", "inventory-wa", secret="x")

        assert isinstance(transport, BridgeTransport)
        assert isinstance(transport, TransportAdapter)
        assert transport.client_id == "inventory-wa"
        assert not transport.is_running
