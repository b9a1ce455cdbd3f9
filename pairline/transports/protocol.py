"""
Transport Adapter Protocol for Pairline.

Defines the contract between the SessionManager and the external
WhatsApp automation engine. The engine is opaque: the adapter reports
lifecycle events through an emitter and exposes two send operations.

Lifecycle events flow one way, adapter -> SessionManager, as
TransportEvent values. The adapter never mutates session state itself.
"""

from __future__ import annotations

import base64
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable


class TransportEventKind(str, Enum):
    """Lifecycle signals a transport can report."""

    QR = "qr"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True, slots=True)
class TransportEvent:
    """
    A lifecycle signal from the transport.

    Attributes:
        kind: What happened
        challenge: Pairing code (QR payload) for QR events
        identity: Paired account id for READY events
        detail: Failure message or disconnect reason
    """

    kind: TransportEventKind
    challenge: str | None = None
    identity: str | None = None
    detail: str | None = None

    @classmethod
    def qr(cls, challenge: str) -> TransportEvent:
        return cls(TransportEventKind.QR, challenge=challenge)

    @classmethod
    def authenticated(cls) -> TransportEvent:
        return cls(TransportEventKind.AUTHENTICATED)

    @classmethod
    def ready(cls, identity: str | None = None) -> TransportEvent:
        return cls(TransportEventKind.READY, identity=identity)

    @classmethod
    def auth_failure(cls, detail: str | None = None) -> TransportEvent:
        return cls(TransportEventKind.AUTH_FAILURE, detail=detail)

    @classmethod
    def disconnected(cls, reason: str | None = None) -> TransportEvent:
        return cls(TransportEventKind.DISCONNECTED, detail=reason)


EventEmitter = Callable[[TransportEvent], None]


@dataclass(frozen=True, slots=True)
class MediaPayload:
    """A document to deliver: raw bytes plus media type and display name."""

    mimetype: str
    data: bytes
    filename: str

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


@dataclass(frozen=True, slots=True)
class SendResult:
    """
    Result of sending a message via transport.

    Attributes:
        success: Whether the message was sent successfully
        message_id: Platform-specific message identifier (if available)
        error: Error message if sending failed
    """

    success: bool
    message_id: str | None = None
    error: str | None = None


@runtime_checkable
class TransportAdapter(Protocol):
    """
    Outbound transport for a single device-linked session.

    Lifecycle:
        1. SessionManager builds a fresh adapter through its factory
        2. start(emit) begins pairing; events arrive via emit()
        3. send_text()/send_media() are used once READY was emitted
        4. stop() releases every resource the adapter holds

    Implementations must tolerate stop() being called at any point,
    including before start() finished, and more than once.
    """

    async def start(self, emit: EventEmitter) -> None:
        """
        Start the session.

        Raises:
            TransportFatal: If the engine cannot be reached at all
        """
        ...

    async def stop(self) -> None:
        """Tear the session down. Must not raise."""
        ...

    async def send_text(self, address: str, body: str) -> SendResult:
        """Send a plain text message to a chat id."""
        ...

    async def send_media(
        self,
        address: str,
        media: MediaPayload,
        caption: str | None = None,
    ) -> SendResult:
        """Send a document with an optional caption to a chat id."""
        ...


TransportFactory = Callable[[], TransportAdapter]
