"""
Dispatch Pipeline for Pairline.

Turns a caller's send request into a transport call:

    validate -> resolve address -> readiness gate -> send -> cleanup

The pipeline only reads session state. It never retries; transport
lifecycle problems are the SessionManager's business.

Attachment cleanup:
    send() deletes the upload after a successful delivery and leaves it
    on disk when delivery fails. send_invoice() deletes it either way.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from collections.abc import Awaitable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pairline.addressing import (
    SRI_LANKA,
    USER_SERVER,
    NumberingPlan,
    digits_only,
    resolve_address,
)
from pairline.errors import DispatchFailed, MissingDestination, MissingFile, SessionNotReady
from pairline.transports.protocol import MediaPayload, SendResult

if TYPE_CHECKING:
    from pairline.session.manager import SessionManager
    from pairline.transports.protocol import TransportAdapter

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPE = "application/octet-stream"
INVOICE_CAPTION = "Here is your invoice. Thank you for your business!"


@dataclass(frozen=True, slots=True)
class Attachment:
    """
    A transient upload waiting to be sent.

    Attributes:
        path: Where the upload layer stored the bytes
        filename: Display name shown to the recipient
        content_type: Media type declared by the uploader, if any
    """

    path: Path
    filename: str
    content_type: str | None = None

    @property
    def media_type(self) -> str:
        """Declared type, else guessed from the name, else generic binary."""
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.filename)
        return guessed or DEFAULT_MEDIA_TYPE


@dataclass(frozen=True, slots=True)
class SendRequest:
    """One caller-submitted message: text, document, or document with caption."""

    destination: str | None
    body: str | None = None
    attachment: Attachment | None = None


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """Successful delivery."""

    normalized_to: str
    status: str = "sent"
    file: str | None = None
    message_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"status": self.status, "normalizedTo": self.normalized_to}
        if self.file is not None:
            body["file"] = self.file
        return body


class DispatchPipeline:
    """
    Outbound message pipeline.

    Example:
        pipeline = DispatchPipeline(session_manager, send_timeout=60)
        result = await pipeline.send(
            SendRequest(destination="0771234567", body="Your order shipped")
        )
        result.normalized_to  # "94771234567"
    """

    def __init__(
        self,
        session: SessionManager,
        *,
        plan: NumberingPlan = SRI_LANKA,
        send_timeout: float | None = 60.0,
    ):
        """
        Initialize the pipeline.

        Args:
            session: The process-wide SessionManager
            plan: Numbering plan used to resolve destinations
            send_timeout: Seconds a transport call may take (None to wait forever)
        """
        self._session = session
        self._plan = plan
        self._send_timeout = send_timeout

    async def send(self, request: SendRequest) -> DispatchResult:
        """
        Deliver a text message or a document.

        Raises:
            MissingDestination: No destination given
            InvalidAddressFormat: Destination is not a valid number
            SessionNotReady: WhatsApp session is not connected
            DispatchFailed: The transport failed or timed out
        """
        if not request.destination or not str(request.destination).strip():
            raise MissingDestination()

        address = resolve_address(request.destination, self._plan)
        transport = self._require_transport()

        attachment = request.attachment
        if attachment is not None:
            logger.info(
                f"Sending document {attachment.filename!r} to {address.jid} "
                f"(caption={bool(request.body)})"
            )
            try:
                media = await self._load_media(attachment)
                result = await self._call(
                    transport.send_media(address.jid, media, caption=request.body or None)
                )
                self._raise_for_result(result)
            except DispatchFailed as e:
                logger.error(
                    f"Failed to send attachment to {address.jid}: {e.detail} "
                    f"(upload kept at {attachment.path})"
                )
                raise DispatchFailed(
                    e.detail,
                    normalized_to=address.number,
                    message="Failed to send attachment.",
                ) from e

            await self._discard(attachment)
            logger.info(f"Attachment sent to {address.jid}")
            return DispatchResult(
                normalized_to=address.number,
                file=attachment.filename,
                message_id=result.message_id,
            )

        logger.info(f"Sending text message to {address.jid}")
        try:
            result = await self._call(transport.send_text(address.jid, request.body or ""))
            self._raise_for_result(result)
        except DispatchFailed as e:
            logger.error(f"Failed to send message to {address.jid}: {e.detail}")
            raise DispatchFailed(e.detail, normalized_to=address.number) from e

        logger.info(f"Message sent to {address.jid}")
        return DispatchResult(normalized_to=address.number, message_id=result.message_id)

    async def send_invoice(
        self,
        mobile_number: str | None,
        attachment: Attachment | None,
    ) -> DispatchResult:
        """
        Deliver an invoice document with the standard caption.

        The number is only stripped to digits, without the numbering plan
        used by send(). Once the readiness gate is passed the upload is
        removed whether or not delivery succeeds.
        """
        required = "Mobile number and invoice file are required."
        if not mobile_number or not str(mobile_number).strip():
            raise MissingDestination(required)
        if attachment is None:
            raise MissingFile(required)

        number = digits_only(mobile_number)
        jid = f"{number}@{USER_SERVER}"
        logger.info(f"Attempting to send invoice to: {jid}")

        transport = self._require_transport(
            message="WhatsApp client not ready. Please wait for connection or scan QR code.",
            with_challenge=False,
        )

        try:
            media = await self._load_media(attachment)
            result = await self._call(transport.send_media(jid, media, caption=INVOICE_CAPTION))
            self._raise_for_result(result)
        except DispatchFailed as e:
            logger.error(f"Error sending invoice to {jid}: {e.detail}")
            raise DispatchFailed(e.detail, message="Failed to send invoice.") from e
        finally:
            await self._discard(attachment)

        logger.info(f"Invoice sent successfully to {jid}")
        return DispatchResult(normalized_to=number, file=attachment.filename, message_id=result.message_id)

    def _require_transport(
        self,
        message: str | None = None,
        with_challenge: bool = True,
    ) -> TransportAdapter:
        status = self._session.current_status()
        transport = self._session.transport
        if not status.ready or transport is None:
            challenge = self._session.pending_challenge() if with_challenge else None
            logger.warning(f"WhatsApp not ready (state={status.state.value}, qr={bool(challenge)})")
            raise SessionNotReady(message, challenge=challenge)
        return transport

    async def _call(self, send: Awaitable[SendResult]) -> SendResult:
        try:
            if self._send_timeout is None:
                return await send
            return await asyncio.wait_for(send, timeout=self._send_timeout)
        except asyncio.TimeoutError as e:
            raise DispatchFailed(f"Transport did not respond within {self._send_timeout}s") from e
        except Exception as e:
            raise DispatchFailed(str(e) or type(e).__name__) from e

    @staticmethod
    def _raise_for_result(result: SendResult) -> None:
        if not result.success:
            raise DispatchFailed(result.error or "Transport reported failure")

    @staticmethod
    async def _load_media(attachment: Attachment) -> MediaPayload:
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, attachment.path.read_bytes)
        except OSError as e:
            raise DispatchFailed(f"Could not read upload: {e}") from e
        logger.debug(f"Read {len(data)} bytes from {attachment.path}")
        return MediaPayload(mimetype=attachment.media_type, data=data, filename=attachment.filename)

    @staticmethod
    async def _discard(attachment: Attachment) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, lambda: attachment.path.unlink(missing_ok=True))
        except OSError as e:
            logger.warning(f"Could not remove upload {attachment.path}: {e}")
