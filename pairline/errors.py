"""
Error taxonomy for Pairline.

Every error a caller can observe derives from GatewayError and knows
the HTTP status and JSON body it maps to. TransportFatal is the odd one
out: it is raised by transports and absorbed by the SessionManager.
"""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base exception for caller-facing gateway errors."""

    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message}


class InvalidAddressFormat(GatewayError):
    """Raised when a phone number does not match the numbering plan."""

    status_code = 400

    def __init__(
        self,
        raw: str,
        normalized: str = "",
        message: str = (
            "Invalid phone number format. Please enter a valid Sri Lankan number "
            "(e.g., 0771234567 or 771234567)."
        ),
    ):
        super().__init__(message)
        self.raw = raw
        self.normalized = normalized

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "input": self.raw, "normalized": self.normalized}


class MissingDestination(GatewayError):
    """Raised when a send request has no destination."""

    status_code = 400

    def __init__(self, message: str = "Recipient number is required."):
        super().__init__(message)


class MissingFile(GatewayError):
    """Raised when an endpoint that requires an attachment gets none."""

    status_code = 400

    def __init__(self, message: str = "File is required."):
        super().__init__(message)


class UploadTooLarge(GatewayError):
    """Raised when an uploaded file exceeds the configured size limit."""

    status_code = 413

    def __init__(self, limit_bytes: int, message: str = "File upload failed."):
        super().__init__(message)
        self.limit_bytes = limit_bytes


class SessionNotReady(GatewayError):
    """
    Raised when a send is attempted while the session is not ready.

    Carries the pending pairing challenge, when there is one, so the
    caller can prompt the user to scan it.
    """

    status_code = 503

    def __init__(self, message: str | None = None, *, challenge: str | None = None):
        if message is None:
            message = (
                "WhatsApp not connected. Scan QR to reconnect."
                if challenge
                else "WhatsApp not connected and no QR available."
            )
        super().__init__(message)
        self.challenge = challenge

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.challenge:
            body["qr"] = self.challenge
        return body


class DispatchFailed(GatewayError):
    """Raised when the transport fails to deliver a message."""

    status_code = 500

    def __init__(
        self,
        detail: str,
        *,
        normalized_to: str | None = None,
        message: str = "Failed to send message.",
    ):
        super().__init__(message)
        self.detail = detail
        self.normalized_to = normalized_to

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "details": self.detail}
        if self.normalized_to is not None:
            body["normalizedTo"] = self.normalized_to
        return body


class TransportFatal(Exception):
    """
    Raised by a transport when its link cannot be established or is lost.

    Never surfaced to HTTP callers; the SessionManager turns it into a
    purge and a scheduled re-initialization.
    """

    def __init__(self, message: str, *, reason: str | None = None):
        super().__init__(message)
        self.reason = reason or message
