"""
Session lifecycle types for Pairline.

SessionState is the state machine's vocabulary; LifecycleEvent is what
gets broadcast to observers on each transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SessionState(str, Enum):
    """States of the process-wide WhatsApp session."""

    UNINITIALIZED = "uninitialized"
    PAIRING = "pairing"
    AUTHENTICATED = "authenticated"
    READY = "ready"

    # Degraded - teardown and re-init follow automatically
    AUTH_FAILED = "auth_failed"
    DISCONNECTED = "disconnected"

    @property
    def is_degraded(self) -> bool:
        return self in (SessionState.AUTH_FAILED, SessionState.DISCONNECTED)


# Event names on the observer stream
QR_EVENT = "wa-qr"
STATUS_EVENT = "wa-status"


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    """
    Immutable record of a session transition.

    Attributes:
        state: State the session entered
        status: Human-readable status ("Connected", "Disconnected", ...)
        challenge: Pairing code, for pairing events only
        detail: Auth failure message or disconnect reason
        identity: Paired account id, for the ready event only
    """

    state: SessionState
    status: str
    challenge: str | None = None
    detail: str | None = None
    identity: str | None = None

    @property
    def name(self) -> str:
        return QR_EVENT if self.challenge is not None else STATUS_EVENT

    def to_payload(self) -> dict[str, Any]:
        """Payload sent to observers for this event."""
        if self.challenge is not None:
            return {"qr": self.challenge}

        payload: dict[str, Any] = {"status": self.status}
        if self.state == SessionState.AUTH_FAILED and self.detail is not None:
            payload["message"] = self.detail
        elif self.state == SessionState.DISCONNECTED and self.detail is not None:
            payload["reason"] = self.detail
        if self.identity is not None:
            payload["user"] = self.identity
        return payload


@dataclass(frozen=True, slots=True)
class SessionStatus:
    """Snapshot returned by SessionManager.current_status()."""

    ready: bool
    identity: str | None = None
    state: SessionState = SessionState.UNINITIALIZED

    def to_dict(self) -> dict[str, Any]:
        if self.ready and self.identity:
            return {"status": "Connected", "user": self.identity}
        return {"status": "waiting"}
