"""
Pairline - an HTTP gateway for sending WhatsApp messages and documents.

Pairline keeps one device-linked WhatsApp session alive and lets other
services push text messages and documents through it:

- **Session lifecycle**: QR pairing, readiness, automatic recovery from
  credential failures and disconnects, manual reset
- **Dispatch pipeline**: address normalization, readiness gating,
  document/text delivery with upload cleanup
- **Event stream**: pairing codes and status changes pushed to dashboards
- **Transport layer**: the WhatsApp automation engine behind a small
  adapter protocol

Quick Start:
    >>> from pairline import DispatchPipeline, SendRequest, SessionManager
    >>> manager = SessionManager(transport_factory=make_transport)
    >>> await manager.start()
    >>> pipeline = DispatchPipeline(manager)
    >>> await pipeline.send(SendRequest(destination="0771234567", body="Hi"))
"""

__version__ = "0.1.0"
__license__ = "MIT"

from pairline.addressing import CanonicalAddress, NumberingPlan, normalize_number, resolve_address
from pairline.dispatch import Attachment, DispatchPipeline, DispatchResult, SendRequest
from pairline.session import EventBroadcaster, LifecycleEvent, SessionManager, SessionState

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Addressing
    "CanonicalAddress",
    "NumberingPlan",
    "normalize_number",
    "resolve_address",
    # Session
    "EventBroadcaster",
    "LifecycleEvent",
    "SessionManager",
    "SessionState",
    # Dispatch
    "Attachment",
    "DispatchPipeline",
    "DispatchResult",
    "SendRequest",
]
