"""
Pairline session layer.

- SessionManager: lifecycle owner of the WhatsApp session
- EventBroadcaster: fan-out of lifecycle events to observers
- LifecycleEvent / SessionState / SessionStatus: the vocabulary
"""

from .broadcaster import EventBroadcaster, Observer, QueueObserver
from .events import QR_EVENT, STATUS_EVENT, LifecycleEvent, SessionState, SessionStatus
from .manager import SCAN_PROMPT, SessionManager

__all__ = [
    "EventBroadcaster",
    "LifecycleEvent",
    "Observer",
    "QR_EVENT",
    "QueueObserver",
    "SCAN_PROMPT",
    "STATUS_EVENT",
    "SessionManager",
    "SessionState",
    "SessionStatus",
]
