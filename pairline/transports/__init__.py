"""
Pairline Transport Layer.

Adapters between the SessionManager and the external WhatsApp
automation engine.

Core Components:
- TransportAdapter: Protocol every adapter implements
- TransportEvent: Lifecycle signal reported by an adapter
- MediaPayload: Document bytes with media type and display name
- SendResult: Result of a send call

Built-in Transports:
- BridgeTransport: HTTP WhatsApp Web automation bridge

Adding New Transports:
    1. Create a class implementing the TransportAdapter protocol
    2. Report lifecycle changes through the emitter passed to start()
    3. Hand a zero-argument factory to SessionManager
"""

from .bridge import BridgeTransport, create_bridge_transport
from .protocol import (
    EventEmitter,
    MediaPayload,
    SendResult,
    TransportAdapter,
    TransportEvent,
    TransportEventKind,
    TransportFactory,
)

__all__ = [
    # Protocol
    "EventEmitter",
    "MediaPayload",
    "SendResult",
    "TransportAdapter",
    "TransportEvent",
    "TransportEventKind",
    "TransportFactory",
    # Implementations
    "BridgeTransport",
    "create_bridge_transport",
]
