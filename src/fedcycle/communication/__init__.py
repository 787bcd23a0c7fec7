"""Communication module for coordinator transports

Provides:
- Transport capability interface
- HTTP request/response transport (production)
- Signalling channel transport over a duplex connection
- In-memory signalling channel for simulation and tests
"""

from fedcycle.communication.message import Message, MessageType
from fedcycle.communication.channel import (
    SignallingChannel,
    InMemorySignallingChannel,
    Subscription,
)
from fedcycle.communication.transport import Transport, ArtifactSource
from fedcycle.communication.http_transport import HTTPTransport
from fedcycle.communication.socket_transport import SignallingTransport

__all__ = [
    # Message types
    'Message',
    'MessageType',
    # Channels
    'SignallingChannel',
    'InMemorySignallingChannel',
    'Subscription',
    # Transports
    'Transport',
    'ArtifactSource',
    'HTTPTransport',
    'SignallingTransport',
]
