"""
Venue State - Transports Package.

============================================================
PURPOSE
============================================================
Event sources / command sinks the adapter can run on.

AVAILABLE TRANSPORTS:
- BitfinexTransport: Bitfinex v2 authenticated WebSocket
- MockTransport: In-memory, for testing

============================================================
"""

from .base import EventHandler, VenueTransport
from .bitfinex import BitfinexTransport, auth_message, decode_order, decode_ticker, decode_wallet
from .mock import MockTransport, MockTransportConfig
from .websocket_base import JsonWebSocket, SocketConfig, SocketState, backoff_delay


__all__ = [
    "EventHandler",
    "VenueTransport",
    "BitfinexTransport",
    "auth_message",
    "decode_order",
    "decode_ticker",
    "decode_wallet",
    "MockTransport",
    "MockTransportConfig",
    "JsonWebSocket",
    "SocketConfig",
    "SocketState",
    "backoff_delay",
]
