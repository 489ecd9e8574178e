"""
Venue Transport - Base.

============================================================
PURPOSE
============================================================
Abstract interface between the state adapter and a venue
connection.

A transport is both:
- an EVENT SOURCE: pushes (EventKind, payload) pairs into the
  handler registered with set_event_handler()
- a COMMAND SINK: subscriptions, wallet recalculation requests,
  order submission and cancellation

Payloads follow the input schema documented in normalizer.py.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.exceptions import TransportError

from ..types import EventKind, OrderSpec


logger = logging.getLogger(__name__)


EventHandler = Callable[[EventKind, Any], Awaitable[None]]


class VenueTransport(ABC):
    """
    Abstract venue transport.

    Implementations:
    - BitfinexTransport: Bitfinex v2 authenticated WebSocket
    - MockTransport: In-memory, for testing
    """

    def __init__(self):
        self._event_handler: Optional[EventHandler] = None

    def set_event_handler(self, handler: EventHandler) -> None:
        """Register the single consumer of transport events."""
        self._event_handler = handler

    async def emit(self, kind: EventKind, payload: Any = None) -> None:
        """Deliver one event to the registered handler."""
        if self._event_handler is None:
            logger.warning(f"Dropping {kind.value} event: no handler registered")
            return
        await self._event_handler(kind, payload)

    @property
    @abstractmethod
    def is_authenticated(self) -> bool:
        """Whether the current connection is authenticated."""
        pass

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    @abstractmethod
    async def open(self) -> None:
        """
        Open the connection and start authenticating.

        Authentication success is reported as an AUTHENTICATED event,
        not by this call returning.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""
        pass

    # --------------------------------------------------------
    # COMMANDS
    # --------------------------------------------------------

    @abstractmethod
    async def subscribe_ticker(self, symbol: str) -> None:
        """Subscribe to ticker updates for a symbol."""
        pass

    @abstractmethod
    async def request_calculation(self, keys: List[str]) -> None:
        """Ask the venue to recalculate wallet / margin values."""
        pass

    @abstractmethod
    async def submit_order(self, spec: OrderSpec) -> Dict[str, Any]:
        """
        Submit an order and wait for the venue to accept it.

        Returns:
            The accepted order as an order mapping

        Raises:
            TransportError: If the venue rejects the order or does
                not answer in time
        """
        pass

    @abstractmethod
    async def cancel_order(self, order_id: Any) -> Dict[str, Any]:
        """
        Cancel an order and wait for the acknowledgement.

        Raises:
            TransportError: If the cancel is rejected or times out
        """
        pass


__all__ = [
    "EventHandler",
    "VenueTransport",
    "TransportError",
]
