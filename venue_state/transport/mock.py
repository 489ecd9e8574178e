"""
Venue Transport - Mock Transport.

============================================================
PURPOSE
============================================================
In-memory transport for testing the state adapter without a
live venue.

FEATURES:
- Records every command (subscriptions, calculations, orders)
- Optional auto-authentication on open()
- Optional ticker on subscribe
- Streamed order_new racing the submit response
- Error injection for submit, cancel and close

============================================================
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.exceptions import TransportError

from ..types import EventKind, OrderSpec
from .base import VenueTransport


logger = logging.getLogger(__name__)


REDUCE_ONLY_FLAG = 1024


# ============================================================
# MOCK CONFIGURATION
# ============================================================

@dataclass
class MockTransportConfig:
    """Behaviour switches for the mock transport."""

    auto_authenticate: bool = True
    """Emit AUTHENTICATED from open()."""

    tick_on_subscribe: bool = False
    """Emit a ticker right after subscribe_ticker()."""

    subscribe_yields: int = 0
    """Event loop turns subscribe_ticker() gives up before recording, like a socket write."""

    default_bid: Decimal = Decimal("100")
    default_ask: Decimal = Decimal("101")
    default_last_price: Decimal = Decimal("100.5")

    stream_new_before_response: bool = False
    """Emit ORDER_NEW for a submitted order before returning the response."""

    response_status: str = "ACTIVE"
    """Status carried by submit responses."""

    streamed_status: str = "PARTIALLY FILLED @ 100.0(0.5)"
    """Status carried by the racing ORDER_NEW event."""

    close_on_cancel: bool = False
    """Emit ORDER_CLOSE with a CANCELED status when cancelling a known order."""

    first_order_id: int = 1000


# ============================================================
# MOCK TRANSPORT
# ============================================================

class MockTransport(VenueTransport):
    """Mock venue transport with full command tracking."""

    def __init__(self, config: Optional[MockTransportConfig] = None):
        super().__init__()
        self._config = config or MockTransportConfig()
        self._ids = itertools.count(self._config.first_order_id)
        self._authenticated = False

        self.opened = 0
        self.closed = 0
        self.subscriptions: List[str] = []
        self.calculations: List[List[str]] = []
        self.submitted: List[OrderSpec] = []
        self.cancelled: List[Any] = []
        self.orders: Dict[Any, Dict[str, Any]] = {}

        # Error injection hooks
        self.force_next_error: Optional[str] = None
        self.close_error: Optional[Exception] = None

    @property
    def config(self) -> MockTransportConfig:
        return self._config

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def open(self) -> None:
        self.opened += 1
        logger.info("MockTransport opened")
        if self._config.auto_authenticate:
            await self.authenticate()

    async def authenticate(self) -> None:
        """Emit AUTHENTICATED as a venue would after a successful auth."""
        self._authenticated = True
        await self.emit(EventKind.AUTHENTICATED)

    async def drop(self) -> None:
        """Simulate a lost connection."""
        self._authenticated = False
        await self.emit(EventKind.CLOSED)

    async def close(self) -> None:
        self.closed += 1
        self._authenticated = False
        if self.close_error is not None:
            raise self.close_error
        logger.info("MockTransport closed")

    # --------------------------------------------------------
    # COMMANDS
    # --------------------------------------------------------

    async def subscribe_ticker(self, symbol: str) -> None:
        for _ in range(self._config.subscribe_yields):
            await asyncio.sleep(0)
        self.subscriptions.append(symbol)
        if self._config.tick_on_subscribe:
            await self.emit(EventKind.TICKER, {
                "symbol": symbol,
                "bid": self._config.default_bid,
                "ask": self._config.default_ask,
                "lastPrice": self._config.default_last_price,
            })

    async def request_calculation(self, keys: List[str]) -> None:
        self.calculations.append(list(keys))

    async def submit_order(self, spec: OrderSpec) -> Dict[str, Any]:
        self.submitted.append(spec)
        self._raise_injected("submit_order")

        order_id = next(self._ids)
        order = {
            "id": order_id,
            "symbol": spec.symbol,
            "amount": spec.amount,
            "amountOrig": spec.amount,
            "price": spec.price,
            "type": spec.order_type,
            "flags": REDUCE_ONLY_FLAG if spec.reduce_only else 0,
            "status": self._config.response_status,
            "mtsUpdate": None,
        }
        self.orders[order_id] = order

        if self._config.stream_new_before_response:
            await self.emit(EventKind.ORDER_NEW, dict(order, status=self._config.streamed_status))

        return dict(order)

    async def cancel_order(self, order_id: Any) -> Dict[str, Any]:
        self.cancelled.append(order_id)
        self._raise_injected("cancel_order")

        order = self.orders.get(order_id)
        if self._config.close_on_cancel and order is not None:
            await self.emit(EventKind.ORDER_CLOSE, dict(order, status="CANCELED"))

        return {"id": order_id, "status": "SUCCESS"}

    def _raise_injected(self, operation: str) -> None:
        if self.force_next_error:
            error = self.force_next_error
            self.force_next_error = None
            raise TransportError(f"Injected error: {error}", operation=operation)
