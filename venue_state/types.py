"""
Venue State - Types.

============================================================
PURPOSE
============================================================
Canonical record shapes and enumerations shared by the
normalizer, the ledgers and the adapter facade.

Records are produced ONLY by the event normalizer. Everything
downstream of it works on these shapes, never on raw payloads.

============================================================
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


# ============================================================
# ENUMERATIONS
# ============================================================

class OrderSide(Enum):
    """Order side."""

    BUY = "buy"
    SELL = "sell"


class AccountMode(Enum):
    """Venue wallet type the adapter tracks."""

    MARGIN = "margin"
    EXCHANGE = "exchange"


class OrderKind(Enum):
    """Order kinds the adapter can place."""

    LIMIT = "LIMIT"
    MARKET = "MARKET"
    STOP = "STOP"

    def venue_type(self, account_mode: AccountMode) -> str:
        """Venue order type string for the given account mode."""
        if account_mode == AccountMode.MARGIN:
            return self.value
        return f"EXCHANGE {self.value}"


class EventKind(Enum):
    """Events emitted by a venue transport."""

    TICKER = "ticker"
    WALLET_SNAPSHOT = "wallet_snapshot"
    WALLET_UPDATE = "wallet_update"
    ORDER_SNAPSHOT = "order_snapshot"
    ORDER_NEW = "order_new"
    ORDER_UPDATE = "order_update"
    ORDER_CLOSE = "order_close"
    AUTHENTICATED = "authenticated"
    ERROR = "error"
    CLOSED = "closed"


class Trigger(Enum):
    """Side effects requested by a normalized event."""

    FUNDS_MAY_HAVE_CHANGED = "funds_may_have_changed"


class CoordinatorState(Enum):
    """
    Connection lifecycle.

    CREATED ──► CONNECTING ──► AUTHENTICATED ──► READY
                    ▲                              │
                    └────────── (socket lost) ─────┘
    """

    CREATED = "CREATED"
    CONNECTING = "CONNECTING"
    AUTHENTICATED = "AUTHENTICATED"
    READY = "READY"
    TERMINATED = "TERMINATED"


# ============================================================
# CANONICAL RECORDS
# ============================================================

@dataclass(frozen=True)
class OrderRecord:
    """Normalized order state. Replaced wholesale on every event."""

    id: Any
    """Venue-assigned order id."""

    side: OrderSide
    """Derived from the sign of the original requested amount."""

    amount: Decimal
    """Absolute original requested size."""

    remaining: Decimal
    """Absolute unfilled size."""

    executed: Decimal
    """amount - remaining, never negative."""

    price: Any = None
    type: Optional[str] = None
    flags: Any = None

    status: Optional[str] = None
    """Raw venue status string."""

    symbol: Optional[str] = None

    last_updated: int = 0
    """Venue update time in ms, or local capture time."""

    @property
    def is_filled(self) -> bool:
        return self.remaining == 0

    @property
    def is_canceled(self) -> bool:
        return self.status is not None and "CANCELED" in self.status

    @property
    def is_executed(self) -> bool:
        return self.status is not None and "EXECUTED" in self.status

    @property
    def is_open(self) -> bool:
        return not (self.is_canceled or self.is_executed)

    def to_dict(self) -> Dict[str, Any]:
        """Plain mapping including the derived flags."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "side": self.side.value,
            "amount": self.amount,
            "remaining": self.remaining,
            "executed": self.executed,
            "price": self.price,
            "status": self.status,
            "type": self.type,
            "flags": self.flags,
            "is_filled": self.is_filled,
            "is_canceled": self.is_canceled,
            "is_executed": self.is_executed,
            "is_open": self.is_open,
            "last_updated": self.last_updated,
        }


@dataclass(frozen=True)
class WalletRecord:
    """Normalized balance for one currency."""

    type: str
    currency: str
    amount: Decimal
    available: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "currency": self.currency,
            "amount": str(self.amount),
            "available": str(self.available),
        }


@dataclass(frozen=True)
class TickerRecord:
    """Latest prices for a symbol, kept as exact text."""

    symbol: str
    bid: str
    ask: str
    last_price: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "symbol": self.symbol,
            "bid": self.bid,
            "ask": self.ask,
            "last_price": self.last_price,
        }


@dataclass
class NormalizedEvent:
    """Output of the normalizer for one raw event."""

    kind: EventKind
    records: List[Any] = field(default_factory=list)
    triggers: List[Trigger] = field(default_factory=list)
    error: Optional[BaseException] = None


# ============================================================
# COMMANDS
# ============================================================

@dataclass(frozen=True)
class OrderSpec:
    """Order submission sent through the transport."""

    symbol: str
    """Symbol without venue prefix, e.g. BTCUSD."""

    amount: Decimal
    """Signed size: positive buys, negative sells."""

    order_type: str
    """Venue order type, e.g. 'EXCHANGE LIMIT'."""

    price: Optional[Decimal] = None
    reduce_only: bool = False
