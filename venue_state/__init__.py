"""
Venue State Package.

============================================================
PURPOSE
============================================================
Locally cached, event-reconciled view of one trading venue
account: tickers, wallet balances and orders.

COMPONENTS:
- EventNormalizer: raw venue payloads -> canonical records
- OrderLedger / WalletLedger / TickerCache: keyed tables
- FundsRefreshDebouncer: coalesced wallet recalculation
- SubscriptionCoordinator: subscriptions and readiness
- VenueStateAdapter: event intake + public surface

============================================================
"""

from .adapter import AdapterState, VenueStateAdapter
from .config import AdapterConfig, BitfinexConfig
from .coordinator import SubscriptionCoordinator
from .debouncer import FundsRefreshDebouncer, wallet_keys
from .ledgers import OrderLedger, TickerCache, WalletLedger
from .normalizer import EventNormalizer
from .types import (
    AccountMode,
    CoordinatorState,
    EventKind,
    NormalizedEvent,
    OrderKind,
    OrderRecord,
    OrderSide,
    OrderSpec,
    TickerRecord,
    Trigger,
    WalletRecord,
)


__version__ = "0.1.0"


__all__ = [
    "AdapterState",
    "VenueStateAdapter",
    "AdapterConfig",
    "BitfinexConfig",
    "SubscriptionCoordinator",
    "FundsRefreshDebouncer",
    "wallet_keys",
    "OrderLedger",
    "TickerCache",
    "WalletLedger",
    "EventNormalizer",
    "AccountMode",
    "CoordinatorState",
    "EventKind",
    "NormalizedEvent",
    "OrderKind",
    "OrderRecord",
    "OrderSide",
    "OrderSpec",
    "TickerRecord",
    "Trigger",
    "WalletRecord",
]
