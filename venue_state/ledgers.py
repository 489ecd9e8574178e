"""
Venue State - Ledgers.

============================================================
PURPOSE
============================================================
In-memory tables holding the current truth for one entity kind
each. They accept normalized records only.

CONSISTENCY CONTRACT:
- One row per key (order id, currency, symbol)
- Last writer wins, rows are replaced, never merged
- Snapshots replace, updates upsert

No locking: all mutation happens on the event loop thread, and
every operation completes without suspending.

============================================================
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from core.exceptions import NotFoundError

from .types import AccountMode, OrderRecord, OrderSide, TickerRecord, WalletRecord


logger = logging.getLogger(__name__)


# ============================================================
# ORDER LEDGER
# ============================================================

class OrderLedger:
    """Orders keyed by venue order id."""

    def __init__(self):
        self._orders: Dict[Any, OrderRecord] = {}

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: Any) -> bool:
        return order_id in self._orders

    def apply_snapshot(self, orders: Iterable[OrderRecord]) -> None:
        """Replace the whole table with a snapshot."""
        self._orders = {order.id: order for order in orders}
        logger.debug(f"Order snapshot applied: {len(self._orders)} orders")

    def apply_update(
        self,
        order: OrderRecord,
        replace_only_if_missing: bool = False,
    ) -> OrderRecord:
        """
        Upsert one order.

        Args:
            order: Normalized order
            replace_only_if_missing: Keep and return an existing record
                for the same id instead of replacing it. Used for order
                submit responses, which a streamed event may have
                already overtaken.

        Returns:
            The record now held for the order id
        """
        if replace_only_if_missing:
            existing = self._orders.get(order.id)
            if existing is not None:
                logger.debug(f"Order {order.id} already tracked, keeping streamed state")
                return existing

        # re-insert so iteration order follows the latest update
        self._orders.pop(order.id, None)
        self._orders[order.id] = order
        return order

    def query(self, side: Optional[Union[str, OrderSide]] = None) -> List[OrderRecord]:
        """
        All orders, optionally filtered by side.

        Any side other than buy/sell means no filter.
        """
        wanted = _parse_side(side)
        if wanted is None:
            return list(self._orders.values())
        return [order for order in self._orders.values() if order.side == wanted]

    def by_id(self, order_id: Any) -> Optional[OrderRecord]:
        return self._orders.get(order_id)

    def clear(self) -> None:
        self._orders = {}


def _parse_side(side: Optional[Union[str, OrderSide]]) -> Optional[OrderSide]:
    if isinstance(side, OrderSide):
        return side
    if isinstance(side, str):
        try:
            return OrderSide(side.lower())
        except ValueError:
            return None
    return None


# ============================================================
# WALLET LEDGER
# ============================================================

class WalletLedger:
    """Balances keyed by currency, for one account mode."""

    def __init__(self, account_mode: AccountMode):
        self._account_mode = account_mode
        self._wallets: Dict[str, WalletRecord] = {}
        self._updates = 0

    @property
    def account_mode(self) -> AccountMode:
        return self._account_mode

    @property
    def update_count(self) -> int:
        """Number of batches applied, including empty ones."""
        return self._updates

    def apply_batch(self, entries: Iterable[WalletRecord]) -> List[WalletRecord]:
        """
        Upsert a batch of balances.

        Entries for other account types are dropped. The update
        counter moves even when nothing survives the filter.

        Returns:
            The entries that were applied
        """
        applied = [entry for entry in entries if entry.type == self._account_mode.value]
        for entry in applied:
            self._wallets.pop(entry.currency, None)
            self._wallets[entry.currency] = entry

        self._updates += 1
        return applied

    def query(self) -> List[WalletRecord]:
        return list(self._wallets.values())

    def has_received_update(self) -> bool:
        return self._updates >= 1

    def clear(self) -> None:
        self._wallets = {}
        self._updates = 0


# ============================================================
# TICKER CACHE
# ============================================================

class TickerCache:
    """Latest prices keyed by symbol."""

    def __init__(self):
        self._tickers: Dict[str, TickerRecord] = {}

    def __len__(self) -> int:
        return len(self._tickers)

    def apply_tick(self, symbol: str, bid: str, ask: str, last_price: str) -> TickerRecord:
        record = TickerRecord(symbol=symbol, bid=bid, ask=ask, last_price=last_price)
        self._tickers[symbol] = record
        return record

    def apply_record(self, record: TickerRecord) -> TickerRecord:
        return self.apply_tick(record.symbol, record.bid, record.ask, record.last_price)

    def get(self, symbol: str) -> TickerRecord:
        """
        Latest tick for a symbol.

        Raises:
            NotFoundError: If the symbol was never ticked
        """
        record = self._tickers.get(symbol)
        if record is None:
            raise NotFoundError(f"No ticker for {symbol}", key=symbol)
        return record

    def has(self, symbol: str) -> bool:
        return symbol in self._tickers

    def clear(self) -> None:
        self._tickers = {}
