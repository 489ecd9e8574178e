"""
Venue State - Adapter.

============================================================
PURPOSE
============================================================
Keeps a locally cached view of one venue account (tickers,
wallets, orders) and exposes a normalized command / query
interface over it.

EVENT FLOW:
    transport ──► intake(kind, payload)
                     │
                     ▼
               EventNormalizer
                     │
                     ▼
               dispatch table ──► Order / Wallet / Ticker ledgers
                     │
                     ▼
               triggers ──► FundsRefreshDebouncer ──► transport

Queries read the ledgers directly.

============================================================
USAGE
============================================================
```python
adapter = VenueStateAdapter(BitfinexTransport(BitfinexConfig.from_env()),
                            AdapterConfig(margin_mode=True, max_leverage=2))
adapter.register_symbol("BTCUSD")
await adapter.initialize()
ticker = adapter.get_ticker("BTCUSD")
order = await adapter.place_limit_order("BTCUSD", Decimal("0.1"), Decimal("100"), "buy")
await adapter.terminate()
```

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from core.clock import ClockProtocol, SystemClock
from core.exceptions import PayloadError, TerminationError, TransportError

from .config import AdapterConfig, WALLET_WAIT_SECONDS
from .coordinator import SubscriptionCoordinator
from .debouncer import FundsRefreshDebouncer
from .ledgers import OrderLedger, TickerCache, WalletLedger
from .normalizer import EventNormalizer, to_decimal
from .transport.base import VenueTransport
from .types import (
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


logger = logging.getLogger(__name__)


# ============================================================
# ADAPTER STATE
# ============================================================

@dataclass
class AdapterState:
    """Ledgers owned by exactly one adapter instance."""

    wallets: WalletLedger
    orders: OrderLedger = field(default_factory=OrderLedger)
    tickers: TickerCache = field(default_factory=TickerCache)

    def clear(self) -> None:
        self.orders.clear()
        self.wallets.clear()
        self.tickers.clear()


# ============================================================
# VENUE STATE ADAPTER
# ============================================================

class VenueStateAdapter:
    """
    Reconciles venue events into a queryable account snapshot.

    All state is per instance; several adapters can run side by
    side on one loop.
    """

    def __init__(
        self,
        transport: VenueTransport,
        config: Optional[AdapterConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        """
        Args:
            transport: Event source and command sink
            config: Account mode and leverage
            clock: Timer source (SystemClock by default)
        """
        self._config = config or AdapterConfig()
        self._clock = clock or SystemClock()
        self._transport = transport

        self._normalizer = EventNormalizer(self._config, self._clock)
        self._state = AdapterState(wallets=WalletLedger(self._config.account_mode))
        self._coordinator = SubscriptionCoordinator(
            transport, self._clock, self._state.tickers, self._config,
        )
        self._debouncer = FundsRefreshDebouncer(
            transport,
            self._clock,
            lambda: self._coordinator.symbols,
            self._config.account_mode,
        )

        self._dispatch: Dict[EventKind, Callable[[NormalizedEvent], Awaitable[None]]] = {
            EventKind.TICKER: self._on_ticker,
            EventKind.WALLET_SNAPSHOT: self._on_wallets,
            EventKind.WALLET_UPDATE: self._on_wallets,
            EventKind.ORDER_SNAPSHOT: self._on_order_snapshot,
            EventKind.ORDER_NEW: self._on_order,
            EventKind.ORDER_UPDATE: self._on_order,
            EventKind.ORDER_CLOSE: self._on_order,
            EventKind.AUTHENTICATED: self._on_authenticated,
            EventKind.ERROR: self._on_error,
            EventKind.CLOSED: self._on_closed,
        }

        transport.set_event_handler(self.intake)

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def config(self) -> AdapterConfig:
        return self._config

    @property
    def state(self) -> CoordinatorState:
        return self._coordinator.state

    @property
    def symbols(self) -> List[str]:
        return self._coordinator.symbols

    @property
    def ledgers(self) -> AdapterState:
        return self._state

    @property
    def debouncer(self) -> FundsRefreshDebouncer:
        return self._debouncer

    # --------------------------------------------------------
    # EVENT INTAKE
    # --------------------------------------------------------

    async def intake(self, kind: EventKind, payload: Any = None) -> None:
        """
        Single entry point for transport events.

        Ledger mutation happens before the first suspension point, so
        a reader never sees a half-applied event. A malformed payload
        is logged and dropped.
        """
        try:
            event = self._normalizer.normalize(kind, payload)
        except PayloadError as e:
            logger.error(f"Dropping malformed event: {e.to_log_format()}")
            return

        handler = self._dispatch.get(event.kind)
        if handler is None:
            logger.warning(f"No handler for {event.kind.value} events")
            return

        await handler(event)

        for trigger in event.triggers:
            if trigger == Trigger.FUNDS_MAY_HAVE_CHANGED:
                self._debouncer.trigger()

    async def _on_ticker(self, event: NormalizedEvent) -> None:
        for record in event.records:
            self._state.tickers.apply_record(record)

    async def _on_wallets(self, event: NormalizedEvent) -> None:
        if event.kind == EventKind.WALLET_SNAPSHOT:
            logger.debug("Wallet snapshot")
        self._state.wallets.apply_batch(event.records)

    async def _on_order_snapshot(self, event: NormalizedEvent) -> None:
        logger.debug("Order snapshot")
        self._state.orders.apply_snapshot(event.records)

    async def _on_order(self, event: NormalizedEvent) -> None:
        for record in event.records:
            logger.debug(f"Order {event.kind.value.split('_')[1]} - id:{record.id}")
            self._state.orders.apply_update(record)

    async def _on_authenticated(self, event: NormalizedEvent) -> None:
        await self._coordinator.on_authenticated()

    async def _on_error(self, event: NormalizedEvent) -> None:
        logger.error(f"Error detected on venue connection: {event.error.to_log_format()}")

    async def _on_closed(self, event: NormalizedEvent) -> None:
        logger.debug("Venue connection closed")
        self._coordinator.on_closed()

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    def register_symbol(self, symbol: str) -> None:
        """Register a symbol before initialize() without waiting for its ticker."""
        self._coordinator.register(symbol)

    async def initialize(self) -> None:
        """Open the transport and resolve once cached state is ready."""
        self._coordinator.on_open()
        await self._transport.open()
        await self._coordinator.wait_ready()

    async def add_symbol(self, symbol: str) -> bool:
        """
        Track a symbol and wait (bounded) for its first tick.

        Returns:
            True if the ticker arrived in time
        """
        return await self._coordinator.add_symbol(symbol)

    async def terminate(self) -> None:
        """Close the transport and drop all cached state. Never raises."""
        self._debouncer.cancel()
        self._coordinator.terminate()
        try:
            logger.debug("Closing venue connection...")
            await self._transport.close()
        except Exception as e:
            error = TerminationError("Error while closing venue connection", cause=e)
            logger.error(error.to_log_format())
        finally:
            self._state.clear()

    # --------------------------------------------------------
    # QUERIES
    # --------------------------------------------------------

    def get_ticker(self, symbol: str) -> TickerRecord:
        """
        Raises:
            NotFoundError: If the symbol has not ticked yet
        """
        return self._state.tickers.get(symbol)

    async def get_wallet_balances(self) -> List[WalletRecord]:
        """Balances for the configured account mode."""
        if not self._state.wallets.has_received_update():
            await self._clock.sleep(WALLET_WAIT_SECONDS)
        return self._state.wallets.query()

    def get_active_orders(self, side: Optional[Union[str, OrderSide]] = None) -> List[OrderRecord]:
        return self._state.orders.query(side)

    def get_order(self, order_id: Any) -> Optional[OrderRecord]:
        return self._state.orders.by_id(order_id)

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    async def place_limit_order(
        self,
        symbol: str,
        amount: Any,
        price: Any,
        side: Union[str, OrderSide],
        reduce_only: bool = False,
    ) -> OrderRecord:
        return await self._new_order(symbol, amount, price, side, OrderKind.LIMIT, reduce_only)

    async def place_market_order(
        self,
        symbol: str,
        amount: Any,
        side: Union[str, OrderSide],
        reduce_only: bool = False,
    ) -> OrderRecord:
        return await self._new_order(symbol, amount, 0, side, OrderKind.MARKET, reduce_only)

    async def place_stop_order(
        self,
        symbol: str,
        amount: Any,
        price: Any,
        side: Union[str, OrderSide],
        reduce_only: Optional[bool] = None,
    ) -> OrderRecord:
        """Stop orders default to reduce-only on margin accounts."""
        if reduce_only is None:
            reduce_only = self._config.margin_mode
        return await self._new_order(symbol, amount, price, side, OrderKind.STOP, reduce_only)

    async def _new_order(
        self,
        symbol: str,
        amount: Any,
        price: Any,
        side: Union[str, OrderSide],
        kind: OrderKind,
        reduce_only: bool = False,
    ) -> OrderRecord:
        order_side = side if isinstance(side, OrderSide) else OrderSide(str(side).lower())
        try:
            size = abs(to_decimal(amount, "amount"))
            limit = to_decimal(price, "price") if price is not None else None
        except PayloadError as e:
            raise ValueError(e.message) from e
        spec = OrderSpec(
            symbol=symbol,
            amount=size if order_side == OrderSide.BUY else -size,
            order_type=kind.venue_type(self._config.account_mode),
            price=limit,
            reduce_only=reduce_only,
        )
        logger.info(f"Placing {spec.order_type} {order_side.value} {size} {symbol} @ {spec.price}")

        raw = await self._transport.submit_order(spec)
        record = self._normalizer.normalize_order(raw, EventKind.ORDER_NEW)

        # a streamed order_new may already hold fresher state for this id
        return self._state.orders.apply_update(record, replace_only_if_missing=True)

    async def cancel_orders(self, orders: Iterable[Union[OrderRecord, Dict[str, Any], Any]]) -> List[Any]:
        """
        Cancel orders concurrently and wait for every acknowledgement.

        The ledger is not touched here; the streamed close event
        carries the final state.

        Raises:
            TransportError: If any cancel fails
        """
        pending = [self._transport.cancel_order(_order_id(order)) for order in orders]
        return list(await asyncio.gather(*pending))


def _order_id(order: Any) -> Any:
    if isinstance(order, OrderRecord):
        return order.id
    if isinstance(order, dict):
        if "id" not in order:
            raise TransportError("Cannot cancel an order without an id", operation="cancel_order")
        return order["id"]
    return order
