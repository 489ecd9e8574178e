"""
Venue State - Subscription / Readiness Coordinator.

============================================================
PURPOSE
============================================================
Sequences symbol subscriptions against the connection
lifecycle and tells callers when cached state is usable.

STATE MACHINE:
    CREATED ──open──► CONNECTING ──auth──► AUTHENTICATED
                          ▲                     │
                          │               settle delay
                     socket lost                │
                          └──────────────── READY

- On authentication every registered symbol is subscribed,
  in registration order.
- READY follows a fixed settle delay so initial snapshots can
  arrive before callers read the ledgers.
- A symbol added at runtime is subscribed at once when
  authenticated, otherwise on the next authentication.

============================================================
"""

import asyncio
import logging
from typing import List, Optional, Set

from core.clock import ClockProtocol

from .config import (
    AdapterConfig,
    SETTLE_DELAY_SECONDS,
    TICKER_POLL_ATTEMPTS,
    TICKER_POLL_INTERVAL_SECONDS,
)
from .ledgers import TickerCache
from .transport.base import VenueTransport
from .types import CoordinatorState


logger = logging.getLogger(__name__)


class SubscriptionCoordinator:
    """Owns the symbol list and the connection lifecycle state."""

    def __init__(
        self,
        transport: VenueTransport,
        clock: ClockProtocol,
        tickers: TickerCache,
        config: AdapterConfig,
    ):
        self._transport = transport
        self._clock = clock
        self._tickers = tickers
        self._config = config

        self._state = CoordinatorState.CREATED
        self._symbols: List[str] = []
        self._subscribed: Set[str] = set()
        self._ready: Optional[asyncio.Future] = None
        self._settle_timer = None

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def symbols(self) -> List[str]:
        """Registered symbols, in registration order."""
        return list(self._symbols)

    @property
    def is_authenticated(self) -> bool:
        return self._state in (CoordinatorState.AUTHENTICATED, CoordinatorState.READY)

    @property
    def is_ready(self) -> bool:
        return self._state == CoordinatorState.READY

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    def on_open(self) -> None:
        """The transport is being opened."""
        if self._state == CoordinatorState.CREATED:
            self._state = CoordinatorState.CONNECTING
            logger.debug("Connecting to venue")

    async def on_authenticated(self) -> None:
        """Subscribe everything registered so far and start the settle timer."""
        if self._state == CoordinatorState.TERMINATED:
            return

        reconnect = self._state == CoordinatorState.READY or self._ready_done()
        mode = "margin" if self._config.margin_mode else "spot"
        logger.info(f"Venue authenticated - {mode}")

        if not reconnect:
            self._state = CoordinatorState.AUTHENTICATED

        self._subscribed.clear()
        # by index: symbols added while a subscribe is in flight are picked up too
        index = 0
        while index < len(self._symbols):
            await self._subscribe(self._symbols[index])
            index += 1

        if reconnect:
            # snapshots after a reconnect replace state in place, callers keep going
            self._state = CoordinatorState.READY
            return

        if self._settle_timer is not None:
            self._settle_timer.cancel()
        self._settle_timer = self._clock.call_later(SETTLE_DELAY_SECONDS, self._mark_ready)

    def on_closed(self) -> None:
        """The socket dropped. Subscriptions have to be redone on re-auth."""
        if self._state in (CoordinatorState.AUTHENTICATED, CoordinatorState.READY):
            logger.warning("Venue connection lost, waiting for re-authentication")
            if self._settle_timer is not None:
                self._settle_timer.cancel()
                self._settle_timer = None
            self._state = CoordinatorState.CONNECTING
            self._subscribed.clear()

    def terminate(self) -> None:
        if self._settle_timer is not None:
            self._settle_timer.cancel()
            self._settle_timer = None
        self._state = CoordinatorState.TERMINATED

    async def wait_ready(self) -> None:
        """Resolve once the settle delay after authentication has passed."""
        if self._ready_done():
            return
        await asyncio.shield(self._ready_future())

    def _mark_ready(self) -> None:
        self._settle_timer = None
        if self._state != CoordinatorState.AUTHENTICATED:
            return
        self._state = CoordinatorState.READY
        future = self._ready_future()
        if not future.done():
            future.set_result(None)
        logger.info("Venue state ready")

    def _ready_future(self) -> asyncio.Future:
        if self._ready is None:
            self._ready = asyncio.get_running_loop().create_future()
        return self._ready

    def _ready_done(self) -> bool:
        return self._ready is not None and self._ready.done()

    # --------------------------------------------------------
    # SYMBOLS
    # --------------------------------------------------------

    async def add_symbol(self, symbol: str) -> bool:
        """
        Track a symbol and wait for its first tick.

        Registers each symbol once, however many callers add it.
        The wait is bounded and advisory: an illiquid symbol may not
        tick in time, which is not an error.

        Returns:
            True if the ticker arrived before polling gave up
        """
        logger.debug(f"Adding {symbol}")
        if self.register(symbol) and self.is_authenticated:
            await self._subscribe(symbol)

        return await self._wait_for_ticker(symbol)

    def register(self, symbol: str) -> bool:
        """
        Append a symbol to the subscription list.

        Returns:
            False if it was already registered
        """
        if symbol in self._symbols:
            return False
        self._symbols.append(symbol)
        return True

    async def _wait_for_ticker(self, symbol: str) -> bool:
        attempts = TICKER_POLL_ATTEMPTS
        while attempts > 0 and not self._tickers.has(symbol):
            logger.debug(f"Waiting for {symbol} ticker")
            await self._clock.sleep(TICKER_POLL_INTERVAL_SECONDS)
            attempts -= 1

        if self._tickers.has(symbol):
            return True
        logger.warning(f"No ticker for {symbol} after {TICKER_POLL_ATTEMPTS} polls, continuing")
        return False

    async def _subscribe(self, symbol: str) -> None:
        if symbol in self._subscribed:
            return
        self._subscribed.add(symbol)
        await self._transport.subscribe_ticker(symbol)
        if self._config.margin_mode:
            await self._transport.request_calculation([f"margin_sym_t{symbol}"])
