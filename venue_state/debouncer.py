"""
Venue State - Funds-Refresh Debouncer.

============================================================
PURPOSE
============================================================
Order activity changes available balances, but the venue only
pushes fresh wallet values after a recalculation request.
A burst of order events must produce ONE request, not one
per event.

ALGORITHM (trailing-edge debounce):
- every trigger cancels the pending timer and starts a new one
- when the timer fires, one request per subscribed symbol is
  sent, covering the asset and the currency wallet

============================================================
"""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from core.clock import ClockProtocol
from core.exceptions import TransportError

from .config import FUNDS_REFRESH_DELAY_SECONDS
from .transport.base import VenueTransport
from .types import AccountMode


logger = logging.getLogger(__name__)


def wallet_keys(symbol: str, account_mode: AccountMode) -> List[str]:
    """
    Calculation keys for both legs of a symbol.

    BTCUSD in margin mode -> wallet_margin_BTC, wallet_margin_USD
    """
    asset = symbol[:3].upper()
    currency = symbol[3:].upper()
    return [
        f"wallet_{account_mode.value}_{asset}",
        f"wallet_{account_mode.value}_{currency}",
    ]


class FundsRefreshDebouncer:
    """Coalesces funds-changed triggers into delayed recalculation requests."""

    def __init__(
        self,
        transport: VenueTransport,
        clock: ClockProtocol,
        symbols: Callable[[], Sequence[str]],
        account_mode: AccountMode,
    ):
        """
        Args:
            transport: Command sink for the requests
            clock: Timer source
            symbols: Returns the currently subscribed symbols
            account_mode: Wallet type used in the calculation keys
        """
        self._transport = transport
        self._clock = clock
        self._symbols = symbols
        self._account_mode = account_mode
        self._timer = None
        self._emit_task: Optional[asyncio.Task] = None
        self._emissions = 0

    @property
    def emissions(self) -> int:
        """Number of bursts that produced requests."""
        return self._emissions

    @property
    def is_pending(self) -> bool:
        return self._timer is not None

    def trigger(self) -> None:
        """Restart the debounce window."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._clock.call_later(FUNDS_REFRESH_DELAY_SECONDS, self._fire)

    def cancel(self) -> None:
        """Drop a pending request and stop one that is being sent."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._emit_task is not None and not self._emit_task.done():
            self._emit_task.cancel()
        self._emit_task = None

    def _fire(self) -> None:
        self._timer = None
        self._emissions += 1
        symbols = list(self._symbols())
        logger.debug(f"Requesting funds recalculation for {len(symbols)} symbols")
        self._emit_task = asyncio.get_running_loop().create_task(self._emit(symbols))

    async def _emit(self, symbols: List[str]) -> None:
        for symbol in symbols:
            keys = wallet_keys(symbol, self._account_mode)
            try:
                await self._transport.request_calculation(keys)
            except Exception as e:
                error = e if isinstance(e, TransportError) else TransportError(
                    "Funds recalculation request failed",
                    operation="request_calculation",
                    cause=e,
                )
                logger.error(error.to_log_format())
