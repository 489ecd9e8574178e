"""
Funds-Refresh Debouncer Tests.

============================================================
PURPOSE
============================================================
Bursts of funds-changed triggers must collapse into a single
wallet recalculation request per symbol.

============================================================
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from core.clock import MockClock
from venue_state.debouncer import FundsRefreshDebouncer, wallet_keys
from venue_state.transport.mock import MockTransport
from venue_state.types import AccountMode


START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_debouncer(symbols=("BTCUSD",), mode=AccountMode.MARGIN):
    clock = MockClock(START)
    transport = MockTransport()
    debouncer = FundsRefreshDebouncer(transport, clock, lambda: list(symbols), mode)
    return debouncer, transport, clock


# ============================================================
# KEY TESTS
# ============================================================

class TestWalletKeys:
    """Tests for calculation key construction."""

    def test_margin_keys(self):
        assert wallet_keys("BTCUSD", AccountMode.MARGIN) == ["wallet_margin_BTC", "wallet_margin_USD"]

    def test_exchange_keys(self):
        assert wallet_keys("ethusd", AccountMode.EXCHANGE) == ["wallet_exchange_ETH", "wallet_exchange_USD"]


# ============================================================
# DEBOUNCE TESTS
# ============================================================

class TestFundsRefreshDebouncer:
    """Tests for FundsRefreshDebouncer."""

    @pytest.mark.asyncio
    async def test_burst_emits_once(self):
        """Test that triggers inside the window collapse into one request."""
        debouncer, transport, clock = make_debouncer()

        debouncer.trigger()
        await clock.run_for(0.05)
        debouncer.trigger()
        await clock.run_for(0.05)
        debouncer.trigger()

        assert transport.calculations == []
        assert debouncer.is_pending

        await clock.run_for(0.1)

        assert debouncer.emissions == 1
        assert transport.calculations == [["wallet_margin_BTC", "wallet_margin_USD"]]
        assert not debouncer.is_pending

    @pytest.mark.asyncio
    async def test_nothing_before_window_ends(self):
        """Test the trailing edge timing."""
        debouncer, transport, clock = make_debouncer()

        debouncer.trigger()
        await clock.run_for(0.099)

        assert transport.calculations == []

        await clock.run_for(0.001)

        assert debouncer.emissions == 1

    @pytest.mark.asyncio
    async def test_spaced_triggers_emit_separately(self):
        """Test that triggers further apart than the window each emit."""
        debouncer, transport, clock = make_debouncer()

        debouncer.trigger()
        await clock.run_for(0.1)
        debouncer.trigger()
        await clock.run_for(0.15)

        assert debouncer.emissions == 2
        assert len(transport.calculations) == 2

    @pytest.mark.asyncio
    async def test_one_request_per_symbol(self):
        """Test that every subscribed symbol is refreshed."""
        debouncer, transport, clock = make_debouncer(symbols=("BTCUSD", "ETHUSD"), mode=AccountMode.EXCHANGE)

        debouncer.trigger()
        await clock.run_for(0.1)

        assert transport.calculations == [
            ["wallet_exchange_BTC", "wallet_exchange_USD"],
            ["wallet_exchange_ETH", "wallet_exchange_USD"],
        ]

    @pytest.mark.asyncio
    async def test_symbols_read_when_firing(self):
        """Test that symbols added during the window are included."""
        symbols = ["BTCUSD"]
        clock = MockClock(START)
        transport = MockTransport()
        debouncer = FundsRefreshDebouncer(transport, clock, lambda: list(symbols), AccountMode.MARGIN)

        debouncer.trigger()
        symbols.append("ETHUSD")
        await clock.run_for(0.1)

        assert len(transport.calculations) == 2

    @pytest.mark.asyncio
    async def test_cancel_drops_pending_request(self):
        """Test that cancel() prevents the emission."""
        debouncer, transport, clock = make_debouncer()

        debouncer.trigger()
        debouncer.cancel()
        await clock.run_for(1)

        assert debouncer.emissions == 0
        assert transport.calculations == []

    @pytest.mark.asyncio
    async def test_cancel_stops_emission_in_flight(self):
        """Test that cancel() also stops requests already being sent."""
        debouncer, transport, clock = make_debouncer(symbols=("BTCUSD", "ETHUSD"))
        release = asyncio.Event()
        sent = []

        async def slow_request(keys):
            sent.append(keys)
            await release.wait()

        transport.request_calculation = slow_request

        debouncer.trigger()
        await clock.run_for(0.1)
        assert sent == [["wallet_margin_BTC", "wallet_margin_USD"]]

        debouncer.cancel()
        release.set()
        await clock.run_for(0)

        assert len(sent) == 1

    @pytest.mark.asyncio
    async def test_transport_failure_is_logged(self, caplog):
        """Test that a failing request does not escape the timer."""
        debouncer, transport, clock = make_debouncer(symbols=("BTCUSD", "ETHUSD"))
        transport.request_calculation = AsyncMock(side_effect=[ConnectionError("down"), None])

        debouncer.trigger()
        await clock.run_for(0.1)

        assert transport.request_calculation.await_count == 2
        assert "Funds recalculation request failed" in caplog.text
