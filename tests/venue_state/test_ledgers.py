"""
Ledger Tests.

============================================================
PURPOSE
============================================================
Keyed tables for orders, wallets and tickers.

TEST CATEGORIES:
- Order ledger: snapshot replace, upsert, race protection, filters
- Wallet ledger: account filtering, idempotence, update counter
- Ticker cache: latest tick, missing symbols

============================================================
"""

from decimal import Decimal

import pytest

from core.exceptions import NotFoundError
from venue_state.ledgers import OrderLedger, TickerCache, WalletLedger
from venue_state.types import AccountMode, OrderRecord, OrderSide, WalletRecord


def order(order_id, side=OrderSide.BUY, remaining="1", status="ACTIVE") -> OrderRecord:
    return OrderRecord(
        id=order_id,
        side=side,
        amount=Decimal("1"),
        remaining=Decimal(remaining),
        executed=Decimal("1") - Decimal(remaining),
        status=status,
    )


def wallet(currency, amount, wallet_type="exchange") -> WalletRecord:
    return WalletRecord(type=wallet_type, currency=currency, amount=Decimal(amount), available=Decimal(amount))


# ============================================================
# ORDER LEDGER TESTS
# ============================================================

class TestOrderLedger:
    """Tests for OrderLedger."""

    def test_snapshot_replaces_everything(self):
        """Test that a snapshot drops orders it does not contain."""
        ledger = OrderLedger()
        ledger.apply_update(order(1))
        ledger.apply_snapshot([order(2), order(3)])

        assert 1 not in ledger
        assert len(ledger) == 2

    def test_empty_snapshot_clears(self):
        """Test that an empty snapshot empties the ledger."""
        ledger = OrderLedger()
        ledger.apply_snapshot([order(1)])
        ledger.apply_snapshot([])

        assert ledger.query() == []

    def test_last_writer_wins(self):
        """Test that updates replace the whole record."""
        ledger = OrderLedger()
        ledger.apply_update(order(1, remaining="1", status="ACTIVE"))
        ledger.apply_update(order(1, remaining="0", status="EXECUTED @ 100.0(1.0)"))

        current = ledger.by_id(1)
        assert current.remaining == Decimal("0")
        assert current.is_executed
        assert len(ledger) == 1

    def test_replace_only_if_missing_keeps_existing(self):
        """Test that a late response does not overwrite streamed state."""
        ledger = OrderLedger()
        streamed = ledger.apply_update(order(1, remaining="0.5", status="PARTIALLY FILLED @ 100.0(0.5)"))

        result = ledger.apply_update(order(1, status="ACTIVE"), replace_only_if_missing=True)

        assert result is streamed
        assert ledger.by_id(1) is streamed

    def test_replace_only_if_missing_inserts_new(self):
        """Test that a response for an unseen order is stored."""
        ledger = OrderLedger()
        record = order(7)

        assert ledger.apply_update(record, replace_only_if_missing=True) is record
        assert ledger.by_id(7) is record

    @pytest.mark.parametrize("side,expected", [
        ("buy", [1, 3]),
        ("SELL", [2]),
        (OrderSide.SELL, [2]),
        (None, [1, 2, 3]),
        ("both", [1, 2, 3]),
    ])
    def test_side_filter(self, side, expected):
        """Test filtering by side; unknown sides do not filter."""
        ledger = OrderLedger()
        ledger.apply_snapshot([order(1), order(2, side=OrderSide.SELL), order(3)])

        assert [o.id for o in ledger.query(side)] == expected

    def test_unknown_id(self):
        """Test lookup of a missing order."""
        assert OrderLedger().by_id(42) is None


# ============================================================
# WALLET LEDGER TESTS
# ============================================================

class TestWalletLedger:
    """Tests for WalletLedger."""

    def test_filters_other_account_types(self):
        """Test that only the configured account type is kept."""
        ledger = WalletLedger(AccountMode.MARGIN)
        applied = ledger.apply_batch([wallet("usd", "10", "margin"), wallet("usd", "99", "exchange")])

        assert [w.type for w in applied] == ["margin"]
        assert [w.amount for w in ledger.query()] == [Decimal("10")]

    def test_upsert_per_currency(self):
        """Test that a later batch replaces the same currency."""
        ledger = WalletLedger(AccountMode.EXCHANGE)
        ledger.apply_batch([wallet("usd", "10"), wallet("btc", "1")])
        ledger.apply_batch([wallet("usd", "12")])

        balances = {w.currency: w.amount for w in ledger.query()}
        assert balances == {"usd": Decimal("12"), "btc": Decimal("1")}

    def test_reapplying_is_idempotent(self):
        """Test that applying the same batch twice changes nothing."""
        ledger = WalletLedger(AccountMode.EXCHANGE)
        batch = [wallet("usd", "10"), wallet("btc", "1")]
        ledger.apply_batch(batch)
        first = ledger.query()
        ledger.apply_batch(batch)

        assert sorted(ledger.query(), key=lambda w: w.currency) == sorted(first, key=lambda w: w.currency)

    def test_update_counter_moves_on_filtered_batch(self):
        """Test that a batch counts even when every entry is filtered."""
        ledger = WalletLedger(AccountMode.EXCHANGE)
        assert not ledger.has_received_update()

        ledger.apply_batch([wallet("usd", "1", "margin")])

        assert ledger.has_received_update()
        assert ledger.update_count == 1
        assert ledger.query() == []

    def test_clear_resets_counter(self):
        """Test that clearing forgets balances and updates."""
        ledger = WalletLedger(AccountMode.EXCHANGE)
        ledger.apply_batch([wallet("usd", "1")])
        ledger.clear()

        assert ledger.query() == []
        assert not ledger.has_received_update()


# ============================================================
# TICKER CACHE TESTS
# ============================================================

class TestTickerCache:
    """Tests for TickerCache."""

    def test_latest_tick_wins(self):
        """Test that a newer tick replaces the older one."""
        cache = TickerCache()
        cache.apply_tick("BTCUSD", "100", "101", "100.5")
        cache.apply_tick("BTCUSD", "102", "103", "102.5")

        ticker = cache.get("BTCUSD")
        assert (ticker.bid, ticker.ask, ticker.last_price) == ("102", "103", "102.5")
        assert len(cache) == 1

    def test_missing_symbol_raises(self):
        """Test NotFoundError for a symbol that never ticked."""
        cache = TickerCache()

        with pytest.raises(NotFoundError) as exc_info:
            cache.get("ETHUSD")

        assert exc_info.value.context["key"] == "ETHUSD"
        assert not cache.has("ETHUSD")

    def test_clear(self):
        """Test clearing the cache."""
        cache = TickerCache()
        cache.apply_tick("BTCUSD", "1", "2", "1.5")
        cache.clear()

        assert not cache.has("BTCUSD")
