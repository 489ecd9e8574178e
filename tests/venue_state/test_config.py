"""
Configuration Tests.

============================================================
PURPOSE
============================================================
Leverage clamping, account mode and environment loading.

============================================================
"""

from decimal import Decimal

import pytest

from core.exceptions import ConfigurationError
from venue_state.config import AdapterConfig, BitfinexConfig, MAX_LEVERAGE_CAP
from venue_state.types import AccountMode


# ============================================================
# ADAPTER CONFIG TESTS
# ============================================================

class TestAdapterConfig:
    """Tests for AdapterConfig."""

    def test_defaults_to_exchange_account(self):
        """Test default account mode and leverage."""
        config = AdapterConfig()

        assert config.account_mode == AccountMode.EXCHANGE
        assert config.effective_leverage == Decimal("1")

    def test_leverage_ignored_outside_margin(self):
        """Test that spot accounts never get leverage."""
        config = AdapterConfig(margin_mode=False, max_leverage=3)

        assert config.effective_leverage == Decimal("1")

    def test_leverage_clamped(self):
        """Test that leverage is capped."""
        config = AdapterConfig(margin_mode=True, max_leverage=5)

        assert config.account_mode == AccountMode.MARGIN
        assert config.effective_leverage == MAX_LEVERAGE_CAP == Decimal("3.33")

    def test_leverage_below_cap(self):
        """Test that smaller leverage passes through exactly."""
        assert AdapterConfig(margin_mode=True, max_leverage=2.5).effective_leverage == Decimal("2.5")

    def test_zero_leverage_means_unset(self):
        """Test that zero leverage falls back to 1."""
        assert AdapterConfig(margin_mode=True, max_leverage=0).effective_leverage == Decimal("1")

    def test_negative_leverage_rejected(self):
        """Test that negative leverage is a configuration error."""
        with pytest.raises(ConfigurationError):
            AdapterConfig(margin_mode=True, max_leverage=-1)

    def test_from_env(self, monkeypatch):
        """Test loading from environment variables."""
        monkeypatch.setenv("VENUE_MARGIN_MODE", "true")
        monkeypatch.setenv("VENUE_MAX_LEVERAGE", "2")

        config = AdapterConfig.from_env()

        assert config.margin_mode is True
        assert config.effective_leverage == Decimal("2")

    def test_from_env_rejects_garbage(self, monkeypatch):
        """Test that a non-numeric leverage is rejected."""
        monkeypatch.setenv("VENUE_MAX_LEVERAGE", "lots")

        with pytest.raises(ConfigurationError) as exc_info:
            AdapterConfig.from_env()

        assert exc_info.value.context["config_key"] == "VENUE_MAX_LEVERAGE"


# ============================================================
# BITFINEX CONFIG TESTS
# ============================================================

class TestBitfinexConfig:
    """Tests for BitfinexConfig."""

    def test_credentials_required_for_has_credentials(self):
        """Test the credentials check."""
        assert not BitfinexConfig().has_credentials
        assert not BitfinexConfig(api_key="key").has_credentials
        assert BitfinexConfig(api_key="key", api_secret="secret").has_credentials

    def test_timeout_must_be_positive(self):
        """Test command timeout validation."""
        with pytest.raises(ConfigurationError):
            BitfinexConfig(command_timeout_seconds=0)

    def test_from_env(self, monkeypatch):
        """Test loading credentials and URL from the environment."""
        monkeypatch.setenv("BFX_API_KEY", "key")
        monkeypatch.setenv("BFX_API_SECRET", "secret")
        monkeypatch.setenv("BFX_WS_URL", "wss://example.invalid/ws/2")

        config = BitfinexConfig.from_env()

        assert config.api_key == "key"
        assert config.api_secret == "secret"
        assert config.ws_url == "wss://example.invalid/ws/2"
