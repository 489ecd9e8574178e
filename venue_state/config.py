"""
Venue State - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the venue state adapter.

CRITICAL CONSTRAINTS:
- Leverage is clamped, never trusted as given
- Timing constants are fixed, not caller-tunable
- Credentials come from the environment only

============================================================
"""

import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv

from core.exceptions import ConfigurationError

from .types import AccountMode


# ============================================================
# TIMING CONSTANTS
# ============================================================

FUNDS_REFRESH_DELAY_SECONDS = 0.1
"""Trailing-edge debounce window for wallet recalculation requests."""

SETTLE_DELAY_SECONDS = 1.0
"""Delay after authentication before the adapter is declared ready."""

TICKER_POLL_ATTEMPTS = 10
"""Polls made by add_symbol while waiting for the first tick."""

TICKER_POLL_INTERVAL_SECONDS = 0.3
"""Interval between ticker polls."""

WALLET_WAIT_SECONDS = 0.3
"""One-off wait for wallet balances when no update has been seen yet."""

MAX_LEVERAGE_CAP = Decimal("3.33")
"""Upper bound for the margin leverage multiplier."""


_TRUE_VALUES = {"1", "true", "yes", "on"}


# ============================================================
# ADAPTER CONFIGURATION
# ============================================================

@dataclass
class AdapterConfig:
    """
    Account mode configuration.

    Leverage only applies in margin mode; exchange (spot) accounts
    always use a multiplier of 1.
    """

    margin_mode: bool = False
    """Whether the tracked account is a margin account."""

    max_leverage: Optional[float] = None
    """Requested leverage multiplier. Clamped to MAX_LEVERAGE_CAP."""

    def __post_init__(self):
        if self.max_leverage is not None and self.max_leverage < 0:
            raise ConfigurationError(
                "max_leverage must not be negative",
                config_key="max_leverage",
                actual_value=self.max_leverage,
            )

    @property
    def account_mode(self) -> AccountMode:
        """Wallet type that the wallet ledger keeps."""
        return AccountMode.MARGIN if self.margin_mode else AccountMode.EXCHANGE

    @property
    def effective_leverage(self) -> Decimal:
        """Multiplier applied to available wallet balances."""
        if not self.margin_mode or not self.max_leverage:
            return Decimal("1")
        return min(Decimal(str(self.max_leverage)), MAX_LEVERAGE_CAP)

    @classmethod
    def from_env(cls) -> "AdapterConfig":
        """Build from VENUE_MARGIN_MODE and VENUE_MAX_LEVERAGE."""
        load_dotenv()
        margin_mode = os.getenv("VENUE_MARGIN_MODE", "false").strip().lower() in _TRUE_VALUES
        raw_leverage = os.getenv("VENUE_MAX_LEVERAGE")
        max_leverage = None
        if raw_leverage:
            try:
                max_leverage = float(raw_leverage)
            except ValueError as e:
                raise ConfigurationError(
                    "VENUE_MAX_LEVERAGE is not a number",
                    config_key="VENUE_MAX_LEVERAGE",
                    actual_value=raw_leverage,
                    cause=e,
                )
        return cls(margin_mode=margin_mode, max_leverage=max_leverage)


# ============================================================
# TRANSPORT CONFIGURATION
# ============================================================

@dataclass
class BitfinexConfig:
    """
    Connection settings for the Bitfinex v2 WebSocket transport.
    """

    api_key: str = ""
    """API key. Never logged unmasked."""

    api_secret: str = ""
    """API secret. Never logged."""

    ws_url: str = "wss://api.bitfinex.com/ws/2"
    """Authenticated WebSocket endpoint."""

    # Reconnection
    reconnect: bool = True
    """Whether to reconnect after the socket drops."""

    max_reconnect_attempts: int = 10
    """Reconnection attempts before giving up."""

    reconnect_interval_ms: int = 1000
    """Initial reconnection delay."""

    max_reconnect_interval_ms: int = 30000
    """Upper bound for the reconnection backoff."""

    # Heartbeat
    heartbeat_seconds: float = 20.0
    """WebSocket-level ping interval."""

    # Commands
    command_timeout_seconds: float = 10.0
    """How long submit/cancel wait for the venue notification."""

    def __post_init__(self):
        if self.command_timeout_seconds <= 0:
            raise ConfigurationError(
                "command_timeout_seconds must be positive",
                config_key="command_timeout_seconds",
                actual_value=self.command_timeout_seconds,
            )

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_secret)

    @classmethod
    def from_env(cls) -> "BitfinexConfig":
        """Build from BFX_API_KEY, BFX_API_SECRET and BFX_WS_URL."""
        load_dotenv()
        config = cls(
            api_key=os.getenv("BFX_API_KEY", ""),
            api_secret=os.getenv("BFX_API_SECRET", ""),
        )
        ws_url = os.getenv("BFX_WS_URL")
        if ws_url:
            config.ws_url = ws_url
        return config
