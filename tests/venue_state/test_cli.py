"""
CLI Tests.

============================================================
PURPOSE
============================================================
Argument parsing, validation and configuration building.
No connection is opened.

============================================================
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from venue_state import cli


class TestParser:
    """Tests for create_parser()."""

    def test_repeatable_symbol(self):
        args = cli.create_parser().parse_args(["--symbol", "BTCUSD", "-s", "ETHUSD"])

        assert args.symbol == ["BTCUSD", "ETHUSD"]
        assert args.margin is None
        assert args.duration == 0.0
        assert args.connect_timeout == 30.0
        assert args.log_level == "INFO"

    def test_symbol_required(self):
        with pytest.raises(SystemExit):
            cli.create_parser().parse_args([])


class TestValidation:
    """Tests for validate_args()."""

    def test_valid(self):
        args = cli.create_parser().parse_args(["--symbol", "BTCUSD", "--max-leverage", "2"])

        assert cli.validate_args(args) == []

    def test_errors(self):
        args = cli.create_parser().parse_args([
            "--symbol", "BTC", "--max-leverage", "-1", "--duration", "-5",
        ])

        errors = cli.validate_args(args)

        assert len(errors) == 3

    def test_connect_timeout_must_be_positive(self):
        args = cli.create_parser().parse_args(["--symbol", "BTCUSD", "--connect-timeout", "0"])

        assert cli.validate_args(args) == ["--connect-timeout must be positive"]

    def test_main_returns_error_code(self, capsys):
        assert cli.main(["--symbol", "BTC"]) == 1
        assert "not a pair" in capsys.readouterr().err


class TestBuildConfig:
    """Tests for build_config()."""

    def test_flags_override_environment(self, monkeypatch):
        monkeypatch.setenv("VENUE_MARGIN_MODE", "false")
        monkeypatch.setenv("VENUE_MAX_LEVERAGE", "1.5")
        args = cli.create_parser().parse_args(["--symbol", "BTCUSD", "--margin", "--max-leverage", "9"])

        config = cli.build_config(args)

        assert config.margin_mode is True
        assert config.effective_leverage == Decimal("3.33")

    def test_environment_used_without_flags(self, monkeypatch):
        monkeypatch.setenv("VENUE_MARGIN_MODE", "1")
        monkeypatch.setenv("VENUE_MAX_LEVERAGE", "1.5")
        args = cli.create_parser().parse_args(["--symbol", "BTCUSD"])

        config = cli.build_config(args)

        assert config.margin_mode is True
        assert config.effective_leverage == Decimal("1.5")


class TestAsyncMain:
    """Tests for async_main() without a network."""

    @pytest.mark.asyncio
    async def test_missing_credentials_exit_code(self, monkeypatch):
        """Test that missing credentials end the run with exit code 1."""
        monkeypatch.setenv("BFX_API_KEY", "")
        monkeypatch.setenv("BFX_API_SECRET", "")
        args = cli.create_parser().parse_args(["--symbol", "BTCUSD"])

        assert await cli.async_main(args) == 1

    @pytest.mark.asyncio
    async def test_reports_after_initialize(self, monkeypatch):
        """Test the happy path with the adapter stubbed."""
        args = cli.create_parser().parse_args(["--symbol", "BTCUSD"])

        with patch.object(cli, "VenueStateAdapter") as adapter_cls, \
                patch.object(cli, "BitfinexTransport"), \
                patch.object(cli, "report", new=AsyncMock()) as report:
            adapter = adapter_cls.return_value
            adapter.initialize = AsyncMock()
            adapter.add_symbol = AsyncMock(return_value=True)
            adapter.terminate = AsyncMock()

            assert await cli.async_main(args) == 0

        adapter.register_symbol.assert_called_once_with("BTCUSD")
        adapter.add_symbol.assert_awaited_once_with("BTCUSD")
        report.assert_awaited_once_with(adapter)
        adapter.terminate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_initialize_timeout_exit_code(self, caplog):
        """Test that an account that never becomes ready ends the run instead of hanging."""
        args = cli.create_parser().parse_args(["--symbol", "BTCUSD", "--connect-timeout", "0.05"])

        async def never_ready():
            await asyncio.Event().wait()

        with patch.object(cli, "VenueStateAdapter") as adapter_cls, \
                patch.object(cli, "BitfinexTransport"):
            adapter = adapter_cls.return_value
            adapter.initialize = AsyncMock(side_effect=never_ready)
            adapter.add_symbol = AsyncMock()
            adapter.terminate = AsyncMock()

            assert await cli.async_main(args) == 1

        adapter.add_symbol.assert_not_awaited()
        adapter.terminate.assert_awaited_once()
        assert "not ready after 0.05s" in caplog.text
