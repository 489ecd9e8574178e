"""
Venue State - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for watching one venue account.

- Provides argparse-based CLI
- Loads configuration from CLI and environment
- Connects, tracks symbols, logs the cached state, terminates

============================================================
USAGE
============================================================
python -m venue_state --symbol BTCUSD
python -m venue_state --symbol BTCUSD --symbol ETHUSD --margin --max-leverage 2
python -m venue_state --symbol BTCUSD --duration 30 --log-level DEBUG

============================================================
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from core.exceptions import NotFoundError, TransportError, VenueStateException

from .adapter import VenueStateAdapter
from .config import AdapterConfig, BitfinexConfig
from .logging_utils import configure_logging
from .transport.bitfinex import BitfinexTransport


logger = logging.getLogger(__name__)


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="venue-state",
        description="Reconciled view of a Bitfinex account",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Credentials are read from BFX_API_KEY / BFX_API_SECRET (a .env file works).

Examples:
  %(prog)s --symbol BTCUSD                      # Spot account
  %(prog)s --symbol BTCUSD --margin             # Margin account
  %(prog)s --symbol BTCUSD --duration 60        # Watch for a minute
        """
    )

    # --------------------------------------------------------
    # Account Options
    # --------------------------------------------------------
    account_group = parser.add_argument_group("Account Options")

    account_group.add_argument(
        "--symbol", "-s",
        action="append",
        required=True,
        metavar="SYMBOL",
        help="Symbol to track, e.g. BTCUSD (repeatable)",
    )

    account_group.add_argument(
        "--margin",
        action="store_true",
        default=None,
        help="Track the margin account (default: VENUE_MARGIN_MODE or exchange)",
    )

    account_group.add_argument(
        "--max-leverage",
        type=float,
        metavar="N",
        help="Leverage applied to available balances, capped at 3.33",
    )

    # --------------------------------------------------------
    # Run Options
    # --------------------------------------------------------
    run_group = parser.add_argument_group("Run Options")

    run_group.add_argument(
        "--duration",
        type=float,
        default=0.0,
        metavar="SECONDS",
        help="Keep watching this long after the first report (default: 0)",
    )

    run_group.add_argument(
        "--connect-timeout",
        type=float,
        default=30.0,
        metavar="SECONDS",
        help="Give up if the account is not ready within this time (default: 30)",
    )

    run_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Returns:
        List of validation errors
    """
    errors = []

    for symbol in args.symbol:
        if len(symbol) < 6 or not symbol.isalnum():
            errors.append(f"--symbol {symbol!r} is not a pair like BTCUSD")

    if args.max_leverage is not None and args.max_leverage < 0:
        errors.append("--max-leverage must not be negative")

    if args.duration < 0:
        errors.append("--duration must not be negative")

    if args.connect_timeout <= 0:
        errors.append("--connect-timeout must be positive")

    return errors


def build_config(args: argparse.Namespace) -> AdapterConfig:
    """Environment defaults, overridden by explicit CLI flags."""
    config = AdapterConfig.from_env()
    margin_mode = config.margin_mode if args.margin is None else args.margin
    max_leverage = config.max_leverage if args.max_leverage is None else args.max_leverage
    return AdapterConfig(margin_mode=margin_mode, max_leverage=max_leverage)


# ============================================================
# REPORTING
# ============================================================

async def report(adapter: VenueStateAdapter) -> None:
    """Log the cached tickers, balances and open orders."""
    for symbol in adapter.symbols:
        try:
            ticker = adapter.get_ticker(symbol)
        except NotFoundError:
            logger.warning(f"{symbol}: no ticker yet")
            continue
        logger.info(f"{symbol}: bid={ticker.bid} ask={ticker.ask} last={ticker.last_price}")

    for wallet in await adapter.get_wallet_balances():
        logger.info(f"wallet {wallet.type} {wallet.currency}: amount={wallet.amount} available={wallet.available}")

    orders = adapter.get_active_orders()
    logger.info(f"{len(orders)} orders cached")
    for order in orders:
        logger.info(
            f"order {order.id} {order.side.value} {order.amount} {order.symbol} "
            f"@ {order.price} executed={order.executed} status={order.status}"
        )


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(args: argparse.Namespace) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    config = build_config(args)
    adapter = VenueStateAdapter(BitfinexTransport(BitfinexConfig.from_env()), config)

    try:
        for symbol in args.symbol:
            adapter.register_symbol(symbol)
        try:
            await asyncio.wait_for(adapter.initialize(), args.connect_timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Account not ready after {args.connect_timeout}s, check credentials and connectivity",
                operation="initialize",
                cause=e,
            )

        for symbol in args.symbol:
            await adapter.add_symbol(symbol)

        await report(adapter)
        if args.duration > 0:
            await asyncio.sleep(args.duration)
            await report(adapter)
        return 0

    except VenueStateException as e:
        logger.error(e.to_log_format())
        return 1
    finally:
        await adapter.terminate()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    configure_logging(args.log_level)

    try:
        return asyncio.run(async_main(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
