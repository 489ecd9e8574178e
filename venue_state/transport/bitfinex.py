"""
Venue Transport - Bitfinex v2 WebSocket.

============================================================
PURPOSE
============================================================
Authenticated Bitfinex v2 WebSocket transport. Decodes the
venue's positional array frames into the normalizer's input
schema and turns order commands into request/response calls.

============================================================
FRAMES HANDLED
============================================================
{"event": "auth", "status": "OK"}        -> AUTHENTICATED
{"event": "subscribed", "chanId": N}     -> ticker channel map
{"event": "error"}                       -> ERROR
[chanId, "hb"]                           -> ignored
[chanId, [BID, _, ASK, _, _, _, LAST..]] -> TICKER
[0, "ws" | "wu", ...]                    -> WALLET_SNAPSHOT / WALLET_UPDATE
[0, "os" | "on" | "ou" | "oc", ...]      -> ORDER_* events
[0, "n", [.., "on-req" | "oc-req", ..]]  -> submit / cancel acknowledgement

============================================================
"""

import asyncio
import hashlib
import hmac
import logging
import time
from typing import Any, Dict, List, Optional

from core.exceptions import ConfigurationError, TransportError

from ..config import BitfinexConfig
from ..logging_utils import mask_frame, mask_value
from ..types import EventKind, OrderSpec
from .base import VenueTransport
from .websocket_base import JsonWebSocket, SocketConfig


logger = logging.getLogger(__name__)


ACCOUNT_CHANNEL = 0
REDUCE_ONLY_FLAG = 1024

_ORDER_EVENTS = {
    "on": EventKind.ORDER_NEW,
    "ou": EventKind.ORDER_UPDATE,
    "oc": EventKind.ORDER_CLOSE,
}

_SUCCESS_STATUSES = {"SUCCESS"}


# ============================================================
# FRAME DECODING
# ============================================================

def _field(values: List[Any], index: int) -> Any:
    return values[index] if len(values) > index else None


def strip_symbol(symbol: Optional[str]) -> Optional[str]:
    """tBTCUSD -> BTCUSD"""
    if isinstance(symbol, str) and symbol.startswith("t") and symbol[1:2].isupper():
        return symbol[1:]
    return symbol


def decode_order(values: List[Any]) -> Dict[str, Any]:
    """
    Decode an order array.

    [ID, GID, CID, SYMBOL, MTS_CREATE, MTS_UPDATE, AMOUNT, AMOUNT_ORIG,
     TYPE, TYPE_PREV, MTS_TIF, _, FLAGS, STATUS, _, _, PRICE, PRICE_AVG, ...]
    """
    return {
        "id": _field(values, 0),
        "gid": _field(values, 1),
        "cid": _field(values, 2),
        "symbol": strip_symbol(_field(values, 3)),
        "mtsCreate": _field(values, 4),
        "mtsUpdate": _field(values, 5),
        "amount": _field(values, 6),
        "amountOrig": _field(values, 7),
        "type": _field(values, 8),
        "flags": _field(values, 12),
        "status": _field(values, 13),
        "price": _field(values, 16),
        "priceAvg": _field(values, 17),
    }


def decode_wallet(values: List[Any]) -> Dict[str, Any]:
    """
    Decode a wallet array.

    [WALLET_TYPE, CURRENCY, BALANCE, UNSETTLED_INTEREST, BALANCE_AVAILABLE, ...]
    """
    return {
        "type": _field(values, 0),
        "currency": _field(values, 1),
        "balance": _field(values, 2),
        "unsettledInterest": _field(values, 3),
        "balanceAvailable": _field(values, 4),
    }


def decode_ticker(symbol: str, values: List[Any]) -> Dict[str, Any]:
    """
    Decode a trading-pair ticker array.

    [BID, BID_SIZE, ASK, ASK_SIZE, DAILY_CHANGE, DAILY_CHANGE_RELATIVE,
     LAST_PRICE, VOLUME, HIGH, LOW]
    """
    return {
        "symbol": symbol,
        "bid": _field(values, 0),
        "ask": _field(values, 2),
        "lastPrice": _field(values, 6),
    }


def auth_message(api_key: str, api_secret: str, nonce: Optional[str] = None) -> Dict[str, Any]:
    """Build the HMAC-SHA384 signed auth event."""
    nonce = nonce or str(int(time.time() * 1_000_000))
    payload = f"AUTH{nonce}"
    signature = hmac.new(
        api_secret.encode("utf-8"),
        payload.encode("utf-8"),
        hashlib.sha384,
    ).hexdigest()
    return {
        "event": "auth",
        "apiKey": api_key,
        "authSig": signature,
        "authPayload": payload,
        "authNonce": nonce,
    }


# ============================================================
# BITFINEX TRANSPORT
# ============================================================

class BitfinexTransport(JsonWebSocket, VenueTransport):
    """
    Bitfinex v2 authenticated WebSocket transport.

    Subscriptions are per connection; the adapter resubscribes
    after every AUTHENTICATED event, so this class does not
    replay them itself.
    """

    def __init__(self, config: Optional[BitfinexConfig] = None):
        VenueTransport.__init__(self)
        config = config or BitfinexConfig.from_env()
        JsonWebSocket.__init__(
            self,
            SocketConfig(
                url=config.ws_url,
                reconnect=config.reconnect,
                max_reconnect_attempts=config.max_reconnect_attempts,
                reconnect_interval_ms=config.reconnect_interval_ms,
                max_reconnect_interval_ms=config.max_reconnect_interval_ms,
                heartbeat_seconds=config.heartbeat_seconds,
            ),
        )
        self._config = config
        self._authenticated = False
        self._ticker_channels: Dict[int, str] = {}
        self._pending_orders: Dict[int, asyncio.Future] = {}
        self._pending_cancels: Dict[Any, List[asyncio.Future]] = {}
        self._last_cid = 0

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def open(self) -> None:
        """
        Raises:
            ConfigurationError: If no API credentials are configured
            TransportError: If the first connection fails and reconnecting is off
        """
        if not self._config.has_credentials:
            raise ConfigurationError("Bitfinex API key and secret are required", config_key="BFX_API_KEY")
        logger.debug(f"Opening Bitfinex socket for key {mask_value(self._config.api_key)}")
        try:
            await self.start()
        except ConnectionError as e:
            raise TransportError(str(e), operation="open", cause=e)

    async def close(self) -> None:
        self._authenticated = False
        self._fail_pending("connection closed")
        await self.stop()

    async def _on_open(self) -> None:
        self._authenticated = False
        self._ticker_channels = {}
        message = auth_message(self._config.api_key, self._config.api_secret)
        logger.debug(f"socket opened, authenticating: {mask_frame(message)}")
        await self.send_json(message)

    async def _on_lost(self) -> None:
        self._authenticated = False
        self._fail_pending("connection lost")
        await self.emit(EventKind.CLOSED)

    async def _on_give_up(self) -> None:
        await self.emit(EventKind.ERROR, TransportError("Gave up reconnecting to Bitfinex", operation="connect"))

    # --------------------------------------------------------
    # COMMANDS
    # --------------------------------------------------------

    async def subscribe_ticker(self, symbol: str) -> None:
        await self._send_command(
            {"event": "subscribe", "channel": "ticker", "symbol": f"t{symbol}"},
            "subscribe_ticker",
        )

    async def request_calculation(self, keys: List[str]) -> None:
        await self._send_command(
            [ACCOUNT_CHANNEL, "calc", None, [[key] for key in keys]],
            "request_calculation",
        )

    async def submit_order(self, spec: OrderSpec) -> Dict[str, Any]:
        cid = self._next_cid()
        order: Dict[str, Any] = {
            "cid": cid,
            "type": spec.order_type,
            "symbol": f"t{spec.symbol}",
            "amount": str(spec.amount),
        }
        if spec.price is not None:
            order["price"] = str(spec.price)
        if spec.reduce_only:
            order["flags"] = REDUCE_ONLY_FLAG

        future = asyncio.get_running_loop().create_future()
        self._pending_orders[cid] = future
        try:
            await self._send_command([ACCOUNT_CHANNEL, "on", None, order], "submit_order")
            return await self._await_ack(future, "submit_order")
        finally:
            self._pending_orders.pop(cid, None)

    async def cancel_order(self, order_id: Any) -> Dict[str, Any]:
        future = asyncio.get_running_loop().create_future()
        # one cancel ack answers every caller waiting on that order
        self._pending_cancels.setdefault(order_id, []).append(future)
        try:
            await self._send_command([ACCOUNT_CHANNEL, "oc", None, {"id": order_id}], "cancel_order")
            return await self._await_ack(future, "cancel_order")
        finally:
            waiters = self._pending_cancels.get(order_id, [])
            if future in waiters:
                waiters.remove(future)
            if not waiters:
                self._pending_cancels.pop(order_id, None)

    async def _send_command(self, message: Any, operation: str) -> None:
        try:
            await self.send_json(message)
        except ConnectionError as e:
            raise TransportError(f"Cannot {operation}: not connected", operation=operation, cause=e)

    async def _await_ack(self, future: asyncio.Future, operation: str) -> Dict[str, Any]:
        try:
            return await asyncio.wait_for(future, self._config.command_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"No acknowledgement for {operation} after {self._config.command_timeout_seconds}s",
                operation=operation,
                cause=e,
            )

    def _next_cid(self) -> int:
        cid = int(time.time() * 1000)
        if cid <= self._last_cid:
            cid = self._last_cid + 1
        self._last_cid = cid
        return cid

    def _fail_pending(self, reason: str) -> None:
        waiting = [("submit_order", future) for future in self._pending_orders.values()]
        waiting += [("cancel_order", future) for futures in self._pending_cancels.values() for future in futures]
        self._pending_orders.clear()
        self._pending_cancels.clear()

        for operation, future in waiting:
            if not future.done():
                future.set_exception(TransportError(f"{operation} aborted: {reason}", operation=operation))

    # --------------------------------------------------------
    # FRAME ROUTING
    # --------------------------------------------------------

    async def _on_frame(self, frame: Any) -> None:
        if isinstance(frame, dict):
            await self._on_event_frame(frame)
        elif isinstance(frame, list) and frame:
            await self._on_channel_frame(frame)

    async def _on_event_frame(self, frame: Dict[str, Any]) -> None:
        event = frame.get("event")

        if event == "auth":
            if frame.get("status") == "OK":
                self._authenticated = True
                await self.emit(EventKind.AUTHENTICATED)
            else:
                await self.emit(EventKind.ERROR, TransportError(
                    f"Authentication failed: {frame.get('msg')}",
                    operation="auth",
                    context={"code": frame.get("code")},
                ))

        elif event == "subscribed":
            if frame.get("channel") == "ticker":
                self._ticker_channels[frame.get("chanId")] = strip_symbol(frame.get("symbol"))
                logger.debug(f"Ticker channel {frame.get('chanId')} -> {frame.get('symbol')}")

        elif event == "unsubscribed":
            self._ticker_channels.pop(frame.get("chanId"), None)

        elif event == "error":
            await self.emit(EventKind.ERROR, frame)

        elif event == "info":
            logger.info(f"Bitfinex info: {frame.get('msg') or frame.get('version')}")

        else:
            logger.debug(f"Unhandled event frame: {event}")

    async def _on_channel_frame(self, frame: List[Any]) -> None:
        channel = frame[0]
        if len(frame) < 2 or frame[1] == "hb":
            return

        if channel == ACCOUNT_CHANNEL:
            await self._on_account_frame(frame)
            return

        symbol = self._ticker_channels.get(channel)
        if symbol is None:
            logger.debug(f"Frame for unknown channel {channel}")
            return

        values = frame[1]
        if isinstance(values, list) and values and not isinstance(values[0], list):
            await self.emit(EventKind.TICKER, decode_ticker(symbol, values))

    async def _on_account_frame(self, frame: List[Any]) -> None:
        kind = frame[1]
        body = _field(frame, 2)

        if kind == "ws":
            await self.emit(EventKind.WALLET_SNAPSHOT, [decode_wallet(w) for w in body or []])
        elif kind == "wu":
            await self.emit(EventKind.WALLET_UPDATE, decode_wallet(body))
        elif kind == "os":
            await self.emit(EventKind.ORDER_SNAPSHOT, [decode_order(o) for o in body or []])
        elif kind in _ORDER_EVENTS:
            await self.emit(_ORDER_EVENTS[kind], decode_order(body))
        elif kind == "n":
            self._on_notification(body or [])
        else:
            logger.debug(f"Ignoring account frame {kind}")

    def _on_notification(self, body: List[Any]) -> None:
        """[MTS, TYPE, MESSAGE_ID, _, NOTIFY_INFO, CODE, STATUS, TEXT]"""
        kind = _field(body, 1)
        info = _field(body, 4)
        status = _field(body, 6)
        text = _field(body, 7)

        if kind == "on-req" and isinstance(info, list):
            future = self._pending_orders.get(_field(info, 2))
            futures = [future] if future is not None else []
            operation = "submit_order"
            result = decode_order(info)
        elif kind == "oc-req" and isinstance(info, list):
            futures = list(self._pending_cancels.get(_field(info, 0), []))
            operation = "cancel_order"
            result = {"id": _field(info, 0), "status": status, "text": text}
        else:
            if status not in _SUCCESS_STATUSES:
                logger.warning(f"Bitfinex notification {kind}: {status} {text}")
            return

        for future in futures:
            if future.done():
                continue
            if status in _SUCCESS_STATUSES:
                future.set_result(dict(result))
            else:
                future.set_exception(
                    TransportError(f"{operation} rejected: {text}", operation=operation, context={"status": status})
                )
