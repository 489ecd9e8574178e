"""
Venue State - Event Normalizer.

============================================================
PURPOSE
============================================================
The ONLY place that knows the shape of raw venue payloads.
Translates them into canonical records (see types.py) and
reports the side effects an event implies.

============================================================
INPUT SCHEMA PER EVENT KIND
============================================================
ticker           {symbol, bid, ask, lastPrice}
wallet_snapshot  [{type, currency, balance, balanceAvailable?}, ...]
wallet_update    {type, currency, balance, balanceAvailable?}
order_snapshot   [{id, amount, amountOrig, symbol?, price?, type?,
                   flags?, status?, mtsUpdate?}, ...]
order_new        single order mapping
order_update     single order mapping
order_close      single order mapping
authenticated    None
closed           None
error            exception or message

============================================================
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional

from core.clock import ClockProtocol
from core.exceptions import PayloadError, TransportError

from .config import AdapterConfig
from .types import (
    EventKind,
    NormalizedEvent,
    OrderRecord,
    OrderSide,
    TickerRecord,
    Trigger,
    WalletRecord,
)


logger = logging.getLogger(__name__)


_FUNDS_EVENTS = {
    EventKind.ORDER_NEW,
    EventKind.ORDER_UPDATE,
    EventKind.ORDER_CLOSE,
    EventKind.WALLET_SNAPSHOT,
}


# ============================================================
# VALUE HELPERS
# ============================================================

def to_decimal(value: Any, field_name: str, kind: Optional[EventKind] = None) -> Decimal:
    """Convert a venue number into a Decimal without float drift."""
    if value is None or isinstance(value, bool):
        raise PayloadError(
            f"{field_name} must be a number, got {value!r}",
            event_kind=kind.value if kind else None,
        )
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise PayloadError(
            f"{field_name} is not numeric: {value!r}",
            event_kind=kind.value if kind else None,
            cause=e,
        )


def to_text(value: Any) -> str:
    """
    Render a price as exact text.

    Integral floats render without a trailing '.0' so that 100 and
    100.0 from the wire both become '100'.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return str(value)
    try:
        number = value if isinstance(value, Decimal) else Decimal(repr(value))
    except (InvalidOperation, ValueError):
        return str(value)
    if not number.is_finite():
        return str(value)
    if number == number.to_integral_value():
        return format(number.to_integral_value(), "f")
    return format(number.normalize(), "f")


def _require(payload: Mapping[str, Any], key: str, kind: EventKind) -> Any:
    if key not in payload:
        raise PayloadError(f"missing '{key}'", event_kind=kind.value, payload=payload)
    return payload[key]


def _as_mapping(payload: Any, kind: EventKind) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise PayloadError(
            f"expected a mapping, got {type(payload).__name__}",
            event_kind=kind.value,
            payload=payload,
        )
    return payload


def _as_list(payload: Any, kind: EventKind) -> List[Any]:
    if payload is None:
        return []
    if isinstance(payload, Mapping) or not isinstance(payload, Iterable):
        raise PayloadError(
            f"expected a list, got {type(payload).__name__}",
            event_kind=kind.value,
            payload=payload,
        )
    return list(payload)


# ============================================================
# EVENT NORMALIZER
# ============================================================

class EventNormalizer:
    """
    Translates raw venue payloads into canonical records.

    Reads the configured account mode and leverage, and the clock
    when a venue omits an order update time. Otherwise pure.
    """

    def __init__(self, config: AdapterConfig, clock: ClockProtocol):
        self._config = config
        self._clock = clock
        self._leverage = config.effective_leverage

    # --------------------------------------------------------
    # DISPATCH
    # --------------------------------------------------------

    def normalize(self, kind: EventKind, payload: Any = None) -> NormalizedEvent:
        """
        Normalize one raw event.

        Raises:
            PayloadError: If the payload does not match the kind's schema
        """
        if not isinstance(kind, EventKind):
            raise PayloadError(f"unknown event kind: {kind!r}")

        event = NormalizedEvent(kind=kind)

        if kind == EventKind.TICKER:
            event.records.append(self.normalize_ticker(payload))
        elif kind == EventKind.WALLET_SNAPSHOT:
            event.records.extend(self.normalize_wallets(_as_list(payload, kind), kind))
        elif kind == EventKind.WALLET_UPDATE:
            event.records.extend(self.normalize_wallets([payload], kind))
        elif kind == EventKind.ORDER_SNAPSHOT:
            event.records.extend(self.normalize_orders(_as_list(payload, kind), kind))
        elif kind in (EventKind.ORDER_NEW, EventKind.ORDER_UPDATE, EventKind.ORDER_CLOSE):
            event.records.append(self.normalize_order(payload, kind))
        elif kind == EventKind.ERROR:
            event.error = self.normalize_error(payload)

        if kind in _FUNDS_EVENTS:
            event.triggers.append(Trigger.FUNDS_MAY_HAVE_CHANGED)

        return event

    # --------------------------------------------------------
    # TICKER
    # --------------------------------------------------------

    def normalize_ticker(self, payload: Any) -> TickerRecord:
        kind = EventKind.TICKER
        data = _as_mapping(payload, kind)
        symbol = _require(data, "symbol", kind)
        if not symbol:
            raise PayloadError("empty ticker symbol", event_kind=kind.value, payload=data)
        return TickerRecord(
            symbol=str(symbol),
            bid=to_text(data.get("bid")),
            ask=to_text(data.get("ask")),
            last_price=to_text(data.get("lastPrice")),
        )

    # --------------------------------------------------------
    # WALLETS
    # --------------------------------------------------------

    def normalize_wallets(
        self,
        entries: Iterable[Any],
        kind: EventKind = EventKind.WALLET_UPDATE,
    ) -> List[WalletRecord]:
        """
        Normalize wallet entries of every account type.

        Filtering by account mode is the wallet ledger's job.
        """
        return [self.normalize_wallet(entry, kind) for entry in entries]

    def normalize_wallet(self, payload: Any, kind: EventKind = EventKind.WALLET_UPDATE) -> WalletRecord:
        data = _as_mapping(payload, kind)
        currency = _require(data, "currency", kind)
        balance = to_decimal(_require(data, "balance", kind), "balance", kind)

        available_raw = data.get("balanceAvailable")
        if available_raw is None:
            available = balance * self._leverage
        else:
            available = to_decimal(available_raw, "balanceAvailable", kind) * self._leverage

        return WalletRecord(
            type=str(data.get("type")),
            currency=str(currency).lower(),
            amount=balance,
            available=available,
        )

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    def normalize_orders(
        self,
        orders: Iterable[Any],
        kind: EventKind = EventKind.ORDER_SNAPSHOT,
    ) -> List[OrderRecord]:
        return [self.normalize_order(order, kind) for order in orders]

    def normalize_order(self, payload: Any, kind: EventKind = EventKind.ORDER_UPDATE) -> OrderRecord:
        data = _as_mapping(payload, kind)
        order_id = _require(data, "id", kind)
        amount_orig = to_decimal(_require(data, "amountOrig", kind), "amountOrig", kind)
        amount_left = to_decimal(_require(data, "amount", kind), "amount", kind)

        amount = abs(amount_orig)
        remaining = abs(amount_left)
        executed = max(amount - remaining, Decimal("0"))

        mts_update = data.get("mtsUpdate")
        if mts_update is None:
            last_updated = self._clock.timestamp_ms()
        else:
            stamp = to_decimal(mts_update, "mtsUpdate", kind)
            if not stamp.is_finite():
                raise PayloadError(f"mtsUpdate is not finite: {mts_update!r}", event_kind=kind.value, payload=data)
            last_updated = int(stamp)

        symbol = data.get("symbol")

        return OrderRecord(
            id=order_id,
            side=OrderSide.BUY if amount_orig > 0 else OrderSide.SELL,
            amount=amount,
            remaining=remaining,
            executed=executed,
            price=data.get("price"),
            type=data.get("type"),
            flags=data.get("flags"),
            status=data.get("status"),
            symbol=symbol,
            last_updated=last_updated,
        )

    # --------------------------------------------------------
    # ERRORS
    # --------------------------------------------------------

    @staticmethod
    def normalize_error(payload: Any) -> TransportError:
        if isinstance(payload, TransportError):
            return payload
        if isinstance(payload, BaseException):
            return TransportError(str(payload) or type(payload).__name__, cause=payload)
        if isinstance(payload, Mapping):
            message = payload.get("msg") or payload.get("message") or str(dict(payload))
            context: Dict[str, Any] = {"code": payload.get("code")} if "code" in payload else {}
            return TransportError(str(message), context=context)
        return TransportError(str(payload) if payload is not None else "unknown transport error")
