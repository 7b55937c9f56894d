"""Outbound parameter construction for private endpoints.

Each query object is a plain dataclass; a matching ``*_params`` function
validates it and returns the insertion-ordered parameter map that the
dispatcher form-encodes and signs.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Union

from .errors import InvalidConfiguration
from .execution.validators import comma_separated, exclusive, validate_order
from .models import LedgerType, OrderSide, OrderType


def format_decimal(value: Decimal) -> str:
    """Plain positional notation, never scientific."""
    return format(Decimal(value), "f")


def to_unix(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


class PriceKind(enum.Enum):
    ABSOLUTE = "absolute"
    ADD = "add"
    ADD_PERCENTAGE = "add_percentage"
    SUBTRACT = "subtract"
    SUBTRACT_PERCENTAGE = "subtract_percentage"
    ADD_OR_SUBTRACT = "add_or_subtract"
    ADD_OR_SUBTRACT_PERCENTAGE = "add_or_subtract_percentage"


_FORMATTERS: Dict[PriceKind, Callable[[str], str]] = {
    PriceKind.ABSOLUTE: lambda v: v,
    PriceKind.ADD: lambda v: f"+{v}",
    PriceKind.ADD_PERCENTAGE: lambda v: f"+{v}%",
    PriceKind.SUBTRACT: lambda v: f"-{v}",
    PriceKind.SUBTRACT_PERCENTAGE: lambda v: f"-{v}%",
    PriceKind.ADD_OR_SUBTRACT: lambda v: f"#{v}",
    PriceKind.ADD_OR_SUBTRACT_PERCENTAGE: lambda v: f"#{v}%",
}

_PREFIXES = {"+": PriceKind.ADD, "-": PriceKind.SUBTRACT, "#": PriceKind.ADD_OR_SUBTRACT}
_PERCENTAGE_OF = {
    PriceKind.ADD: PriceKind.ADD_PERCENTAGE,
    PriceKind.SUBTRACT: PriceKind.SUBTRACT_PERCENTAGE,
    PriceKind.ADD_OR_SUBTRACT: PriceKind.ADD_OR_SUBTRACT_PERCENTAGE,
}


@dataclass(frozen=True)
class OrderPrice:
    """Absolute or relative order price, e.g. ``+5%`` relative to market."""

    kind: PriceKind
    amount: Decimal

    @classmethod
    def absolute(cls, price: Union[Decimal, str, int]) -> "OrderPrice":
        return cls(PriceKind.ABSOLUTE, Decimal(price))

    def __str__(self) -> str:
        return format_price(self)


def format_price(price: Union[OrderPrice, Decimal]) -> str:
    """Render a price the way the venue expects it."""
    if not isinstance(price, OrderPrice):
        return format_decimal(price)
    return _FORMATTERS[price.kind](format_decimal(price.amount))


def parse_order_price(text: str) -> OrderPrice:
    """Parse ``"123.4"``, ``"+5"``, ``"-2%"``, ``"#1.5%"`` and similar."""
    if text is None or not text.strip():
        raise InvalidConfiguration("Price must not be empty")
    value = text.strip()

    kind = _PREFIXES.get(value[0], PriceKind.ABSOLUTE)
    start = 0 if kind is PriceKind.ABSOLUTE else 1
    end = len(value)
    if value.endswith("%"):
        if kind is PriceKind.ABSOLUTE:
            raise InvalidConfiguration("Percentages can only be specified as relative values")
        kind = _PERCENTAGE_OF[kind]
        end -= 1

    try:
        amount = Decimal(value[start:end])
    except InvalidOperation as exc:
        raise InvalidConfiguration(f"Could not parse value {value[start:end]!r} as a number") from exc
    return OrderPrice(kind, amount)


@dataclass
class OrderRequest:
    """Everything ``AddOrder`` accepts."""

    pair: str
    side: Optional[OrderSide]
    order_type: Optional[OrderType]
    volume: Decimal
    price: Optional[Union[OrderPrice, Decimal]] = None
    price2: Optional[Union[OrderPrice, Decimal]] = None
    leverage: Optional[str] = None
    volume_in_quote_currency: bool = False
    prefer_fee_in_base_currency: bool = False
    prefer_fee_in_quote_currency: bool = False
    no_market_price_protection: bool = False
    post_only: bool = False
    start_time: Optional[datetime] = None
    relative_start_seconds: Optional[int] = None
    expire_time: Optional[datetime] = None
    relative_expire_seconds: Optional[int] = None
    user_reference_id: Optional[int] = None
    validate_only: bool = False
    close_order_type: Optional[OrderType] = None
    close_price: Optional[Union[OrderPrice, Decimal]] = None
    close_price2: Optional[Union[OrderPrice, Decimal]] = None

    @classmethod
    def limit(cls, pair: str, side: OrderSide, volume: Decimal, price: Decimal) -> "OrderRequest":
        return cls(pair=pair, side=side, order_type=OrderType.LIMIT, volume=volume, price=price)


def order_request_params(request: OrderRequest) -> Dict[str, str]:
    validate_order(request)
    params = {
        "pair": request.pair,
        "type": request.side.value,
        "ordertype": request.order_type.value,
        "volume": format_decimal(request.volume),
    }
    if request.price is not None:
        params["price"] = format_price(request.price)
    if request.price2 is not None:
        params["price2"] = format_price(request.price2)
    if request.leverage is not None:
        params["leverage"] = request.leverage

    flags = [
        name
        for name, enabled in (
            ("viqc", request.volume_in_quote_currency),
            ("fcib", request.prefer_fee_in_base_currency),
            ("fciq", request.prefer_fee_in_quote_currency),
            ("nompp", request.no_market_price_protection),
            ("post", request.post_only),
        )
        if enabled
    ]
    if flags:
        params["oflags"] = ",".join(flags)

    if request.start_time is not None:
        params["starttm"] = str(to_unix(request.start_time))
    if request.relative_start_seconds is not None:
        params["starttm"] = f"+{request.relative_start_seconds}"
    if request.expire_time is not None:
        params["expiretm"] = str(to_unix(request.expire_time))
    if request.relative_expire_seconds is not None:
        params["expiretm"] = f"+{request.relative_expire_seconds}"

    if request.user_reference_id is not None:
        params["userref"] = str(request.user_reference_id)
    if request.validate_only:
        params["validate"] = "1"

    if request.close_order_type is not None:
        params["close[ordertype]"] = request.close_order_type.value
    if request.close_price is not None:
        params["close[price]"] = format_price(request.close_price)
    if request.close_price2 is not None:
        params["close[price2]"] = format_price(request.close_price2)
    return params


@dataclass
class LedgerQuery:
    """Filters for ``Ledgers``; empty ``assets`` means all assets."""

    assets: List[str] = field(default_factory=list)
    type: Optional[LedgerType] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    start_ledger_id: Optional[str] = None
    end_ledger_id: Optional[str] = None
    offset: int = 0


def ledger_query_params(query: LedgerQuery) -> Dict[str, str]:
    exclusive(query.start_time, query.start_ledger_id, "start_time", "start_ledger_id")
    exclusive(query.end_time, query.end_ledger_id, "end_time", "end_ledger_id")

    params: Dict[str, str] = {}
    if query.assets:
        params["asset"] = comma_separated(query.assets, "assets")
    if query.type is not None:
        params["type"] = query.type.value
    if query.start_time is not None:
        params["start"] = str(to_unix(query.start_time))
    if query.start_ledger_id is not None:
        params["start"] = query.start_ledger_id
    if query.end_time is not None:
        params["end"] = str(to_unix(query.end_time))
    if query.end_ledger_id is not None:
        params["end"] = query.end_ledger_id
    params["ofs"] = str(query.offset)
    return params


class CloseTime(enum.Enum):
    OPEN = "open"
    CLOSE = "close"
    BOTH = "both"


@dataclass
class ClosedOrdersQuery:
    include_trades: bool = False
    user_reference_id: Optional[int] = None
    start_time: Optional[datetime] = None
    start_transaction_id: Optional[str] = None
    end_time: Optional[datetime] = None
    end_transaction_id: Optional[str] = None
    offset: int = 0
    close_time: Optional[CloseTime] = None


def closed_orders_params(query: ClosedOrdersQuery) -> Dict[str, str]:
    exclusive(query.start_time, query.start_transaction_id, "start_time", "start_transaction_id")
    exclusive(query.end_time, query.end_transaction_id, "end_time", "end_transaction_id")

    params: Dict[str, str] = {}
    if query.include_trades:
        params["trades"] = "1"
    if query.user_reference_id is not None:
        params["userref"] = str(query.user_reference_id)
    if query.start_time is not None:
        params["start"] = str(to_unix(query.start_time))
    if query.start_transaction_id is not None:
        params["start"] = query.start_transaction_id
    if query.end_time is not None:
        params["end"] = str(to_unix(query.end_time))
    if query.end_transaction_id is not None:
        params["end"] = query.end_transaction_id
    if query.close_time is not None:
        params["closetime"] = query.close_time.value
    params["ofs"] = str(query.offset)
    return params


__all__ = [
    "format_decimal",
    "to_unix",
    "PriceKind",
    "OrderPrice",
    "format_price",
    "parse_order_price",
    "OrderRequest",
    "order_request_params",
    "LedgerQuery",
    "ledger_query_params",
    "CloseTime",
    "ClosedOrdersQuery",
    "closed_orders_params",
]
