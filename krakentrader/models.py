"""
Domain records decoded from venue responses.

The venue encodes prices and volumes as decimal strings and timestamps as
fractional unix seconds.  Decoders in this module turn the raw ``result``
payloads into dataclasses using :class:`~decimal.Decimal` throughout so that
price comparisons in the execution layer are exact.

Records
-------

OrderBookLevel / OrderBook
    One side of the book is a list of levels ordered best to worst
    (descending for bids, ascending for asks).
OrderInfo
    Snapshot of a single order as reported by ``QueryOrders``,
    ``OpenOrders`` or ``ClosedOrders``.
RestingOrder
    The order an execution engine currently keeps on the book.
AssetInfo, LedgerEntry, AddOrderResult, CancelResult
    Remaining endpoint results.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Type, TypeVar

from .errors import ResponseError


def to_decimal(value: Any, default: Decimal = Decimal(0)) -> Decimal:
    """Convert a venue number (string, int or Decimal) to ``Decimal``."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def from_unix(timestamp: Any) -> Optional[datetime]:
    """Return an aware UTC datetime, or ``None`` for a zero/missing timestamp."""
    if timestamp is None:
        return None
    seconds = float(timestamp)
    if seconds == 0:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class OrderSide(enum.Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(enum.Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP_LOSS = "stop-loss"
    TAKE_PROFIT = "take-profit"
    STOP_LOSS_PROFIT = "stop-loss-profit"
    STOP_LOSS_PROFIT_LIMIT = "stop-loss-profit-limit"
    STOP_LOSS_LIMIT = "stop-loss-limit"
    TAKE_PROFIT_LIMIT = "take-profit-limit"
    TRAILING_STOP = "trailing-stop"
    TRAILING_STOP_LIMIT = "trailing-stop-limit"
    STOP_LOSS_AND_LIMIT = "stop-loss-and-limit"
    SETTLE_POSITION = "settle-position"


class OrderStatus(enum.Enum):
    PENDING = "pending"
    OPEN = "open"
    CLOSED = "closed"
    CANCELED = "canceled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.CLOSED, OrderStatus.CANCELED, OrderStatus.EXPIRED)


class LedgerType(enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRADE = "trade"
    MARGIN = "margin"


@dataclass(frozen=True)
class OrderBookLevel:
    """Aggregate volume resting at one price."""

    price: Decimal
    volume: Decimal
    observed_at: Optional[datetime] = None

    def __str__(self) -> str:
        return f"{self.volume} @ {self.price}"


@dataclass(frozen=True)
class OrderBook:
    """Both sides of the book for one pair."""

    pair: str
    asks: List[OrderBookLevel] = field(default_factory=list)
    bids: List[OrderBookLevel] = field(default_factory=list)

    def side_for(self, side: OrderSide) -> List[OrderBookLevel]:
        """Levels an order of ``side`` competes with: bids for buys, asks for sells."""
        return self.bids if side is OrderSide.BUY else self.asks

    def __str__(self) -> str:
        return f"{len(self.asks)} asks, {len(self.bids)} bids"


@dataclass
class OrderInfo:
    """Snapshot of an order's state on the venue.

    Only ``transaction_id``, ``status``, ``volume`` and ``volume_executed``
    are needed by the execution engine; everything else is informational.
    """

    transaction_id: str
    status: OrderStatus
    volume: Decimal
    volume_executed: Decimal = Decimal(0)
    pair: str = ""
    side: Optional[OrderSide] = None
    order_type: Optional[OrderType] = None
    price: Decimal = Decimal(0)
    price2: Decimal = Decimal(0)
    leverage: Optional[str] = None
    description: str = ""
    close_description: str = ""
    referral_id: Optional[str] = None
    user_reference_id: Optional[int] = None
    open_time: Optional[datetime] = None
    start_time: Optional[datetime] = None
    expire_time: Optional[datetime] = None
    close_time: Optional[datetime] = None
    close_reason: Optional[str] = None
    cost: Decimal = Decimal(0)
    fee: Decimal = Decimal(0)
    average_price: Decimal = Decimal(0)
    stop_price: Decimal = Decimal(0)
    limit_price: Decimal = Decimal(0)
    misc: FrozenSet[str] = frozenset()
    flags: FrozenSet[str] = frozenset()
    trade_ids: List[str] = field(default_factory=list)

    @property
    def remaining(self) -> Decimal:
        return self.volume - self.volume_executed

    def __str__(self) -> str:
        return self.description or f"{self.transaction_id} ({self.status.value})"


@dataclass
class RestingOrder:
    """The limit order an engine currently owns on the book."""

    transaction_id: str
    side: OrderSide
    pair: str
    price: Decimal
    original_volume: Decimal


@dataclass(frozen=True)
class AssetInfo:
    name: str
    alt_name: str
    asset_class: str
    decimals: int
    display_decimals: int

    def __str__(self) -> str:
        if self.name == self.alt_name:
            return f"{self.name} ({self.asset_class})"
        return f"{self.name} or {self.alt_name} ({self.asset_class})"


@dataclass(frozen=True)
class LedgerEntry:
    ledger_id: str
    ref_id: str
    timestamp: Optional[datetime]
    type: LedgerType
    asset_class: str
    asset: str
    amount: Decimal
    fee: Decimal
    balance: Decimal

    def __str__(self) -> str:
        when = self.timestamp.isoformat() if self.timestamp else "?"
        if self.fee != 0:
            return f"[{when}] {self.type.value} {self.amount} of {self.asset} (Fee: {self.fee})"
        return f"[{when}] {self.type.value} {self.amount} of {self.asset} (no fee)"


@dataclass(frozen=True)
class AddOrderResult:
    order_description: str
    close_order_description: Optional[str]
    transaction_ids: List[str]


@dataclass(frozen=True)
class CancelResult:
    count: int
    pending: bool


# ----------------------------------------------------------------------
# Decoders


E = TypeVar("E", bound=enum.Enum)


def _member(enum_cls: Type[E], value: Any) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        raise ResponseError(f"Unexpected {enum_cls.__name__} value {value!r} in venue response") from None


def _parse_levels(entries: Any) -> List[OrderBookLevel]:
    levels = []
    for entry in entries or []:
        observed = from_unix(entry[2]) if len(entry) > 2 else None
        levels.append(OrderBookLevel(to_decimal(entry[0]), to_decimal(entry[1]), observed))
    return levels


def parse_order_book(result: Mapping[str, Any]) -> OrderBook:
    """Decode a ``Depth`` result keyed by the venue's pair name."""
    if not result:
        return OrderBook(pair="")
    pair, book = next(iter(result.items()))
    return OrderBook(pair=pair, asks=_parse_levels(book.get("asks")), bids=_parse_levels(book.get("bids")))


def _parse_order(transaction_id: str, value: Mapping[str, Any]) -> OrderInfo:
    descr = value.get("descr") or {}
    userref = value.get("userref")
    return OrderInfo(
        transaction_id=transaction_id,
        status=_member(OrderStatus, value.get("status")),
        volume=to_decimal(value.get("vol")),
        volume_executed=to_decimal(value.get("vol_exec")),
        pair=descr.get("pair", ""),
        side=_member(OrderSide, descr["type"]) if descr.get("type") else None,
        order_type=_member(OrderType, descr["ordertype"]) if descr.get("ordertype") else None,
        price=to_decimal(descr.get("price")),
        price2=to_decimal(descr.get("price2")),
        leverage=descr.get("leverage"),
        description=descr.get("order", ""),
        close_description=descr.get("close", "") or "",
        referral_id=value.get("refid"),
        user_reference_id=int(userref) if userref is not None else None,
        open_time=from_unix(value.get("opentm")),
        start_time=from_unix(value.get("starttm")),
        expire_time=from_unix(value.get("expiretm")),
        close_time=from_unix(value.get("closetm")),
        close_reason=value.get("reason"),
        cost=to_decimal(value.get("cost")),
        fee=to_decimal(value.get("fee")),
        average_price=to_decimal(value.get("price")),
        stop_price=to_decimal(value.get("stopprice")),
        limit_price=to_decimal(value.get("limitprice")),
        misc=frozenset(filter(None, (value.get("misc") or "").split(","))),
        flags=frozenset(filter(None, (value.get("oflags") or "").split(","))),
        trade_ids=list(value.get("trades") or []),
    )


def parse_orders(result: Optional[Mapping[str, Any]]) -> Dict[str, OrderInfo]:
    """Decode a mapping of transaction id to raw order."""
    return {txid: _parse_order(txid, raw) for txid, raw in (result or {}).items()}


def parse_assets(result: Mapping[str, Any]) -> List[AssetInfo]:
    return [
        AssetInfo(
            name=name,
            alt_name=raw.get("altname", name),
            asset_class=raw.get("aclass", ""),
            decimals=int(raw.get("decimals", 0)),
            display_decimals=int(raw.get("display_decimals", 0)),
        )
        for name, raw in result.items()
    ]


def parse_ledger_entries(result: Optional[Mapping[str, Any]]) -> List[LedgerEntry]:
    entries = []
    for ledger_id, raw in (result or {}).items():
        entries.append(
            LedgerEntry(
                ledger_id=ledger_id,
                ref_id=raw.get("refid", ""),
                timestamp=from_unix(raw.get("time")),
                type=_member(LedgerType, raw.get("type")),
                asset_class=raw.get("aclass", ""),
                asset=raw.get("asset", ""),
                amount=to_decimal(raw.get("amount")),
                fee=to_decimal(raw.get("fee")),
                balance=to_decimal(raw.get("balance")),
            )
        )
    return entries


def parse_add_order(result: Mapping[str, Any]) -> AddOrderResult:
    descr = result.get("descr") or {}
    return AddOrderResult(
        order_description=descr.get("order", ""),
        close_order_description=descr.get("close"),
        transaction_ids=list(result.get("txid") or []),
    )


def parse_cancel(result: Mapping[str, Any]) -> CancelResult:
    return CancelResult(count=int(result.get("count", 0)), pending=bool(result.get("pending", False)))


__all__ = [
    "to_decimal",
    "from_unix",
    "OrderSide",
    "OrderType",
    "OrderStatus",
    "LedgerType",
    "OrderBookLevel",
    "OrderBook",
    "OrderInfo",
    "RestingOrder",
    "AssetInfo",
    "LedgerEntry",
    "AddOrderResult",
    "CancelResult",
    "parse_order_book",
    "parse_orders",
    "parse_assets",
    "parse_ledger_entries",
    "parse_add_order",
    "parse_cancel",
]
