"""Order book price selection for a resting limit order.

The selector walks one side of the book from the best level outwards and
stops at the first level holding more foreign volume than the order is
willing to queue behind.  The order is then priced one tick better than that
level, so at most ``allow_above`` of its own volume worth of competing orders
can sit ahead of it.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from ..errors import InsufficientBookDepth
from ..models import OrderBook, OrderBookLevel, OrderSide

ALLOW_ABOVE = Decimal("0.15")
PRICE_TICK = Decimal("0.00001")


@dataclass(frozen=True)
class PriceSelection:
    """Result of :func:`select_price`.

    ``volume_tolerated`` is the competing volume the chosen price leaves
    ahead of the order; ``level_index`` is the level it was derived from.
    """

    price: Decimal
    volume_tolerated: Decimal
    level_index: int


def select_price(
    levels: Sequence[OrderBookLevel],
    side: OrderSide,
    current_price: Optional[Decimal],
    desired_volume: Decimal,
    allow_above: Decimal = ALLOW_ABOVE,
    tick: Decimal = PRICE_TICK,
) -> PriceSelection:
    """Pick the price to hold ``desired_volume`` at.

    Parameters
    ----------
    levels:
        Competing side of the book, best level first.
    side:
        Side of the caller's order.  Buys are nudged up, sells down.
    current_price:
        Price the caller already rests at, or ``None``.  Volume at that
        level is reduced by ``desired_volume`` so the caller's own order is
        not counted as competition.
    desired_volume:
        Volume the caller wants to keep resting.

    Raises
    ------
    InsufficientBookDepth
        If ``levels`` is empty or every level fits in the budget.
    """

    if not levels:
        raise InsufficientBookDepth("Order book side is empty")

    allowed = desired_volume * allow_above
    budget = allowed
    for index, level in enumerate(levels):
        adjusted = level.volume - (desired_volume if level.price == current_price else 0)
        if adjusted > budget:
            break
        budget -= adjusted
    else:
        raise InsufficientBookDepth(
            f"Book exhausted after {len(levels)} levels with {budget} volume budget left"
        )

    if side is OrderSide.BUY:
        price = level.price + tick
    else:
        price = level.price - tick
    return PriceSelection(price=price, volume_tolerated=allowed - budget, level_index=index)


def select_book_price(
    book: OrderBook,
    side: OrderSide,
    current_price: Optional[Decimal],
    desired_volume: Decimal,
    allow_above: Decimal = ALLOW_ABOVE,
    tick: Decimal = PRICE_TICK,
) -> PriceSelection:
    """:func:`select_price` against the side of ``book`` that ``side`` joins."""
    return select_price(book.side_for(side), side, current_price, desired_volume, allow_above, tick)


__all__ = ["ALLOW_ABOVE", "PRICE_TICK", "PriceSelection", "select_price", "select_book_price"]
