"""
Order execution engine keeping one limit order competitively priced.

The engine places a limit order, then repeatedly fetches the order's state
and the order book side it competes with (concurrently), and either holds
or moves the order to the price chosen by :func:`select_price`.

States progress as:

``PLACING`` → ``MONITORING`` → ``HOLDING`` or ``REPRICING`` → ``MONITORING``
→ ... → ``DONE``

Moving an order is cancel-then-replace.  The venue may close the order
between the decision and the cancel, so a rejected cancel is treated as a
transient race: the engine waits and re-evaluates without touching its
recorded price or transaction id.  A successful cancel is followed by a fresh
snapshot so that only the volume still unfilled is placed again.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Protocol

from ..errors import ResponseError
from ..models import AddOrderResult, CancelResult, OrderBook, OrderInfo, OrderSide, OrderStatus, RestingOrder
from ..queries import OrderRequest
from ..utils.logging import get_logger, log_json
from ..utils.monitoring import cancel_race_counter, reprice_counter
from .pricing import ALLOW_ABOVE, PRICE_TICK, select_book_price

logger = get_logger()


class OrderVenue(Protocol):
    """The subset of :class:`~krakentrader.connectors.kraken.KrakenClient` the engine uses."""

    async def add_order(self, request: OrderRequest) -> AddOrderResult: ...

    async def cancel_order(self, transaction_id: str) -> CancelResult: ...

    async def query_order(self, transaction_id: str) -> OrderInfo: ...

    async def get_order_book(self, pair: str, count: Optional[int] = None) -> OrderBook: ...


class EngineState(enum.Enum):
    PLACING = "placing"
    MONITORING = "monitoring"
    HOLDING = "holding"
    REPRICING = "repricing"
    DONE = "done"


class OrderExecutionEngine:
    """Drive one resting limit order until it closes.

    Parameters
    ----------
    client:
        Venue access, normally a :class:`KrakenClient`.
    pair, side, volume:
        What to trade.
    hold_delay:
        Seconds to wait when the order is already well positioned.
    retry_delay:
        Seconds to wait after a rejected cancel.
    settle_delay:
        Seconds to let a freshly moved order rest before re-evaluating.
    max_cancel_failures:
        Consecutive rejected cancels tolerated before the last
        :class:`ResponseError` is re-raised.  ``None`` retries forever.
    allow_above, price_tick:
        Price selection policy, see :func:`select_price`.
    sleep:
        Awaitable delay function, injectable for tests.
    """

    def __init__(
        self,
        client: OrderVenue,
        pair: str,
        side: OrderSide,
        volume: Decimal,
        *,
        hold_delay: float = 2.0,
        retry_delay: float = 2.0,
        settle_delay: float = 4.0,
        max_cancel_failures: Optional[int] = None,
        allow_above: Decimal = ALLOW_ABOVE,
        price_tick: Decimal = PRICE_TICK,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.pair = pair
        self.side = side
        self.volume = Decimal(volume)
        self.hold_delay = hold_delay
        self.retry_delay = retry_delay
        self.settle_delay = settle_delay
        self.max_cancel_failures = max_cancel_failures
        self.allow_above = Decimal(allow_above)
        self.price_tick = Decimal(price_tick)
        self._sleep = sleep
        self.state = EngineState.PLACING
        self.order: Optional[RestingOrder] = None
        self.cancel_failures = 0

    async def run(self) -> OrderInfo:
        """Place the order and follow the book until it is done.

        Returns the last snapshot seen.  Transport and response errors other
        than a rejected cancel propagate and abort the engine.
        """
        await self._place()
        while True:
            snapshot = await self._monitor()
            if snapshot is not None:
                return snapshot

    async def _place(self) -> None:
        self.state = EngineState.PLACING
        book = await self.client.get_order_book(self.pair)
        selection = select_book_price(book, self.side, None, self.volume, self.allow_above, self.price_tick)
        txid = await self._submit(self.volume, selection.price)
        self.order = RestingOrder(
            transaction_id=txid,
            side=self.side,
            pair=self.pair,
            price=selection.price,
            original_volume=self.volume,
        )
        log_json(
            logger,
            "order_placed",
            txid=txid,
            side=self.side,
            pair=self.pair,
            volume=self.volume,
            price=selection.price,
            volume_above=selection.volume_tolerated,
        )
        self.state = EngineState.MONITORING

    async def _monitor(self) -> Optional[OrderInfo]:
        """One evaluation cycle; returns the final snapshot once done."""
        if self.order is None:
            raise RuntimeError("no resting order, run() places it first")
        self.state = EngineState.MONITORING
        snapshot, book = await asyncio.gather(
            self.client.query_order(self.order.transaction_id),
            self.client.get_order_book(self.pair),
        )
        if snapshot.status.is_terminal:
            return self._finish(snapshot)

        remaining = snapshot.remaining
        selection = select_book_price(
            book, self.side, self.order.price, remaining, self.allow_above, self.price_tick
        )

        if selection.price == self.order.price:
            self.state = EngineState.HOLDING
            log_json(
                logger,
                "order_holding",
                txid=self.order.transaction_id,
                remaining=remaining,
                volume_above=selection.volume_tolerated,
            )
            await self._sleep(self.hold_delay)
            return None

        self.state = EngineState.REPRICING
        try:
            await self.client.cancel_order(self.order.transaction_id)
        except ResponseError as exc:
            self.cancel_failures += 1
            cancel_race_counter.inc()
            log_json(
                logger,
                "cancel_race",
                level=logging.WARNING,
                txid=self.order.transaction_id,
                failures=self.cancel_failures,
                error=str(exc),
            )
            if self.max_cancel_failures is not None and self.cancel_failures >= self.max_cancel_failures:
                raise
            await self._sleep(self.retry_delay)
            return None
        self.cancel_failures = 0

        snapshot = await self.client.query_order(self.order.transaction_id)
        remaining = snapshot.remaining
        if snapshot.status is OrderStatus.CLOSED or remaining <= 0:
            return self._finish(snapshot)

        txid = await self._submit(remaining, selection.price)
        log_json(
            logger,
            "order_moved",
            old_txid=self.order.transaction_id,
            txid=txid,
            old_price=self.order.price,
            price=selection.price,
            remaining=remaining,
            volume_above=selection.volume_tolerated,
        )
        reprice_counter.inc()
        self.order = replace(self.order, transaction_id=txid, price=selection.price)
        await self._sleep(self.settle_delay)
        return None

    async def _submit(self, volume: Decimal, price: Decimal) -> str:
        result = await self.client.add_order(OrderRequest.limit(self.pair, self.side, volume, price))
        if len(result.transaction_ids) != 1:
            raise ResponseError(
                f"Expected one transaction id for a limit order, got {result.transaction_ids!r}"
            )
        return result.transaction_ids[0]

    def _finish(self, snapshot: OrderInfo) -> OrderInfo:
        self.state = EngineState.DONE
        log_json(
            logger,
            "order_done",
            txid=snapshot.transaction_id,
            status=snapshot.status,
            volume=snapshot.volume,
            volume_executed=snapshot.volume_executed,
        )
        return snapshot


async def chase_order(
    client: OrderVenue, pair: str, side: OrderSide, volume: Decimal, **settings: Any
) -> OrderInfo:
    """Run an :class:`OrderExecutionEngine` to completion."""
    return await OrderExecutionEngine(client, pair, side, volume, **settings).run()


__all__ = ["OrderVenue", "EngineState", "OrderExecutionEngine", "chase_order"]
