"""Execution layer: rate gates, price selection and the order engine."""

from importlib import import_module
from typing import Any

from .pricing import ALLOW_ABOVE, PRICE_TICK, PriceSelection, select_book_price, select_price
from .rate_limiter import RateGate
from .validators import validate_order

__all__ = [
    "ALLOW_ABOVE",
    "PRICE_TICK",
    "PriceSelection",
    "select_price",
    "select_book_price",
    "RateGate",
    "validate_order",
    "EngineState",
    "OrderExecutionEngine",
    "chase_order",
]


def __getattr__(name: str) -> Any:  # pragma: no cover - thin wrapper
    # the engine depends on krakentrader.queries, which imports this package
    if name in {"EngineState", "OrderExecutionEngine", "chase_order"}:
        return getattr(import_module("krakentrader.execution.engine"), name)
    raise AttributeError(name)
