"""Lazy-loading package exports to avoid heavy import side effects."""

from importlib import import_module
from typing import Any

__all__ = [
    "KrakenClient",
    "RateGate",
    "OrderExecutionEngine",
    "chase_order",
    "select_price",
    "load_config",
    "connectors",
    "execution",
    "utils",
]

_EXPORTS = {
    "KrakenClient": "krakentrader.connectors.kraken",
    "RateGate": "krakentrader.execution.rate_limiter",
    "OrderExecutionEngine": "krakentrader.execution.engine",
    "chase_order": "krakentrader.execution.engine",
    "select_price": "krakentrader.execution.pricing",
    "load_config": "krakentrader.config",
}


def __getattr__(name: str) -> Any:  # pragma: no cover - thin wrapper
    if name in _EXPORTS:
        return getattr(import_module(_EXPORTS[name]), name)
    if name in {"connectors", "execution", "utils"}:
        return import_module(f"krakentrader.{name}")
    raise AttributeError(name)
