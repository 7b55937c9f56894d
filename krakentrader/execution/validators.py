from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Optional

from ..errors import InvalidConfiguration


def validate_order(request: Any) -> None:
    """Raise :class:`InvalidConfiguration` if ``request`` cannot be submitted.

    Parameters
    ----------
    request:
        An :class:`~krakentrader.queries.OrderRequest`.  Pair, side and order
        type are mandatory, volume must be positive and the absolute and
        relative forms of start/expire time are mutually exclusive.
    """

    if not request.pair or not request.pair.strip():
        raise InvalidConfiguration("Must specify a pair")
    if request.side is None:
        raise InvalidConfiguration("Must specify order side")
    if request.order_type is None:
        raise InvalidConfiguration("Must specify order type")
    if request.volume is None or Decimal(request.volume) <= 0:
        raise InvalidConfiguration("Order volume must be positive")
    exclusive(request.start_time, request.relative_start_seconds, "start_time", "relative_start_seconds")
    exclusive(request.expire_time, request.relative_expire_seconds, "expire_time", "relative_expire_seconds")


def exclusive(first: Optional[Any], second: Optional[Any], first_name: str, second_name: str) -> None:
    """Reject setting both of two mutually exclusive options."""
    if first is not None and second is not None:
        raise InvalidConfiguration(f"Only one of {first_name} and {second_name} can be set")


def comma_separated(values: Iterable[str], name: str) -> str:
    """Join ids with commas, rejecting empty input and ids containing commas."""
    if values is None:
        raise InvalidConfiguration(f"{name} must not be None")
    items = list(values)
    for value in items:
        if "," in value:
            raise InvalidConfiguration(f"Value '{value}' in {name} contains ',' character")
    if not items:
        raise InvalidConfiguration(f"Must specify at least one value for {name}")
    return ",".join(items)


__all__ = ["validate_order", "exclusive", "comma_separated"]
