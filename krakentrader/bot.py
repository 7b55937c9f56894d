from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Sequence

from dotenv import load_dotenv

from .config import load_config
from .connectors.kraken import KrakenClient
from .errors import KrakenError
from .execution.engine import OrderExecutionEngine
from .execution.rate_limiter import RateGate
from .models import OrderInfo, OrderSide
from .utils.logging import json_default, get_logger, log_json
from .utils.monitoring import start_metrics_server

logger = get_logger()


def build_rate_gate(settings: Optional[Dict[str, Any]], name: str) -> Optional[RateGate]:
    """Return a :class:`RateGate` for a config section, ``None`` when disabled."""
    if not settings:
        return None
    return RateGate(settings["occurrences"], settings["period"], name=name)


def build_client(config: Dict[str, Any]) -> KrakenClient:
    """Create a :class:`KrakenClient` from a :func:`load_config` dictionary."""
    api = config.get("api_keys") or {}
    client_cfg = config["client"]
    otp = api.get("otp")
    return KrakenClient(
        api.get("key"),
        api.get("secret"),
        (lambda: otp) if otp else None,
        base_url=client_cfg["base_url"],
        timeout=client_cfg["timeout"],
        ignore_warnings=client_cfg["ignore_warnings"],
        private_rate_gate=build_rate_gate(client_cfg.get("private_rate_gate"), "private"),
        order_rate_gate=build_rate_gate(client_cfg.get("order_rate_gate"), "order"),
    )


async def run(side: OrderSide, pair: str, volume: Decimal, config: Dict[str, Any]) -> OrderInfo:
    """Chase one limit order to completion using ``config``."""
    async with build_client(config) as client:
        engine = OrderExecutionEngine(client, pair, side, volume, **config["chase"])
        return await engine.run()


def _volume(text: str) -> Decimal:
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid volume: {text!r}") from None
    if value <= 0:
        raise argparse.ArgumentTypeError("volume must be positive")
    return value


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Keep a limit order competitively priced until it fills")
    parser.add_argument("side", choices=[s.value for s in OrderSide])
    parser.add_argument("pair", help="Trading pair e.g. LTCEUR")
    parser.add_argument("volume", type=_volume)
    parser.add_argument("--config")
    parser.add_argument("--metrics-port", type=int)
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        if args.metrics_port:
            start_metrics_server(args.metrics_port)
        final = asyncio.run(run(OrderSide(args.side), args.pair, args.volume, config))
    except KrakenError as exc:
        log_json(logger, "chase_failed", error=str(exc), error_type=type(exc).__name__)
        return 1

    print(json.dumps(asdict(final), default=json_default))
    return 0


if __name__ == "__main__":
    sys.exit(main())
