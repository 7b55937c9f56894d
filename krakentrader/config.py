"""Configuration loading utilities for krakentrader.

This module loads YAML configuration files that store API credentials, the
rate gate budgets of the venue and the timing/pricing policy of the order
engine. A default `config.yaml` at the project root is used when no path is
provided.
"""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import InvalidConfiguration

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[1] / "config.yaml"


class APIKeys(BaseModel):
    """Schema for API credentials."""

    key: Optional[str] = None
    secret: Optional[str] = None
    otp: Optional[str] = None


class RateGateConfig(BaseModel):
    """``occurrences`` operations may start per ``period`` seconds."""

    occurrences: int = Field(..., gt=0)
    period: float = Field(..., gt=0)


class ClientConfig(BaseModel):
    """Schema for the venue client."""

    base_url: str = "https://api.kraken.com"
    timeout: float = Field(15.0, gt=0)
    ignore_warnings: bool = False
    private_rate_gate: Optional[RateGateConfig] = Field(
        default_factory=lambda: RateGateConfig(occurrences=15, period=45.0)
    )
    order_rate_gate: Optional[RateGateConfig] = None


class ChaseConfig(BaseModel):
    """Schema for the order execution engine."""

    hold_delay: float = Field(2.0, ge=0)
    retry_delay: float = Field(2.0, ge=0)
    settle_delay: float = Field(4.0, ge=0)
    allow_above: Decimal = Field(Decimal("0.15"), ge=0)
    price_tick: Decimal = Field(Decimal("0.00001"), gt=0)
    max_cancel_failures: Optional[int] = Field(None, gt=0)


class ConfigModel(BaseModel):
    """Top-level configuration schema."""

    api_keys: Optional[APIKeys] = None
    client: ClientConfig = Field(default_factory=ClientConfig)
    chase: ChaseConfig = Field(default_factory=ChaseConfig)


def load_config(path: str | Path | None = None) -> Dict[str, Any]:
    """Load configuration from a YAML file with validation.

    Parameters
    ----------
    path : str | Path | None
        Optional path to a YAML file. If ``None`` the default project level
        ``config.yaml`` is used.

    Returns
    -------
    dict
        Parsed configuration dictionary validated against :class:`ConfigModel`.
    """

    cfg_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open() as f:
        data = yaml.safe_load(f) or {}
    try:
        model = ConfigModel.model_validate(data)
    except ValidationError as exc:
        raise InvalidConfiguration(f"Invalid configuration: {exc}") from exc

    # Fill API credentials from environment variables if not provided in config
    api = model.api_keys or APIKeys()
    api.key = api.key or os.getenv("KRAKEN_API_KEY")
    api.secret = api.secret or os.getenv("KRAKEN_API_SECRET")
    api.otp = api.otp or os.getenv("KRAKEN_API_OTP")
    model.api_keys = api

    return model.model_dump()


__all__ = ["load_config", "DEFAULT_CONFIG_PATH", "ConfigModel"]
