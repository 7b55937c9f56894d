"""Venue connectors and request signing."""

from .kraken import KrakenClient
from .signing import PROCESS_CLOCK, NonceClock, sign_request

__all__ = ["KrakenClient", "NonceClock", "PROCESS_CLOCK", "sign_request"]
