"""Nonce generation and request signing for private endpoints.

Signature::

    API-Sign = base64(HMAC-SHA512(secret, path + SHA256(nonce + body)))

where ``path`` is the absolute URI path (``/0/private/AddOrder``), ``nonce``
the decimal nonce string and ``body`` the exact form-encoded body that is
transmitted.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
from typing import Callable, Mapping
from urllib.parse import quote, quote_plus, urlencode

# 100ns ticks between 0001-01-01 and the unix epoch.
TICKS_AT_UNIX_EPOCH = 621_355_968_000_000_000


class NonceClock:
    """Strictly increasing 64-bit nonce source.

    The wall clock is read once at construction (in 100ns ticks since
    0001-01-01) and a monotonic timer started at the same instant supplies
    the elapsed part, so nonces keep increasing even if the wall clock is
    stepped backwards.  Two reads inside the same 100ns tick are separated by
    bumping the later one; there is no ``await`` between read and update so
    concurrent coroutines on one event loop never observe the same value.
    """

    def __init__(
        self,
        wall_ns: Callable[[], int] = time.time_ns,
        monotonic_ns: Callable[[], int] = time.perf_counter_ns,
    ) -> None:
        self._monotonic_ns = monotonic_ns
        self.base_ticks = TICKS_AT_UNIX_EPOCH + wall_ns() // 100
        self._started_ns = monotonic_ns()
        self._last = 0

    def next_nonce(self) -> int:
        elapsed_ticks = (self._monotonic_ns() - self._started_ns) // 100
        nonce = max(self.base_ticks + elapsed_ticks, self._last + 1)
        self._last = nonce
        return nonce


# Captured once when the package is imported.
PROCESS_CLOCK = NonceClock()


def encode_form(params: Mapping[str, str]) -> str:
    """``application/x-www-form-urlencoded`` body, keeping insertion order."""
    return urlencode(list(params.items()), quote_via=quote_plus)


def encode_query(params: Mapping[str, str]) -> str:
    """Percent-encoded query string for public endpoints (spaces as ``%20``)."""
    return "&".join(f"{quote(k, safe='')}={quote(v, safe='')}" for k, v in params.items())


def sign_request(secret: bytes, path: str, nonce: int, body: str) -> str:
    digest = hashlib.sha256((str(nonce) + body).encode("utf-8")).digest()
    mac = hmac.new(secret, path.encode("utf-8") + digest, hashlib.sha512)
    return base64.b64encode(mac.digest()).decode("ascii")


__all__ = [
    "TICKS_AT_UNIX_EPOCH",
    "NonceClock",
    "PROCESS_CLOCK",
    "encode_form",
    "encode_query",
    "sign_request",
]
