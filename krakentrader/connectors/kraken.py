"""
Asynchronous client for the Kraken REST API.

Public endpoints are plain ``GET`` requests.  Private endpoints are signed
``POST`` requests gated by two independent :class:`RateGate` budgets: one
for every private call and one for order placement/cancellation.  Every
response is an envelope ``{"error": [...], "result": ...}``; diagnostics in
``error`` are parsed and raised as :class:`ResponseError` unless they are all
warnings and ``ignore_warnings`` is set.
"""

from __future__ import annotations

import base64
import binascii
import inspect
import json
import logging
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import httpx

from ..errors import InvalidConfiguration, ResponseError, TransportError, parse_diagnostic
from ..execution.rate_limiter import RateGate
from ..execution.validators import comma_separated
from ..models import (
    AddOrderResult,
    AssetInfo,
    CancelResult,
    LedgerEntry,
    OrderBook,
    OrderInfo,
    parse_add_order,
    parse_assets,
    parse_cancel,
    parse_ledger_entries,
    parse_order_book,
    parse_orders,
    to_decimal,
)
from ..queries import (
    ClosedOrdersQuery,
    LedgerQuery,
    OrderRequest,
    closed_orders_params,
    ledger_query_params,
    order_request_params,
)
from ..utils.logging import get_logger, log_json
from ..utils.monitoring import request_counter, request_latency_histogram, response_error_counter
from .signing import PROCESS_CLOCK, NonceClock, encode_form, encode_query, sign_request

logger = get_logger()

OtpProvider = Callable[[], Union[str, Awaitable[str]]]


class KrakenClient:
    """
    Kraken API client with HMAC-SHA512 request signing.

    Parameters
    ----------
    api_key, api_secret:
        Credentials; ``api_secret`` is the base64 string issued by the
        venue.  Without them only public endpoints are usable.
    otp_provider:
        Optional callable (plain or coroutine) returning the one-time
        password added to every private request.
    private_rate_gate, order_rate_gate:
        Optional gates; ``None`` disables that budget.
    ignore_warnings:
        When ``True``, responses carrying only warning diagnostics succeed.
    clock:
        Nonce source, defaults to the process-wide :data:`PROCESS_CLOCK`.
    http:
        Optional pre-built ``httpx.AsyncClient``; the client only closes
        connections it created itself.
    """

    BASE_URL = "https://api.kraken.com"
    API_VERSION = "0"

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        otp_provider: Optional[OtpProvider] = None,
        *,
        base_url: str = BASE_URL,
        private_rate_gate: Optional[RateGate] = None,
        order_rate_gate: Optional[RateGate] = None,
        ignore_warnings: bool = False,
        clock: Optional[NonceClock] = None,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ) -> None:
        self.api_key = api_key
        try:
            self._secret = base64.b64decode(api_secret, validate=True) if api_secret else None
        except (binascii.Error, ValueError) as exc:
            raise InvalidConfiguration("API secret is not valid base64") from exc
        self.otp_provider = otp_provider
        self.private_rate_gate = private_rate_gate
        self.order_rate_gate = order_rate_gate
        self.ignore_warnings = ignore_warnings
        self.clock = clock or PROCESS_CLOCK
        self._owns_http = http is None
        if http is None:
            transport = httpx.AsyncHTTPTransport(retries=3)
            http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self._http = http

    async def __aenter__(self) -> "KrakenClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Dispatch

    async def public_call(self, endpoint: str, params: Optional[Mapping[str, str]] = None) -> Any:
        """``GET /0/public/<endpoint>`` without authentication or rate gating."""
        url = f"/{self.API_VERSION}/public/{endpoint}"
        if params:
            url += "?" + encode_query(params)
        log_json(logger, "kraken_request", level=logging.DEBUG, endpoint=endpoint, kind="public")
        resp = await self._send("GET", url, "public", endpoint)
        return self._read(endpoint, resp)

    async def private_call(
        self,
        endpoint: str,
        private_cost: int = 1,
        order_cost: int = 0,
        params: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """Signed ``POST /0/private/<endpoint>``.

        Waits for ``private_cost`` units of the private gate and
        ``order_cost`` units of the order gate before the nonce is drawn.
        """
        if not self.api_key or self._secret is None:
            raise InvalidConfiguration(f"Private endpoint {endpoint} requires API credentials")

        if self.private_rate_gate is not None:
            await self.private_rate_gate.acquire(private_cost)
        if self.order_rate_gate is not None:
            await self.order_rate_gate.acquire(order_cost)

        payload: Dict[str, str] = dict(params or {})
        nonce = self.clock.next_nonce()
        payload["nonce"] = str(nonce)
        if self.otp_provider is not None:
            otp = self.otp_provider()
            if inspect.isawaitable(otp):
                otp = await otp
            payload["otp"] = otp

        body = encode_form(payload)
        path = f"/{self.API_VERSION}/private/{endpoint}"
        headers = {
            "API-Key": self.api_key,
            "API-Sign": sign_request(self._secret, path, nonce, body),
            "Content-Type": "application/x-www-form-urlencoded; charset=utf-8",
        }
        log_json(logger, "kraken_request", level=logging.DEBUG, endpoint=endpoint, kind="private", nonce=nonce)
        resp = await self._send("POST", path, "private", endpoint, content=body.encode("utf-8"), headers=headers)
        return self._read(endpoint, resp)

    async def _send(self, method: str, url: str, kind: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        request_counter.labels(endpoint=endpoint, kind=kind).inc()
        before = time.perf_counter()
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {endpoint} failed: {exc}") from exc
        finally:
            request_latency_histogram.labels(kind=kind).observe(time.perf_counter() - before)

    def _read(self, endpoint: str, resp: httpx.Response) -> Any:
        try:
            envelope = json.loads(resp.text, parse_float=Decimal)
        except ValueError as exc:
            raise TransportError(f"{endpoint}: HTTP {resp.status_code} with undecodable body") from exc
        if not isinstance(envelope, dict) or not ("error" in envelope or "result" in envelope):
            raise TransportError(f"{endpoint}: HTTP {resp.status_code} without a response envelope")

        codes = envelope.get("error") or []
        diagnostics = [parse_diagnostic(code) for code in codes]
        if diagnostics and (not self.ignore_warnings or any(d.is_error for d in diagnostics)):
            response_error_counter.labels(endpoint=endpoint).inc()
            log_json(logger, "kraken_response_error", level=logging.WARNING, endpoint=endpoint, errors=codes)
            raise ResponseError.from_diagnostics(diagnostics)

        if envelope.get("result") is None:
            if resp.is_error:
                raise TransportError(f"{endpoint}: HTTP {resp.status_code}")
            response_error_counter.labels(endpoint=endpoint).inc()
            raise ResponseError(f"{endpoint}: response has no result", diagnostics)
        return envelope["result"]

    # ------------------------------------------------------------------
    # Public endpoints

    async def get_server_time(self) -> datetime:
        result = await self.public_call("Time")
        return datetime.fromtimestamp(float(result["unixtime"]), tz=timezone.utc)

    async def get_all_assets(self) -> List[AssetInfo]:
        return parse_assets(await self.public_call("Assets"))

    async def get_assets(self, *assets: str) -> List[AssetInfo]:
        params = {"asset": comma_separated(assets, "assets")}
        return parse_assets(await self.public_call("Assets", params))

    async def get_asset(self, asset: str) -> AssetInfo:
        return (await self.get_assets(asset))[0]

    async def get_order_book(self, pair: str, count: Optional[int] = None) -> OrderBook:
        params = {"pair": pair}
        if count is not None:
            params["count"] = str(count)
        return parse_order_book(await self.public_call("Depth", params))

    # ------------------------------------------------------------------
    # Private endpoints

    async def get_account_balance(self) -> Dict[str, Decimal]:
        result = await self.private_call("Balance", 1, 0)
        return {asset: to_decimal(amount) for asset, amount in (result or {}).items()}

    async def get_ledger(self, query: LedgerQuery) -> Tuple[int, List[LedgerEntry]]:
        result = await self.private_call("Ledgers", 2, 0, ledger_query_params(query))
        return int(result.get("count", 0)), parse_ledger_entries(result.get("ledger"))

    async def query_ledger(self, ledger_ids: Iterable[str]) -> List[LedgerEntry]:
        ids = list(ledger_ids)
        if not ids:
            return []
        params = {"id": comma_separated(ids, "ledger_ids")}
        return parse_ledger_entries(await self.private_call("QueryLedgers", 2, 0, params))

    async def add_order(self, request: OrderRequest) -> AddOrderResult:
        params = order_request_params(request)
        return parse_add_order(await self.private_call("AddOrder", 1, 1, params))

    async def cancel_order(self, transaction_id: str) -> CancelResult:
        if not transaction_id:
            raise InvalidConfiguration("Must specify a transaction id")
        return parse_cancel(await self.private_call("CancelOrder", 1, 1, {"txid": transaction_id}))

    async def get_open_orders(
        self, include_trades: bool = False, user_reference_id: Optional[int] = None
    ) -> Dict[str, OrderInfo]:
        params: Dict[str, str] = {}
        if include_trades:
            params["trades"] = "1"
        if user_reference_id is not None:
            params["userref"] = str(user_reference_id)
        result = await self.private_call("OpenOrders", 1, 0, params)
        return parse_orders(result.get("open"))

    async def get_closed_orders(self, query: ClosedOrdersQuery) -> Tuple[int, Dict[str, OrderInfo]]:
        result = await self.private_call("ClosedOrders", 1, 0, closed_orders_params(query))
        return int(result.get("count", 0)), parse_orders(result.get("closed"))

    async def query_orders(
        self,
        transaction_ids: Iterable[str],
        include_trades: bool = False,
        user_reference_id: Optional[int] = None,
    ) -> Dict[str, OrderInfo]:
        params = {"txid": comma_separated(transaction_ids, "transaction_ids")}
        if include_trades:
            params["trades"] = "1"
        if user_reference_id is not None:
            params["userref"] = str(user_reference_id)
        return parse_orders(await self.private_call("QueryOrders", 1, 0, params))

    async def query_order(self, transaction_id: str) -> OrderInfo:
        """Snapshot of a single order."""
        orders = await self.query_orders([transaction_id])
        try:
            return orders[transaction_id]
        except KeyError:
            raise ResponseError(f"Order {transaction_id} missing from QueryOrders result") from None


__all__ = ["KrakenClient", "OtpProvider"]
