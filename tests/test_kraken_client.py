import base64
from datetime import datetime, timezone
from decimal import Decimal
from urllib.parse import parse_qsl

import httpx
import pytest

from krakentrader.connectors.kraken import KrakenClient
from krakentrader.connectors.signing import TICKS_AT_UNIX_EPOCH, NonceClock, sign_request
from krakentrader.errors import InvalidConfiguration, ResponseError, Severity, TransportError
from krakentrader.execution.rate_limiter import RateGate
from krakentrader.models import OrderSide, OrderStatus
from krakentrader.queries import LedgerQuery, OrderRequest

BASE = "https://api.kraken.com"
SECRET = b"0123456789abcdef-secret"
SECRET_B64 = base64.b64encode(SECRET).decode()


def envelope(result=None, errors=()):
    body = {"error": list(errors)}
    if result is not None:
        body["result"] = result
    return body


def mock_http(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE)


def fixed_clock():
    return NonceClock(wall_ns=lambda: 0, monotonic_ns=lambda: 0)


class Recorder:
    """MockTransport handler returning canned JSON bodies in order."""

    def __init__(self, *bodies, status_code=200):
        self.bodies = list(bodies)
        self.status_code = status_code
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.bodies.pop(0))


def form(request):
    return parse_qsl(request.content.decode(), keep_blank_values=True)


@pytest.mark.asyncio
async def test_public_call_uses_get_with_query():
    handler = Recorder(envelope({"XLTCZEUR": {"asks": [["100.0", "5", 1688663136]], "bids": [["99.0", "3", 1688663137]]}}))
    async with mock_http(handler) as http:
        client = KrakenClient(http=http)
        book = await client.get_order_book("LTC EUR", count=10)

    request = handler.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/0/public/Depth"
    assert request.url.params["pair"] == "LTC EUR"
    assert request.url.params["count"] == "10"
    assert "API-Sign" not in request.headers
    assert book.pair == "XLTCZEUR"
    assert book.asks[0].price == Decimal("100.0")
    assert book.asks[0].volume == Decimal(5)
    assert book.bids[0].observed_at == datetime.fromtimestamp(1688663137, tz=timezone.utc)


@pytest.mark.asyncio
async def test_public_call_needs_no_credentials():
    handler = Recorder(envelope({"unixtime": 1688669448, "rfc1123": "..."}))
    async with mock_http(handler) as http:
        moment = await KrakenClient(http=http).get_server_time()
    assert moment == datetime.fromtimestamp(1688669448, tz=timezone.utc)


@pytest.mark.asyncio
async def test_private_call_signs_form_body():
    handler = Recorder(envelope({"ZEUR": "504861.8946", "XXBT": "1011.1908877900"}))
    async with mock_http(handler) as http:
        client = KrakenClient("my-key", SECRET_B64, http=http, clock=fixed_clock())
        balance = await client.get_account_balance()

    request = handler.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/0/private/Balance"
    assert request.headers["API-Key"] == "my-key"
    assert request.headers["Content-Type"].startswith("application/x-www-form-urlencoded")
    body = request.content.decode()
    assert dict(form(request)) == {"nonce": str(TICKS_AT_UNIX_EPOCH)}
    assert request.headers["API-Sign"] == sign_request(SECRET, "/0/private/Balance", TICKS_AT_UNIX_EPOCH, body)
    assert balance == {"ZEUR": Decimal("504861.8946"), "XXBT": Decimal("1011.1908877900")}


@pytest.mark.asyncio
async def test_add_order_params_precede_nonce_and_otp():
    handler = Recorder(envelope({"descr": {"order": "sell 20 LTCEUR @ limit 99.99999"}, "txid": ["OUF4EM-FRGI2-MQMWZD"]}))

    async def otp():
        return "123456"

    async with mock_http(handler) as http:
        client = KrakenClient("my-key", SECRET_B64, otp, http=http, clock=fixed_clock())
        request = OrderRequest.limit("LTCEUR", OrderSide.SELL, Decimal(20), Decimal("99.99999"))
        result = await client.add_order(request)

    sent = handler.requests[0]
    pairs = form(sent)
    assert [k for k, _ in pairs] == ["pair", "type", "ordertype", "volume", "price", "nonce", "otp"]
    assert dict(pairs)["price"] == "99.99999"
    assert dict(pairs)["otp"] == "123456"
    nonce = int(dict(pairs)["nonce"])
    assert sent.headers["API-Sign"] == sign_request(SECRET, "/0/private/AddOrder", nonce, sent.content.decode())
    assert result.transaction_ids == ["OUF4EM-FRGI2-MQMWZD"]
    assert result.order_description == "sell 20 LTCEUR @ limit 99.99999"


@pytest.mark.asyncio
async def test_nonces_increase_across_requests():
    handler = Recorder(envelope({}), envelope({}), envelope({}))
    async with mock_http(handler) as http:
        client = KrakenClient("k", SECRET_B64, http=http, clock=fixed_clock())
        for _ in range(3):
            await client.get_account_balance()
    nonces = [int(dict(form(r))["nonce"]) for r in handler.requests]
    assert nonces == sorted(set(nonces))


@pytest.mark.asyncio
async def test_error_envelope_raises_response_error():
    handler = Recorder(envelope(errors=["EOrder:Insufficient funds"]))
    async with mock_http(handler) as http:
        client = KrakenClient("k", SECRET_B64, http=http)
        with pytest.raises(ResponseError) as info:
            await client.cancel_order("OABC")
    assert str(info.value) == "[Order] Error: Insufficient funds"
    assert info.value.diagnostics[0].severity is Severity.ERROR


@pytest.mark.asyncio
async def test_warnings_raise_unless_ignored():
    body = envelope({"unixtime": 1688669448}, errors=["WGeneral:Deprecated:use v2"])

    async with mock_http(Recorder(body)) as http:
        with pytest.raises(ResponseError) as info:
            await KrakenClient(http=http).get_server_time()
    assert not info.value.has_errors

    async with mock_http(Recorder(body)) as http:
        moment = await KrakenClient(http=http, ignore_warnings=True).get_server_time()
    assert moment.year == 2023


@pytest.mark.asyncio
async def test_ignore_warnings_still_raises_on_errors():
    body = envelope(errors=["WGeneral:Deprecated", "EService:Unavailable"])
    async with mock_http(Recorder(body)) as http:
        with pytest.raises(ResponseError) as info:
            await KrakenClient(http=http, ignore_warnings=True).get_server_time()
    assert str(info.value).startswith("1 errors and 1 warnings")


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with mock_http(handler) as http:
        with pytest.raises(TransportError):
            await KrakenClient(http=http).get_server_time()


@pytest.mark.asyncio
async def test_non_json_response_is_transport_error():
    def handler(request):
        return httpx.Response(502, text="<html>Bad Gateway</html>")

    async with mock_http(handler) as http:
        with pytest.raises(TransportError):
            await KrakenClient(http=http).get_server_time()


@pytest.mark.asyncio
async def test_private_call_requires_credentials():
    async with mock_http(Recorder()) as http:
        with pytest.raises(InvalidConfiguration):
            await KrakenClient(http=http).get_account_balance()


def test_secret_must_be_base64():
    with pytest.raises(InvalidConfiguration):
        KrakenClient("k", "not base64!!")


@pytest.mark.asyncio
async def test_rate_gate_costs_per_endpoint():
    private = RateGate(10, 60, name="private")
    orders = RateGate(10, 60, name="order")
    handler = Recorder(
        envelope({"descr": {"order": "x"}, "txid": ["O1"]}),
        envelope({"count": 1}),
        envelope({"count": 0, "ledger": {}}),
        envelope({}),
    )
    async with mock_http(handler) as http:
        client = KrakenClient("k", SECRET_B64, http=http, private_rate_gate=private, order_rate_gate=orders)
        await client.add_order(OrderRequest.limit("LTCEUR", OrderSide.BUY, Decimal(1), Decimal(50)))
        assert (private.in_flight, orders.in_flight) == (1, 1)
        await client.cancel_order("O1")
        assert (private.in_flight, orders.in_flight) == (2, 2)
        count, entries = await client.get_ledger(LedgerQuery())
        assert (private.in_flight, orders.in_flight) == (4, 2)
        await client.query_orders(["O1"])
        assert (private.in_flight, orders.in_flight) == (5, 2)
    assert count == 0 and entries == []


@pytest.mark.asyncio
async def test_query_order_decodes_snapshot():
    raw = {
        "OUF4EM-FRGI2-MQMWZD": {
            "refid": None,
            "userref": 0,
            "status": "open",
            "opentm": 1688666559.8974,
            "starttm": 0,
            "expiretm": 0,
            "descr": {
                "pair": "LTCEUR",
                "type": "sell",
                "ordertype": "limit",
                "price": "99.99999",
                "price2": "0",
                "leverage": "none",
                "order": "sell 20.00000000 LTCEUR @ limit 99.99999",
                "close": "",
            },
            "vol": "20.00000000",
            "vol_exec": "5.00000000",
            "cost": "499.99995",
            "fee": "0.80000",
            "price": "99.99999",
            "misc": "",
            "oflags": "fciq,post",
        }
    }
    handler = Recorder(envelope(raw))
    async with mock_http(handler) as http:
        order = await KrakenClient("k", SECRET_B64, http=http).query_order("OUF4EM-FRGI2-MQMWZD")

    assert dict(form(handler.requests[0]))["txid"] == "OUF4EM-FRGI2-MQMWZD"
    assert order.status is OrderStatus.OPEN
    assert order.side is OrderSide.SELL
    assert order.remaining == Decimal(15)
    assert order.flags == frozenset({"fciq", "post"})
    assert order.start_time is None
    assert order.open_time is not None


@pytest.mark.asyncio
async def test_query_order_missing_raises():
    async with mock_http(Recorder(envelope({}))) as http:
        with pytest.raises(ResponseError):
            await KrakenClient("k", SECRET_B64, http=http).query_order("OMISSING")


@pytest.mark.asyncio
async def test_comma_in_id_rejected_before_sending():
    handler = Recorder()
    async with mock_http(handler) as http:
        with pytest.raises(InvalidConfiguration):
            await KrakenClient("k", SECRET_B64, http=http).query_orders(["A,B"])
    assert handler.requests == []


@pytest.mark.asyncio
async def test_owned_http_client_closed_on_exit():
    async with KrakenClient() as client:
        http = client._http
    assert http.is_closed



@pytest.mark.parametrize(
    "call",
    [
        lambda c: c.add_order(OrderRequest.limit("LTCEUR", OrderSide.BUY, Decimal(1), Decimal(50))),
        lambda c: c.cancel_order("O1"),
        lambda c: c.get_open_orders(),
    ],
    ids=["add_order", "cancel_order", "open_orders"],
)
@pytest.mark.asyncio
async def test_envelope_without_result_raises_response_error(call):
    async with mock_http(Recorder(envelope())) as http:
        client = KrakenClient("k", SECRET_B64, http=http)
        with pytest.raises(ResponseError) as info:
            await call(client)
    assert "has no result" in str(info.value)


@pytest.mark.asyncio
async def test_ignored_warning_without_result_raises_response_error():
    handler = Recorder(envelope(errors=["WGeneral:Deprecated"]))
    async with mock_http(handler) as http:
        client = KrakenClient("k", SECRET_B64, http=http, ignore_warnings=True)
        with pytest.raises(ResponseError) as info:
            await client.cancel_order("O1")
    assert [d.type for d in info.value.diagnostics] == ["Deprecated"]
    assert not info.value.has_errors
