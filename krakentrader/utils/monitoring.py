"""Prometheus instruments for the dispatcher, rate gates and engine."""
from __future__ import annotations

from prometheus_client import Counter, Histogram, start_http_server

request_counter = Counter(
    "kraken_requests_total", "Requests sent to the venue", ["endpoint", "kind"]
)
response_error_counter = Counter(
    "kraken_response_errors_total", "Responses rejected with diagnostics", ["endpoint"]
)
request_latency_histogram = Histogram(
    "kraken_request_latency_seconds",
    "Round trip time of venue requests",
    ["kind"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)
rate_limit_throttle_counter = Counter(
    "rate_gate_throttles_total", "Rate gate acquisitions that had to wait", ["gate"]
)
reprice_counter = Counter("order_reprices_total", "Orders moved to a new price")
cancel_race_counter = Counter(
    "order_cancel_races_total", "Cancel attempts rejected by the venue"
)


def start_metrics_server(port: int = 8000) -> None:
    """Start a Prometheus metrics HTTP server."""
    start_http_server(port)


__all__ = [
    "start_metrics_server",
    "request_counter",
    "response_error_counter",
    "request_latency_histogram",
    "rate_limit_throttle_counter",
    "reprice_counter",
    "cancel_race_counter",
]
