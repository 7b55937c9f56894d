"""
Shared helpers for krakentrader.

Modules
-------

* :mod:`logging` – JSON line logger and :func:`log_json`.
* :mod:`monitoring` – Prometheus counters and histograms for venue
  requests, rate gate throttling and order repricing.
"""

from .logging import get_logger, log_json

__all__ = ["get_logger", "log_json"]
