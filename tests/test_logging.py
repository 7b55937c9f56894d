import json
import logging
from datetime import datetime, timezone
from decimal import Decimal

from krakentrader.models import OrderSide
from krakentrader.utils.logging import get_logger, log_json


def test_log_json(capsys):
    logger = get_logger("test")
    log_json(logger, "event_name", foo="bar")
    out = capsys.readouterr().err.strip()
    data = json.loads(out)
    assert data["event"] == "event_name"
    assert data["foo"] == "bar"


def test_log_json_domain_values(capsys):
    logger = get_logger("test_domain")
    log_json(
        logger,
        "order_placed",
        price=Decimal("99.99999"),
        side=OrderSide.SELL,
        at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        flags=frozenset({"post", "fciq"}),
    )
    data = json.loads(capsys.readouterr().err.strip())
    assert data["price"] == "99.99999"
    assert data["side"] == "sell"
    assert data["at"] == "2024-01-01T00:00:00+00:00"
    assert data["flags"] == ["fciq", "post"]


def test_log_json_respects_level(capsys):
    logger = get_logger("test_level")
    log_json(logger, "hidden", level=logging.DEBUG)
    assert capsys.readouterr().err == ""


def test_get_logger_file(monkeypatch, tmp_path):
    log_file = tmp_path / "logs" / "chase.log"
    monkeypatch.setenv("LOG_FILE", str(log_file))
    logger = get_logger("test_file")
    log_json(logger, "written")
    for handler in logger.handlers:
        handler.flush()
    assert json.loads(log_file.read_text().strip())["event"] == "written"
