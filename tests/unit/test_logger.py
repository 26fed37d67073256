"""
Unit Tests for Structured Logging
"""

import json
import logging
import sys

import pytest

from src.shared.logger import CorrelationAdapter, JSONFormatter, PlainTextFormatter, setup_logger


def make_record(msg="Order handled successfully", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="src.order_service.handler",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
def test_json_formatter_fields():
    output = JSONFormatter(service_name="order-service").format(
        make_record(
            correlation_id="b563feb7b2b84b6test",
            topic="orders",
            partition=2,
            offset=42,
            processing_time_ms=3.1,
        )
    )
    data = json.loads(output)

    assert data["level"] == "INFO"
    assert data["service"] == "order-service"
    assert data["logger"] == "src.order_service.handler"
    assert data["message"] == "Order handled successfully"
    assert data["correlation_id"] == "b563feb7b2b84b6test"
    assert (data["topic"], data["partition"], data["offset"]) == ("orders", 2, 42)
    assert data["extra"] == {"processing_time_ms": 3.1}
    assert data["timestamp"].endswith("Z")


@pytest.mark.unit
def test_json_formatter_without_extra():
    data = json.loads(JSONFormatter().format(make_record()))

    assert "extra" not in data
    assert "correlation_id" not in data
    assert "partition" not in data


@pytest.mark.unit
def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = make_record()
        record.exc_info = sys.exc_info()

    data = json.loads(JSONFormatter().format(record))

    assert "RuntimeError: boom" in data["exception"]


@pytest.mark.unit
def test_plain_text_formatter():
    output = PlainTextFormatter(service_name="order-service").format(make_record())

    assert output.endswith("INFO [order-service] Order handled successfully")


@pytest.mark.unit
def test_plain_text_formatter_appends_order_context():
    record = make_record(correlation_id="abc", topic="orders", partition=1, offset=7)

    output = PlainTextFormatter(service_name="order-service").format(record)

    assert output.endswith("Order handled successfully (abc orders/1@7)")


@pytest.mark.unit
def test_setup_logger_does_not_duplicate_handlers():
    first = setup_logger("tests.logger.dedupe", "order-service")
    second = setup_logger("tests.logger.dedupe", "order-service", log_level="DEBUG")

    assert first is second
    assert len(second.handlers) == 1
    assert second.level == logging.DEBUG


@pytest.mark.unit
def test_setup_logger_text_format():
    logger = setup_logger("tests.logger.text", "order-service", log_format="text")
    assert isinstance(logger.handlers[0].formatter, PlainTextFormatter)


@pytest.mark.unit
def test_setup_logger_switches_format_in_place():
    setup_logger("tests.logger.switch", "order-service", log_format="text")
    logger = setup_logger("tests.logger.switch", "order-service", log_format="json")

    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, JSONFormatter)


@pytest.mark.unit
def test_correlation_adapter_adds_id_and_keeps_extra(caplog):
    logger = logging.getLogger("tests.logger.adapter")
    adapter = CorrelationAdapter(logger, {"correlation_id": "abc"})

    with caplog.at_level(logging.INFO, logger="tests.logger.adapter"):
        adapter.info("Processing", extra={"partition": 1})

    record = caplog.records[-1]
    assert record.correlation_id == "abc"
    assert record.partition == 1
