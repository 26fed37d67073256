"""
Structured JSON Logging Configuration

This module provides structured logging for the order service and the test
publisher. Every component receives its logger through its constructor; this
module only builds and formats them.

Order context travels on the record through ``extra=``: ``correlation_id``
(the order_uid) and the Kafka location (``topic``, ``partition``,
``offset``) become top-level keys, anything else lands under ``extra``.

EXAMPLE OUTPUT:
{
  "timestamp": "2025-01-10T14:30:00.123Z",
  "level": "INFO",
  "service": "order-service",
  "logger": "src.order_service.consumer",
  "message": "Order processed successfully",
  "correlation_id": "b563feb7b2b84b6test",
  "topic": "orders",
  "partition": 0,
  "offset": 42,
  "extra": {"processing_time_ms": 3.1}
}
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# Record attributes promoted to top-level JSON keys, in output order
ORDER_CONTEXT = ("correlation_id", "topic", "partition", "offset")

# Attributes set by logging itself; never part of `extra`
RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def order_context(record: logging.LogRecord) -> Dict[str, Any]:
    return {key: getattr(record, key) for key in ORDER_CONTEXT if hasattr(record, key)}


# ==============================================================================
# FORMATTERS
# ==============================================================================

class JSONFormatter(logging.Formatter):
    """
    Renders each record as a single JSON line.

    Fields:
    - timestamp: ISO 8601, UTC, millisecond precision
    - level / service / logger / message
    - correlation_id, topic, partition, offset: when the caller supplied them
    - exception: formatted traceback (if any)
    - extra: remaining attributes passed through `extra=`
    """

    def __init__(self, service_name: str = "order-service"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_data: Dict[str, Any] = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{created.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
            **order_context(record),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value for key, value in vars(record).items()
            if key not in RECORD_ATTRS and key not in ORDER_CONTEXT and not key.startswith("_")
        }
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


class PlainTextFormatter(logging.Formatter):
    """
    Single-line format for ``--log-format text``.

    [2025-01-10 14:30:00] INFO [order-service] Order processed successfully (b563feb7b2b84b6test orders/0@42)
    """

    def __init__(self, service_name: str = "order-service"):
        super().__init__(
            fmt=f"[%(asctime)s] %(levelname)s [{service_name}] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = order_context(record)
        if not context:
            return line

        tags = []
        if "correlation_id" in context:
            tags.append(str(context["correlation_id"]))
        if "partition" in context:
            tags.append(f"{context.get('topic', '?')}/{context['partition']}@{context.get('offset', '?')}")
        if not tags:
            return line

        head, newline, rest = line.partition("\n")
        return f"{head} ({' '.join(tags)}){newline}{rest}"


# ==============================================================================
# LOGGER SETUP
# ==============================================================================

def setup_logger(
    name: str,
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json"
) -> logging.Logger:
    """
    Configure the stdout logger for a service.

    Components get children of this logger (``logger.getChild("consumer")``)
    which propagate to the single handler installed here. Calling it again
    for the same name swaps level and format in place.

    Args:
        name: Logger name (usually the package name)
        service_name: Service identifier ("order-service", "order-publisher")
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_format: "json" or "text"
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if log_format.lower() == "text":
        formatter: logging.Formatter = PlainTextFormatter(service_name=service_name)
    else:
        formatter = JSONFormatter(service_name=service_name)

    if not logger.handlers:
        logger.addHandler(logging.StreamHandler(sys.stdout))
    for handler in logger.handlers:
        handler.setFormatter(formatter)

    return logger


# ==============================================================================
# CORRELATION ID ADAPTER
# ==============================================================================

class CorrelationAdapter(logging.LoggerAdapter):
    """
    Stamps every record with the order_uid being handled.

    Example:
        >>> order_logger = CorrelationAdapter(logger, {"correlation_id": "b563feb7b2b84b6test"})
        >>> order_logger.info("Persisting order", extra={"partition": 0, "offset": 42})
    """

    def process(self, msg: str, kwargs: dict) -> tuple:
        kwargs["extra"] = {**(kwargs.get("extra") or {}), **self.extra}
        return msg, kwargs
