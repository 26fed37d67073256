"""
Order Service - Main Entry Point

Starts the Kafka consumer and the HTTP read API in one process.

USAGE:
    python -m src.order_service.main [options]

OPTIONS:
    --log-level    Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    --log-format   Log format (json or text)
    --help         Show help message

ENVIRONMENT VARIABLES:
    See src/order_service/config.py for the full list:
    - DB_HOST, DB_PORT, DB_USER, DB_PASSWORD, DB_NAME, DB_SSLMODE
    - KAFKA_BROKERS, KAFKA_TOPIC, KAFKA_GROUP_ID
    - SERVER_HOST, SERVER_PORT, SERVER_SHUTDOWN_GRACE_S
    - SERVER_READ_TIMEOUT_S, SERVER_WRITE_TIMEOUT_S
    - LOG_LEVEL, LOG_FORMAT

EXIT CODES:
    0  graceful shutdown (signal, or a subsystem failure after startup)
    1  configuration error or startup failure (database, consumer group)
"""

import argparse
import sys

from pydantic import ValidationError as ConfigValidationError

from src.order_service import __version__
from src.order_service.config import load_config
from src.order_service.lifecycle import ServiceRunner
from src.shared.logger import setup_logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Order Service (Kafka ingest + HTTP read API)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start with default settings
  python -m src.order_service.main

  # Debug logging in plain text (for development)
  python -m src.order_service.main --log-level DEBUG --log-format text

Environment Variables:
  DB_HOST                    Database host (default: localhost)
  DB_PORT                    Database port (default: 5432)
  DB_USER                    Database user (default: orders_user)
  DB_PASSWORD                Database password (default: orders_password)
  DB_NAME                    Database name (default: orders_db)
  KAFKA_BROKERS              Kafka broker addresses (default: localhost:9092)
  KAFKA_TOPIC                Topic to consume (default: orders)
  KAFKA_GROUP_ID             Consumer group (default: order-service)
  SERVER_PORT                HTTP port (default: 8081)
  SERVER_READ_TIMEOUT_S      Request header deadline (default: 15)
  SERVER_WRITE_TIMEOUT_S     Request handling deadline (default: 15)
  LOG_LEVEL                  Logging level (default: INFO)
  LOG_FORMAT                 Log format: json or text (default: json)

Signals:
  SIGINT (Ctrl+C)            Graceful shutdown
  SIGTERM (Docker stop)      Graceful shutdown
        """,
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (overrides LOG_LEVEL env var)",
    )

    parser.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Log output format (overrides LOG_FORMAT env var)",
    )

    return parser.parse_args()


def main() -> int:
    """
    Main entry point for the order service.

    Returns:
        Exit code (0 = graceful shutdown, 1 = startup failure)
    """
    args = parse_args()

    try:
        config = load_config()
    except ConfigValidationError as e:
        print(f"ERROR: Failed to load configuration: {e}", file=sys.stderr)
        return 1

    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format

    logger = setup_logger(
        name="src.order_service",
        service_name="order-service",
        log_level=config.log_level,
        log_format=config.log_format,
    )

    logger.info(
        "Starting Order Service",
        extra={
            "version": __version__,
            "kafka_brokers": config.kafka_brokers,
            "kafka_topic": config.kafka_topic,
            "consumer_group": config.kafka_group_id,
            "database_host": config.db_host,
            "database_name": config.db_name,
            "server_port": config.server_port,
        },
    )

    runner = ServiceRunner(config, logger=logger)
    exit_code = runner.run()

    logger.info("Order service exited", extra={"exit_code": exit_code})
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
