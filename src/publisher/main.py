"""
Order Test Publisher - Main Entry Point

Publishes the canonical sample order followed by Faker-generated orders to
the orders topic at a fixed rate, optionally interleaving invalid messages
that the order service must skip.

USAGE:
    python -m src.publisher.main [--count N] [--rate R] [--seed S] [--include-invalid]
"""

import argparse
import signal
import sys
import time
from typing import Any, Dict, Iterator, Tuple, Union

from confluent_kafka import KafkaException
from pydantic import ValidationError as ConfigValidationError

from src.publisher.config import PublisherConfig, load_config
from src.publisher.mock_data import INVALID_KINDS, MockOrderFactory, now_rfc3339, sample_order
from src.publisher.publisher import OrderPublisher
from src.shared.logger import setup_logger

# Set by the signal handler; checked between messages
shutdown_requested = False


def signal_handler(signum, frame):
    global shutdown_requested
    shutdown_requested = True


def build_messages(
    config: PublisherConfig, include_invalid: bool
) -> Iterator[Union[Dict[str, Any], Tuple[str, bytes]]]:
    """
    Yield ``config.publish_count`` messages: the sample order first, then
    generated orders. With ``include_invalid`` every fifth message is an
    invalid one, cycling through INVALID_KINDS.
    """
    factory = MockOrderFactory(seed=config.mock_seed)
    invalid_index = 0

    for i in range(config.publish_count):
        if i == 0:
            yield sample_order(date_created=now_rfc3339())
        elif include_invalid and i % 5 == 4:
            yield factory.invalid_message(INVALID_KINDS[invalid_index % len(INVALID_KINDS)])
            invalid_index += 1
        else:
            yield factory.generate_order()


def run_publisher(config: PublisherConfig, include_invalid: bool = False) -> int:
    """
    Publish orders until the count is reached or a signal arrives.

    Returns:
        Exit code (0 = all delivered, 1 = error)
    """
    logger = setup_logger(
        name="src.publisher",
        service_name="order-publisher",
        log_level=config.log_level,
        log_format=config.log_format,
    )

    logger.info(
        "Starting order publisher",
        extra={
            "kafka_brokers": config.kafka_brokers,
            "topic": config.kafka_topic,
            "count": config.publish_count,
            "rate": config.publish_rate,
            "include_invalid": include_invalid,
        },
    )

    try:
        publisher = OrderPublisher(config, logger=logger)
    except KafkaException:
        return 1

    sleep_interval = 1.0 / config.publish_rate
    published = 0
    start_time = time.time()

    try:
        for message in build_messages(config, include_invalid):
            if shutdown_requested:
                logger.info("Shutdown requested, stopping publisher")
                break

            if isinstance(message, dict):
                publisher.publish_order(message)
            else:
                publisher.publish_raw(*message)
            published += 1

            time.sleep(sleep_interval)
    except (BufferError, KafkaException):
        logger.error("Publishing aborted", extra={"published": published})
        publisher.close()
        return 1

    publisher.close()

    elapsed = time.time() - start_time
    logger.info(
        "Publisher finished",
        extra={
            "published": published,
            "delivered": publisher.delivered,
            "failed": publisher.failed,
            "duration_seconds": round(elapsed, 2),
        },
    )
    return 0 if publisher.failed == 0 else 1


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Order Test Publisher - publish mock orders to Kafka",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Publish 10 orders at 1 order/second (defaults)
  python -m src.publisher.main

  # Publish 100 orders at 20/second, including invalid messages
  python -m src.publisher.main --count 100 --rate 20 --include-invalid
        """,
    )
    parser.add_argument("--count", type=int, help="Number of orders to publish")
    parser.add_argument("--rate", type=float, help="Orders per second")
    parser.add_argument("--seed", type=int, help="Random seed for mock data")
    parser.add_argument(
        "--include-invalid",
        action="store_true",
        help="Interleave messages the order service must reject",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (overrides LOG_LEVEL env var)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    try:
        config = load_config()
    except ConfigValidationError as e:
        print(f"ERROR: Failed to load configuration: {e}", file=sys.stderr)
        return 1

    if args.count is not None:
        config.publish_count = args.count
    if args.rate is not None:
        if args.rate <= 0:
            print("ERROR: --rate must be positive", file=sys.stderr)
            return 1
        config.publish_rate = args.rate
    if args.seed is not None:
        config.mock_seed = args.seed
    if args.log_level:
        config.log_level = args.log_level

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    return run_publisher(config, include_invalid=args.include_invalid)


if __name__ == "__main__":
    sys.exit(main())
