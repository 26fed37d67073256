"""
Kafka Order Publisher

Thin wrapper around confluent_kafka.Producer that publishes orders to the
orders topic.

FEATURES:
1. JSON serialization of order dictionaries
2. order_uid as the message key (one order always lands on one partition)
3. Idempotent delivery (enable.idempotence, acks=all)
4. Delivery report logging with correlation IDs
5. Flush on close so no buffered order is lost
"""

import json
import logging
from typing import Any, Callable, Dict, Optional

from confluent_kafka import KafkaError, KafkaException, Message, Producer

from src.publisher.config import PublisherConfig


class OrderPublisher:
    """
    Publishes orders to Kafka.

    Attributes:
        topic: Kafka topic name
        producer: confluent_kafka.Producer instance
        delivered: Number of successful delivery reports
        failed: Number of failed delivery reports
    """

    def __init__(
        self,
        config: PublisherConfig,
        producer_factory: Callable[[Dict[str, Any]], Producer] = Producer,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the Kafka producer.

        Args:
            config: Publisher configuration
            producer_factory: Builds the Kafka client from a config dict
            logger: Logger for publish and delivery events

        Raises:
            KafkaException: If producer initialization fails
        """
        self.topic = config.kafka_topic
        self.logger = logger or logging.getLogger(__name__)
        self.delivered = 0
        self.failed = 0

        producer_config = config.get_kafka_config()
        try:
            self.producer = producer_factory(producer_config)
        except KafkaException:
            self.logger.error("Failed to initialize Kafka producer", exc_info=True)
            raise

        self.logger.info(
            "Kafka producer initialized",
            extra={
                "bootstrap_servers": producer_config["bootstrap.servers"],
                "topic": self.topic,
                "idempotence": producer_config["enable.idempotence"],
            },
        )

    def _on_delivery(self, err: Optional[KafkaError], msg: Message) -> None:
        """Delivery report callback, invoked from poll() or flush()."""
        key = msg.key().decode("utf-8") if msg.key() else None

        if err is not None:
            self.failed += 1
            self.logger.error(
                "Message delivery failed",
                extra={
                    "correlation_id": key,
                    "error": err.str(),
                    "error_code": err.code(),
                    "topic": msg.topic(),
                },
            )
            return

        self.delivered += 1
        self.logger.info(
            "Message delivered successfully",
            extra={
                "correlation_id": key,
                "topic": msg.topic(),
                "partition": msg.partition(),
                "offset": msg.offset(),
            },
        )

    def publish_order(self, order: Dict[str, Any]) -> None:
        """
        Publish one order, keyed by its order_uid.

        Raises:
            BufferError: Producer queue full (slow down or flush)
            KafkaException: Kafka client error
        """
        self.publish_raw(order.get("order_uid", ""), json.dumps(order).encode("utf-8"))

    def publish_raw(self, key: str, value: bytes) -> None:
        """Publish an already-encoded message (used for deliberately broken payloads)."""
        try:
            self.producer.produce(
                topic=self.topic,
                key=key.encode("utf-8"),
                value=value,
                on_delivery=self._on_delivery,
            )
            # Serve delivery reports for earlier messages without blocking
            self.producer.poll(0)
        except BufferError:
            self.logger.error(
                "Producer buffer full",
                exc_info=True,
                extra={"correlation_id": key},
            )
            raise
        except KafkaException:
            self.logger.error(
                "Kafka error publishing order",
                exc_info=True,
                extra={"correlation_id": key},
            )
            raise

        self.logger.debug(
            "Order published to Kafka",
            extra={"correlation_id": key, "topic": self.topic, "size_bytes": len(value)},
        )

    def flush(self, timeout: float = 30.0) -> int:
        """
        Wait for all pending messages to be delivered.

        Returns:
            Number of messages still in queue (0 = all delivered)
        """
        remaining = self.producer.flush(timeout)

        if remaining > 0:
            self.logger.warning(
                "Producer flush timeout",
                extra={"remaining_messages": remaining, "timeout": timeout},
            )
        return remaining

    def close(self, timeout: float = 30.0) -> None:
        """Flush pending messages and log delivery totals."""
        self.logger.info("Shutting down publisher")

        remaining = self.flush(timeout=timeout)
        if remaining > 0:
            self.logger.error(
                f"Publisher closed with {remaining} messages undelivered",
                extra={"remaining_messages": remaining},
            )

        self.logger.info(
            "Publisher shutdown complete",
            extra={"delivered": self.delivered, "failed": self.failed},
        )
