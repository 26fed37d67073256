"""
Publisher Configuration Module

Loads test publisher settings from environment variables (and a local .env
file) with Pydantic validation. Broker and topic keys are shared with the
order service so both sides agree by default.
"""

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

load_dotenv()


class PublisherConfig(BaseSettings):
    """
    Test publisher configuration.

    Attributes:
        kafka_brokers: Kafka broker addresses (comma-separated)
        kafka_topic: Topic the orders are published to
        publisher_client_id: Producer identifier
        publish_count: Number of orders to publish
        publish_rate: Orders per second
        mock_seed: Seed for reproducible mock data
        log_level: Logging level
        log_format: Log output format (json or text)
    """

    # === KAFKA CONNECTION ===
    kafka_brokers: str = Field(
        default="localhost:9092",
        description="Kafka broker addresses (comma-separated)",
    )

    kafka_topic: str = Field(
        default="orders",
        description="Kafka topic for order messages",
    )

    # === PUBLISHER SETTINGS ===
    publisher_client_id: str = Field(
        default="order-publisher",
        description="Producer client identifier",
    )

    publish_count: int = Field(
        default=10,
        ge=1,
        description="Number of orders to publish",
    )

    publish_rate: float = Field(
        default=1.0,
        gt=0,
        le=1000,
        description="Orders per second",
    )

    # === MOCK DATA SETTINGS ===
    mock_seed: int = Field(
        default=42,
        description="Random seed for reproducible mock data generation",
    )

    # === LOGGING ===
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    log_format: str = Field(
        default="json",
        description="Log output format (json or text)",
    )

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    def get_kafka_config(self) -> dict:
        """
        Get Kafka producer configuration dictionary.

        Idempotence requires acks=all; librdkafka then retries without
        producing duplicates within a partition.
        """
        return {
            "bootstrap.servers": self.kafka_brokers,
            "client.id": self.publisher_client_id,
            "enable.idempotence": True,
            "acks": "all",
            "linger.ms": 10,
            "retry.backoff.ms": 100,
            "request.timeout.ms": 30000,
            "max.in.flight.requests.per.connection": 5,
        }


def load_config() -> PublisherConfig:
    """Load and validate publisher configuration."""
    return PublisherConfig()
