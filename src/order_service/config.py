"""
Order Service Configuration Module

Settings for the Kafka consumer, the PostgreSQL store and the HTTP server.
Loaded from environment variables (and a local .env file) with Pydantic
validation.
"""

from typing import List

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env file if present (local development)
load_dotenv()


class ServiceConfig(BaseSettings):
    """
    Order service configuration with validation.

    Field names double as environment variable names (case-insensitive),
    e.g. ``DB_HOST``, ``KAFKA_BROKERS``, ``SERVER_PORT``.
    """

    # === DATABASE SETTINGS ===
    db_host: str = Field(
        default="localhost",
        description="PostgreSQL host",
    )

    db_port: int = Field(
        default=5432,
        ge=1,
        le=65535,
        description="PostgreSQL port",
    )

    db_user: str = Field(
        default="orders_user",
        description="PostgreSQL username",
    )

    db_password: str = Field(
        default="orders_password",
        description="PostgreSQL password",
    )

    db_name: str = Field(
        default="orders_db",
        description="PostgreSQL database name",
    )

    db_sslmode: str = Field(
        default="disable",
        description="libpq sslmode (disable, require, verify-full, ...)",
    )

    db_pool_size: int = Field(
        default=5,
        ge=1,
        le=20,
        description="SQLAlchemy connection pool size",
    )

    db_create_schema: bool = Field(
        default=True,
        description="Create the orders table on startup if it does not exist",
    )

    # === KAFKA CONSUMER SETTINGS ===
    kafka_brokers: str = Field(
        default="localhost:9092",
        description="Kafka broker addresses (comma-separated)",
    )

    kafka_topic: str = Field(
        default="orders",
        description="Kafka topic to consume from",
    )

    kafka_group_id: str = Field(
        default="order-service",
        description="Consumer group ID",
    )

    kafka_client_id: str = Field(
        default="order-service",
        description="Consumer client identifier",
    )

    kafka_poll_timeout_s: float = Field(
        default=1.0,
        gt=0,
        le=30,
        description="Seconds a single broker poll may block",
    )

    kafka_join_timeout_s: float = Field(
        default=10.0,
        gt=0,
        description="Seconds to wait for broker metadata when joining the group",
    )

    claim_queue_size: int = Field(
        default=1000,
        ge=1,
        description="Messages buffered per partition claim",
    )

    # === HTTP SERVER SETTINGS ===
    server_host: str = Field(
        default="0.0.0.0",
        description="HTTP listen address",
    )

    server_port: int = Field(
        default=8081,
        ge=1,
        le=65535,
        description="HTTP listen port",
    )

    server_shutdown_grace_s: float = Field(
        default=30.0,
        gt=0,
        description="Seconds in-flight requests get to finish on shutdown",
    )

    server_read_timeout_s: float = Field(
        default=15.0,
        gt=0,
        description="Seconds a client gets to send complete request headers",
    )

    server_write_timeout_s: float = Field(
        default=15.0,
        gt=0,
        description="Seconds a request may take before it is answered with 503",
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

    def broker_list(self) -> List[str]:
        """Broker addresses as a list, blanks dropped."""
        return [broker.strip() for broker in self.kafka_brokers.split(",") if broker.strip()]

    def get_kafka_config(self) -> dict:
        """
        Get Kafka consumer configuration dictionary.

        Offsets are committed manually after each successfully handled
        message; a group with no committed offset starts from the oldest one.
        """
        return {
            "bootstrap.servers": ",".join(self.broker_list()),
            "group.id": self.kafka_group_id,
            "client.id": self.kafka_client_id,
            "auto.offset.reset": "earliest",
            "enable.auto.commit": False,
            "partition.assignment.strategy": "roundrobin",
            "session.timeout.ms": 10000,
            "heartbeat.interval.ms": 3000,
        }

    def get_database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        return (
            f"postgresql+psycopg2://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
            f"?sslmode={self.db_sslmode}"
        )


def load_config() -> ServiceConfig:
    """Load and validate service configuration."""
    return ServiceConfig()
