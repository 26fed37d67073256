"""
Pytest Configuration and Shared Fixtures

Unit tests run against in-memory fakes (order store, Kafka consumer).
Integration tests use testcontainers to spin up real Kafka and PostgreSQL
instances.

FIXTURE SCOPES:
- session: Created once for entire test session (containers)
- function: Created for each test function (fakes, configs)
"""

import os
import time
from typing import Any, Callable, Dict, Generator

import pytest
from testcontainers.kafka import KafkaContainer
from testcontainers.postgres import PostgresContainer

from src.order_service.config import ServiceConfig
from src.order_service.models import Order
from tests.fakes import FakeKafkaConsumer, InMemoryOrderStore

# ==============================================================================
# ORDER DATA FIXTURES
# ==============================================================================


@pytest.fixture
def sample_order_data() -> Dict[str, Any]:
    """
    Provides the canonical test order in wire format.

    Returns:
        Dictionary representing a valid order message
    """
    return {
        "order_uid": "b563feb7b2b84b6test",
        "track_number": "WBILMTESTTRACK",
        "entry": "WBIL",
        "delivery": {
            "name": "Test Testov",
            "phone": "+9720000000",
            "zip": "2639809",
            "city": "Kiryat Mozkin",
            "address": "Ploshad Mira 15",
            "region": "Kraiot",
            "email": "test@gmail.com",
        },
        "payment": {
            "transaction": "b563feb7b2b84b6test",
            "request_id": "",
            "currency": "USD",
            "provider": "wbpay",
            "amount": 1817,
            "payment_dt": 1637907727,
            "bank": "alpha",
            "delivery_cost": 1500,
            "goods_total": 317,
            "custom_fee": 0,
        },
        "items": [
            {
                "chrt_id": 9934930,
                "track_number": "WBILMTESTTRACK",
                "price": 453,
                "rid": "ab4219087a764ae0btest",
                "name": "Mascaras",
                "sale": 30,
                "size": "0",
                "total_price": 317,
                "nm_id": 2389212,
                "brand": "Vivienne Sabo",
                "status": 202,
            }
        ],
        "locale": "en",
        "internal_signature": "",
        "customer_id": "test",
        "delivery_service": "meest",
        "shardkey": "9",
        "sm_id": 99,
        "date_created": "2021-11-26T06:22:19Z",
        "oof_shard": "1",
    }


@pytest.fixture
def sample_order(sample_order_data) -> Order:
    return Order.model_validate(sample_order_data)


@pytest.fixture
def make_order(sample_order_data) -> Callable[..., Order]:
    """Factory for valid orders that differ from the sample by uid (and any overrides)."""

    def _make(order_uid: str, **overrides) -> Order:
        data = dict(sample_order_data, order_uid=order_uid, **overrides)
        return Order.model_validate(data)

    return _make


# ==============================================================================
# IN-MEMORY FAKES
# ==============================================================================


@pytest.fixture
def order_store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def fake_kafka() -> FakeKafkaConsumer:
    return FakeKafkaConsumer()


@pytest.fixture
def service_config() -> ServiceConfig:
    """ServiceConfig with short timeouts for threaded unit tests."""
    return ServiceConfig(
        kafka_brokers="localhost:9092",
        kafka_topic="orders",
        kafka_group_id="test-group",
        kafka_poll_timeout_s=0.01,
        kafka_join_timeout_s=1.0,
        claim_queue_size=10,
        server_port=18081,
        server_shutdown_grace_s=1.0,
    )


@pytest.fixture
def wait_for() -> Callable[..., bool]:
    """Poll ``predicate`` until it is true or ``timeout`` seconds pass."""

    def _wait(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    return _wait


# ==============================================================================
# POSTGRESQL FIXTURES
# ==============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Provides PostgreSQL testcontainer for the entire test session.

    Yields:
        PostgresContainer instance with running PostgreSQL
    """
    with PostgresContainer("postgres:15") as postgres:
        postgres.get_connection_url()
        yield postgres


# ==============================================================================
# KAFKA FIXTURES
# ==============================================================================


@pytest.fixture(scope="session")
def kafka_container() -> Generator[KafkaContainer, None, None]:
    """
    Provides Kafka testcontainer for the entire test session.

    Yields:
        KafkaContainer instance with running Kafka broker
    """
    with KafkaContainer() as kafka:
        kafka.get_bootstrap_server()
        yield kafka


@pytest.fixture(scope="function")
def integration_config(postgres_container, kafka_container) -> ServiceConfig:
    """
    Provides ServiceConfig pointing to the test containers.

    Each test gets its own topic and consumer group so committed offsets
    never leak between tests.
    """
    suffix = str(int(time.time() * 1000))
    return ServiceConfig(
        db_host=postgres_container.get_container_host_ip(),
        db_port=int(postgres_container.get_exposed_port(5432)),
        db_user=postgres_container.username,
        db_password=postgres_container.password,
        db_name=postgres_container.dbname,
        kafka_brokers=kafka_container.get_bootstrap_server(),
        kafka_topic=f"orders-{suffix}",
        kafka_group_id=f"order-service-{suffix}",
        kafka_poll_timeout_s=0.2,
        server_shutdown_grace_s=2.0,
    )


# ==============================================================================
# TEST ENVIRONMENT CONFIGURATION
# ==============================================================================


def pytest_configure(config):
    """
    Pytest hook called during test configuration.

    Sets up test environment variables and markers.
    """
    os.environ["ENVIRONMENT"] = "test"
    os.environ["LOG_LEVEL"] = "DEBUG"

    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires containers)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow (takes more than 5 seconds)")
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")
