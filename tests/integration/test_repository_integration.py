"""
Integration Tests for the PostgreSQL Order Store

Runs PostgresOrderRepository against a real PostgreSQL testcontainer.

TEST STRATEGY:
- Schema bootstrap through init_database
- Upsert semantics (insert, then overwrite by order_uid)
- Lookup, full scan and not-found behavior
- Startup failure when the database is unreachable
"""

import pytest
from sqlalchemy import select, text

from src.order_service.config import ServiceConfig
from src.order_service.database import init_database
from src.order_service.errors import FatalStartupError, NotFoundError
from src.order_service.models import OrderRecord
from src.order_service.repository import PostgresOrderRepository


@pytest.fixture
def repository(integration_config):
    db_manager = init_database(integration_config)
    repository = PostgresOrderRepository(db_manager)
    yield repository
    with db_manager.get_session() as session:
        session.execute(text("TRUNCATE TABLE orders"))
    repository.close()


@pytest.mark.integration
def test_save_and_get_order(repository, sample_order):
    repository.save_order(sample_order)

    assert repository.get_order(sample_order.order_uid) == sample_order


@pytest.mark.integration
def test_save_order_upserts_by_uid(repository, make_order):
    repository.save_order(make_order("abc", track_number="FIRST"))
    repository.save_order(make_order("abc", track_number="SECOND"))

    assert repository.get_order("abc").track_number == "SECOND"
    assert len(repository.get_all_orders()) == 1


@pytest.mark.integration
def test_upsert_refreshes_updated_at(repository, sample_order):
    repository.save_order(sample_order)
    with repository.db_manager.get_session() as session:
        first = session.scalar(select(OrderRecord.updated_at))

    repository.save_order(sample_order)
    with repository.db_manager.get_session() as session:
        second = session.scalar(select(OrderRecord.updated_at))

    assert second >= first


@pytest.mark.integration
def test_get_missing_order_raises_not_found(repository):
    with pytest.raises(NotFoundError):
        repository.get_order("nonexistent")


@pytest.mark.integration
def test_get_all_orders(repository, make_order):
    for uid in ("a", "b", "c"):
        repository.save_order(make_order(uid))

    orders = repository.get_all_orders()

    assert sorted(o.order_uid for o in orders) == ["a", "b", "c"]


@pytest.mark.integration
def test_nested_structures_round_trip(repository, sample_order):
    repository.save_order(sample_order)
    order = repository.get_order(sample_order.order_uid)

    assert order.delivery == sample_order.delivery
    assert order.payment == sample_order.payment
    assert order.items == sample_order.items
    assert order.date_created == sample_order.date_created


@pytest.mark.integration
def test_unreachable_database_is_fatal():
    config = ServiceConfig(db_host="127.0.0.1", db_port=1, db_create_schema=False)

    with pytest.raises(FatalStartupError):
        init_database(config)
