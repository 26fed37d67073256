"""
Durable Order Store

``OrderStore`` is the capability the rest of the service depends on;
``PostgresOrderRepository`` implements it on top of ``DatabaseManager``.

SAVE SEMANTICS:
- ``save_order`` is an idempotent upsert keyed by order_uid
  (INSERT ... ON CONFLICT (order_uid) DO UPDATE), so redelivered Kafka
  messages simply overwrite the row with the same content.
- Every SQLAlchemy failure is wrapped in ``TransientInfraError``.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError

from src.order_service.database import DatabaseManager
from src.order_service.errors import ORDER_NOT_FOUND, NotFoundError, TransientInfraError
from src.order_service.models import Order, OrderRecord


class OrderStore(ABC):
    """Authoritative order storage."""

    @abstractmethod
    def get_all_orders(self) -> List[Order]:
        """Full snapshot of stored orders."""

    @abstractmethod
    def get_order(self, order_uid: str) -> Order:
        """
        Fetch one order.

        Raises:
            NotFoundError: No row for ``order_uid``
            TransientInfraError: Store unavailable
        """

    @abstractmethod
    def save_order(self, order: Order) -> None:
        """
        Insert or fully overwrite ``order``.

        Raises:
            TransientInfraError: Store unavailable or write rejected
        """

    def close(self) -> None:
        """Release store resources."""


class PostgresOrderRepository(OrderStore):
    """PostgreSQL-backed OrderStore."""

    def __init__(self, db_manager: DatabaseManager, logger: Optional[logging.Logger] = None):
        self.db_manager = db_manager
        self.logger = logger or logging.getLogger(__name__)

    def get_all_orders(self) -> List[Order]:
        try:
            with self.db_manager.get_session() as session:
                records = session.scalars(select(OrderRecord)).all()
                orders = [record.to_order() for record in records]
        except SQLAlchemyError as e:
            raise TransientInfraError("failed to load orders", e) from e

        self.logger.debug("Loaded all orders from database", extra={"count": len(orders)})
        return orders

    def get_order(self, order_uid: str) -> Order:
        try:
            with self.db_manager.get_session() as session:
                record = session.get(OrderRecord, order_uid)
                order = record.to_order() if record is not None else None
        except SQLAlchemyError as e:
            raise TransientInfraError(f"failed to get order {order_uid}", e) from e

        if order is None:
            raise NotFoundError(ORDER_NOT_FOUND)
        return order

    def save_order(self, order: Order) -> None:
        values = OrderRecord.values_from_order(order)
        stmt = insert(OrderRecord).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[OrderRecord.order_uid],
            set_={
                **{
                    column: stmt.excluded[column]
                    for column in values
                    if column != "order_uid"
                },
                "updated_at": func.now(),
            },
        )

        try:
            with self.db_manager.get_session() as session:
                session.execute(stmt)
        except SQLAlchemyError as e:
            raise TransientInfraError(f"failed to save order {order.order_uid}", e) from e

        self.logger.debug(
            "Order saved to database",
            extra={"correlation_id": order.order_uid},
        )

    def close(self) -> None:
        self.db_manager.close()
