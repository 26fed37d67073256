"""
Ingest write path.

Persist first, then cache: the cache may lag the store, it is never ahead
of it. If the store write fails the cache is left untouched and the error
propagates so the consumer does not commit the message.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from src.order_service.cache import OrderCache
from src.order_service.errors import OrderServiceError, TransientInfraError
from src.order_service.models import Order
from src.order_service.repository import OrderStore
from src.shared.logger import CorrelationAdapter


class MessageHandler(ABC):
    """Receives every decoded, validated order from the consumer."""

    @abstractmethod
    def handle(self, order: Order) -> None:
        """
        Process one order.

        Raises:
            OrderServiceError: The message must not be committed
        """


class IngestHandler(MessageHandler):
    """Saves orders to the durable store, then mirrors them into the cache."""

    def __init__(
        self,
        store: OrderStore,
        cache: OrderCache,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.cache = cache
        self.logger = logger or logging.getLogger(__name__)

    def handle(self, order: Order) -> None:
        order_logger = CorrelationAdapter(self.logger, {"correlation_id": order.order_uid})

        try:
            self.store.save_order(order)
        except OrderServiceError as e:
            order_logger.error("Failed to save order to database", extra={"error": str(e)})
            if isinstance(e, TransientInfraError):
                raise
            raise TransientInfraError("failed to save order", e) from e

        self.cache.set(order.order_uid, order)

        order_logger.info(
            "Order handled successfully",
            extra={"items_count": len(order.items)},
        )
