"""
Cache-aside read path.

Lookup order: cache → store. A store hit is written back to the cache so
the next lookup for the same order_uid never reaches the store. Misses are
not cached: an absent order_uid queries the store every time.
"""

import logging
from typing import Optional

from src.order_service.cache import OrderCache
from src.order_service.errors import ValidationError
from src.order_service.models import Order
from src.order_service.repository import OrderStore


class ReadService:
    """Serves order lookups for the HTTP API."""

    def __init__(
        self,
        cache: OrderCache,
        store: OrderStore,
        logger: Optional[logging.Logger] = None,
    ):
        self.cache = cache
        self.store = store
        self.logger = logger or logging.getLogger(__name__)

    def get_order(self, order_uid: str) -> Order:
        """
        Fetch an order by uid.

        Raises:
            ValidationError: Empty order_uid
            NotFoundError: Order absent from cache and store
            TransientInfraError: Store lookup failed
        """
        if not order_uid:
            raise ValidationError("order_uid is required")

        order, found = self.cache.get(order_uid)
        if found:
            return order

        self.logger.debug(
            "Order not in cache, fetching from database",
            extra={"correlation_id": order_uid},
        )
        order = self.store.get_order(order_uid)

        self.cache.set(order_uid, order)
        return order

    def cache_size(self) -> int:
        return self.cache.size()
