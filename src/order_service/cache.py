"""
In-Memory Order Cache

A key → Order mapping shared by the Kafka claim threads (writers) and the
HTTP request threads (readers and cache-aside writers).

CONCURRENCY:
- Guarded by a single ReadWriteLock: any number of concurrent readers, or
  one writer, never both.
- get/set/delete/clear are linearizable with respect to each other.
- size() and snapshot() observe a consistent point in time.

There is no TTL and no eviction: the cache holds at most one entry per
distinct order_uid in the store, and is warmed once at startup.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Protocol, Sequence, Tuple

from src.order_service.models import Order


# ==============================================================================
# READER/WRITER LOCK
# ==============================================================================


class ReadWriteLock:
    """
    Reader/writer exclusion built on a Condition.

    Waiting writers block new readers, so a steady stream of lookups cannot
    starve ingestion.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# ==============================================================================
# ORDER CACHE
# ==============================================================================


class OrderSource(Protocol):
    """Anything that can produce a full snapshot of stored orders."""

    def get_all_orders(self) -> Sequence[Order]:
        ...


class OrderCache:
    """
    Thread-safe order cache.

    Attributes:
        logger: Logger for cache events (DEBUG per operation, INFO on load)
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._orders: Dict[str, Order] = {}
        self._lock = ReadWriteLock()
        self.logger = logger or logging.getLogger(__name__)

    def set(self, order_uid: str, order: Order) -> None:
        """Insert or overwrite the entry for ``order_uid``."""
        with self._lock.write_locked():
            self._orders[order_uid] = order
        self.logger.debug("Order added to cache", extra={"correlation_id": order_uid})

    def get(self, order_uid: str) -> Tuple[Optional[Order], bool]:
        """
        Look up an order.

        Returns:
            ``(order, True)`` on hit, ``(None, False)`` on miss
        """
        with self._lock.read_locked():
            order = self._orders.get(order_uid)

        if order is None:
            self.logger.debug("Order not found in cache", extra={"correlation_id": order_uid})
            return None, False

        self.logger.debug("Order found in cache", extra={"correlation_id": order_uid})
        return order, True

    def delete(self, order_uid: str) -> None:
        """Remove ``order_uid`` if present. Administrative use only."""
        with self._lock.write_locked():
            self._orders.pop(order_uid, None)
        self.logger.debug("Order deleted from cache", extra={"correlation_id": order_uid})

    def clear(self) -> None:
        """Drop every entry. Administrative use only."""
        with self._lock.write_locked():
            self._orders = {}
        self.logger.debug("Cache cleared")

    def size(self) -> int:
        with self._lock.read_locked():
            return len(self._orders)

    def snapshot(self) -> Dict[str, Order]:
        """Independent copy of all entries (not a live view)."""
        with self._lock.read_locked():
            return dict(self._orders)

    def load_all(self, source: OrderSource) -> int:
        """
        Populate the cache from a full scan of ``source``.

        The scan runs outside the lock; the results are installed under a
        single write lock so readers never see a half-loaded batch.

        Args:
            source: Provider of ``get_all_orders()`` (normally the store)

        Returns:
            Number of orders loaded

        Raises:
            Whatever ``source.get_all_orders()`` raises
        """
        self.logger.info("Loading orders from store into cache...")

        orders = source.get_all_orders()

        with self._lock.write_locked():
            for order in orders:
                self._orders[order.order_uid] = order

        self.logger.info("Orders loaded into cache", extra={"orders_loaded": len(orders)})
        return len(orders)
