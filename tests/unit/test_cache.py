"""
Unit Tests for the Order Cache

TEST STRATEGY:
- Basic set/get/delete/clear semantics
- Bulk load from a store
- Concurrent writers and readers never lose or corrupt entries
"""

import threading

import pytest

from src.order_service.cache import OrderCache, ReadWriteLock
from src.order_service.errors import TransientInfraError

from tests.fakes import InMemoryOrderStore

# ==============================================================================
# BASIC OPERATIONS
# ==============================================================================


@pytest.mark.unit
def test_get_miss_returns_none_and_false():
    cache = OrderCache()
    assert cache.get("missing") == (None, False)


@pytest.mark.unit
def test_set_then_get_returns_same_order(sample_order):
    cache = OrderCache()
    cache.set(sample_order.order_uid, sample_order)

    order, found = cache.get(sample_order.order_uid)

    assert found is True
    assert order == sample_order


@pytest.mark.unit
def test_set_overwrites_existing_entry(make_order):
    cache = OrderCache()
    cache.set("abc", make_order("abc", track_number="FIRST"))
    cache.set("abc", make_order("abc", track_number="SECOND"))

    order, _ = cache.get("abc")

    assert order.track_number == "SECOND"
    assert cache.size() == 1


@pytest.mark.unit
def test_delete_and_clear(make_order):
    cache = OrderCache()
    for uid in ("a", "b", "c"):
        cache.set(uid, make_order(uid))

    cache.delete("a")
    cache.delete("not-there")
    assert cache.size() == 2
    assert cache.get("a") == (None, False)

    cache.clear()
    assert cache.size() == 0


@pytest.mark.unit
def test_snapshot_is_independent_copy(make_order):
    cache = OrderCache()
    cache.set("a", make_order("a"))

    snapshot = cache.snapshot()
    cache.set("b", make_order("b"))
    snapshot.pop("a")

    assert cache.size() == 2
    assert snapshot == {}


# ==============================================================================
# BULK LOAD
# ==============================================================================


@pytest.mark.unit
def test_load_all_installs_every_order(make_order):
    store = InMemoryOrderStore([make_order(f"order-{i}") for i in range(5)])
    cache = OrderCache()

    loaded = cache.load_all(store)

    assert loaded == 5
    assert cache.size() == 5
    assert cache.get("order-3")[1] is True


@pytest.mark.unit
def test_load_all_propagates_store_failure(make_order):
    store = InMemoryOrderStore([make_order("a")])
    store.fail_scan = True
    cache = OrderCache()

    with pytest.raises(TransientInfraError):
        cache.load_all(store)

    assert cache.size() == 0


# ==============================================================================
# CONCURRENCY
# ==============================================================================


@pytest.mark.unit
def test_concurrent_writers_distinct_keys(make_order):
    """N threads writing distinct keys leave exactly N entries."""
    cache = OrderCache()
    threads_count = 8
    per_thread = 250
    orders = {
        f"order-{t}-{i}": make_order(f"order-{t}-{i}")
        for t in range(threads_count)
        for i in range(per_thread)
    }
    start = threading.Barrier(threads_count)

    def writer(t: int) -> None:
        start.wait()
        for i in range(per_thread):
            uid = f"order-{t}-{i}"
            cache.set(uid, orders[uid])

    threads = [threading.Thread(target=writer, args=(t,)) for t in range(threads_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert cache.size() == threads_count * per_thread
    for uid, order in orders.items():
        assert cache.get(uid) == (order, True)


@pytest.mark.unit
def test_readers_never_see_partial_values(make_order):
    """Every hit returns one of the complete values written for that key."""
    cache = OrderCache()
    versions = [make_order("shared", track_number=f"TRACK-{v}") for v in range(20)]
    cache.set("shared", versions[0])
    stop = threading.Event()
    bad_reads = []

    def reader() -> None:
        while not stop.is_set():
            order, found = cache.get("shared")
            if not found or order not in versions:
                bad_reads.append(order)

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for thread in readers:
        thread.start()

    for _ in range(50):
        for version in versions:
            cache.set("shared", version)

    stop.set()
    for thread in readers:
        thread.join()

    assert bad_reads == []


@pytest.mark.unit
def test_read_write_lock_allows_concurrent_readers():
    lock = ReadWriteLock()
    inside = threading.Barrier(2, timeout=2)

    def reader() -> None:
        with lock.read_locked():
            inside.wait()

    threads = [threading.Thread(target=reader) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert not inside.broken


@pytest.mark.unit
def test_read_write_lock_excludes_readers_during_write():
    lock = ReadWriteLock()
    writer_inside = threading.Event()
    release_writer = threading.Event()
    reader_done = threading.Event()

    def writer() -> None:
        with lock.write_locked():
            writer_inside.set()
            release_writer.wait(2)

    def reader() -> None:
        with lock.read_locked():
            reader_done.set()

    writer_thread = threading.Thread(target=writer)
    writer_thread.start()
    writer_inside.wait(2)

    reader_thread = threading.Thread(target=reader)
    reader_thread.start()

    assert not reader_done.wait(0.1)

    release_writer.set()
    writer_thread.join()
    reader_thread.join()
    assert reader_done.is_set()
