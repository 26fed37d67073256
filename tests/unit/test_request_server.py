"""
Unit Tests for the uvicorn Request Server

Runs RequestServer on a free local port with an in-memory store.

TEST STRATEGY:
- stop() returns True when idle and False once the grace period runs out
- Connections that never finish their request headers are closed
- A port that cannot be bound is reported as a server failure
"""

import socket
import threading
import time

import httpx
import pytest

from src.order_service.api import RequestServer, create_app
from src.order_service.cache import OrderCache
from src.order_service.read_service import ReadService

from tests.fakes import InMemoryOrderStore


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def app():
    return create_app(ReadService(OrderCache(), InMemoryOrderStore()))


@pytest.fixture
def make_server(app):
    servers = []

    def _make(port=None, shutdown_grace_s=0.5, read_timeout_s=15.0, **kwargs):
        server = RequestServer(
            app,
            host="127.0.0.1",
            port=port or free_port(),
            shutdown_grace_s=shutdown_grace_s,
            read_timeout_s=read_timeout_s,
            **kwargs,
        )
        servers.append(server)
        return server

    yield _make
    for server in servers:
        server.stop()


@pytest.mark.unit
def test_idle_server_stops_within_grace(make_server):
    server = make_server()
    server.start()
    assert server.wait_started(timeout=5)

    response = httpx.get(f"http://127.0.0.1:{server.port}/health", timeout=5)
    assert response.json() == {"status": "ok", "cache_size": 0}

    assert server.stop() is True


@pytest.mark.unit
def test_stop_reports_timeout_when_request_outlives_grace(app, make_server):
    entered = threading.Event()
    release = threading.Event()

    @app.get("/slow")
    def slow() -> dict:
        entered.set()
        release.wait(timeout=10)
        return {"status": "done"}

    server = make_server(shutdown_grace_s=0.5)
    server.start()
    assert server.wait_started(timeout=5)

    def call_slow():
        try:
            httpx.get(f"http://127.0.0.1:{server.port}/slow", timeout=10)
        except httpx.HTTPError:
            pass

    client = threading.Thread(target=call_slow, daemon=True)
    client.start()
    assert entered.wait(timeout=5)

    started = time.monotonic()
    stopped = server.stop()
    elapsed = time.monotonic() - started
    release.set()
    client.join(timeout=10)

    assert stopped is False
    assert elapsed < 1.5


@pytest.mark.unit
def test_partial_request_headers_are_closed_after_read_deadline(make_server):
    server = make_server(read_timeout_s=0.5)
    server.start()
    assert server.wait_started(timeout=5)

    with socket.create_connection(("127.0.0.1", server.port), timeout=5) as sock:
        sock.sendall(b"GET /health HTTP/1.1\r\nHost: localhost\r\n")
        started = time.monotonic()
        data = sock.recv(1024)
        elapsed = time.monotonic() - started

    assert data == b""
    assert elapsed < 3


@pytest.mark.unit
def test_port_in_use_is_reported_as_failure(make_server):
    failures = []
    shutdown_event = threading.Event()

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
        taken.bind(("127.0.0.1", 0))
        taken.listen(1)
        server = make_server(
            port=taken.getsockname()[1],
            shutdown_event=shutdown_event,
            on_failure=lambda subsystem, error: failures.append(subsystem),
        )
        server.start()

        assert server.wait_started(timeout=5) is False
        assert shutdown_event.wait(timeout=5)

    assert failures == ["http-server"]
    assert server.failure is not None
