"""
Service Lifecycle

``ServiceRunner`` wires the components together and owns startup and
shutdown ordering.

STARTUP (strictly sequenced):
1. Connect to PostgreSQL           → failure is fatal (exit code 1)
2. Warm the cache from a full scan → failure is logged, service starts cold
3. Build the consumer around the ingest handler
4. Start the consumer (group join is fatal on failure) and the HTTP server

SHUTDOWN (first of: SIGINT/SIGTERM, consumer failure, server failure):
1. Set the shared shutdown event (every loop observes it)
2. Stop the HTTP server, bounded by SERVER_SHUTDOWN_GRACE_S
3. Stop the consumer, waiting for every partition claim to exit
4. Close the store
Timeouts and errors during shutdown are logged, never escalated.
"""

import logging
import signal
import threading
from typing import Any, Callable, Dict, Optional

from confluent_kafka import Consumer
from fastapi import FastAPI

from src.order_service.api import RequestServer, create_app
from src.order_service.cache import OrderCache
from src.order_service.config import ServiceConfig
from src.order_service.consumer import OrderConsumer
from src.order_service.database import init_database
from src.order_service.errors import FatalStartupError, OrderServiceError
from src.order_service.handler import IngestHandler
from src.order_service.read_service import ReadService
from src.order_service.repository import OrderStore, PostgresOrderRepository

FailureCallback = Callable[[str, BaseException], None]


def connect_postgres(config: ServiceConfig, logger: logging.Logger) -> OrderStore:
    """Open the PostgreSQL store. Raises FatalStartupError when unreachable."""
    db_manager = init_database(config, logger=logger)
    return PostgresOrderRepository(db_manager, logger=logger)


def build_request_server(
    app: FastAPI,
    config: ServiceConfig,
    shutdown_event: threading.Event,
    on_failure: FailureCallback,
    logger: logging.Logger,
) -> RequestServer:
    return RequestServer(
        app,
        host=config.server_host,
        port=config.server_port,
        shutdown_grace_s=config.server_shutdown_grace_s,
        read_timeout_s=config.server_read_timeout_s,
        shutdown_event=shutdown_event,
        on_failure=on_failure,
        logger=logger,
    )


class ServiceRunner:
    """
    Lifecycle coordinator for the order service.

    Attributes:
        config: Service configuration
        shutdown_event: Shared cancellation signal for every subsystem
        cache: Order cache shared by the consumer and the HTTP API
        shutdown_reason: What triggered shutdown (signal or failing subsystem)
    """

    def __init__(
        self,
        config: ServiceConfig,
        logger: Optional[logging.Logger] = None,
        store_factory: Callable[[ServiceConfig, logging.Logger], OrderStore] = connect_postgres,
        kafka_consumer_factory: Callable[[Dict[str, Any]], Consumer] = Consumer,
        server_factory: Callable[..., RequestServer] = build_request_server,
    ):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.shutdown_event = threading.Event()
        self.shutdown_reason: Optional[str] = None

        self._store_factory = store_factory
        self._kafka_consumer_factory = kafka_consumer_factory
        self._server_factory = server_factory
        self._reason_lock = threading.Lock()

        self.cache = OrderCache(logger=self.logger.getChild("cache"))
        self.store: Optional[OrderStore] = None
        self.consumer: Optional[OrderConsumer] = None
        self.server: Optional[RequestServer] = None

    def run(self, install_signal_handlers: bool = True) -> int:
        """
        Start the service, block until shutdown is requested, then stop it.

        Returns:
            Exit code (0 = graceful shutdown, 1 = startup failure)
        """
        try:
            self.startup()
        except FatalStartupError as e:
            self.logger.critical("Failed to start order service", extra={"error": str(e)})
            self.shutdown_event.set()
            self._close_store()
            return 1

        if install_signal_handlers:
            self._install_signal_handlers()

        self.wait()
        self.shutdown()
        return 0

    def startup(self) -> None:
        """
        Run the startup sequence.

        Raises:
            FatalStartupError: Store unreachable or consumer group join failed
        """
        self.store = self._store_factory(self.config, self.logger.getChild("store"))
        self.logger.info("Database connection established")

        try:
            self.cache.load_all(self.store)
        except OrderServiceError as e:
            self.logger.error(
                "Failed to load cache from store, starting with a cold cache",
                extra={"error": str(e)},
            )

        handler = IngestHandler(self.store, self.cache, logger=self.logger.getChild("handler"))
        self.consumer = OrderConsumer(
            self.config,
            handler,
            shutdown_event=self.shutdown_event,
            on_failure=self._on_subsystem_failure,
            consumer_factory=self._kafka_consumer_factory,
            logger=self.logger.getChild("consumer"),
        )

        read_service = ReadService(self.cache, self.store, logger=self.logger.getChild("reads"))
        app = create_app(
            read_service,
            logger=self.logger.getChild("api"),
            write_timeout_s=self.config.server_write_timeout_s,
        )
        self.server = self._server_factory(
            app,
            self.config,
            self.shutdown_event,
            self._on_subsystem_failure,
            self.logger.getChild("api"),
        )

        self.consumer.start()
        self.server.start()

        self.logger.info(
            "Order service started",
            extra={"cache_size": self.cache.size(), "port": self.config.server_port},
        )

    def wait(self) -> None:
        """Block until the shared shutdown event is set."""
        # Short waits keep the main thread responsive to signal handlers
        while not self.shutdown_event.wait(timeout=0.5):
            pass

    def request_shutdown(self, reason: str) -> None:
        """Record why shutdown started (first caller wins) and set the shared event."""
        with self._reason_lock:
            if self.shutdown_reason is None:
                self.shutdown_reason = reason
        self.shutdown_event.set()

    def shutdown(self) -> None:
        self.logger.info("Initiating graceful shutdown...", extra={"reason": self.shutdown_reason})
        self.shutdown_event.set()

        if self.server is not None and not self.server.stop():
            self.logger.error("HTTP server shutdown timed out")

        if self.consumer is not None:
            self.consumer.stop()

        self._close_store()
        self.logger.info("Service stopped gracefully")

    def _on_subsystem_failure(self, subsystem: str, error: BaseException) -> None:
        self.logger.error(
            "Subsystem failed, shutting down",
            extra={"subsystem": subsystem, "error": str(error)},
        )
        self.request_shutdown(f"{subsystem} failure")

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            self.logger.warning("Not on the main thread, signal handlers not installed")
            return

        def handle_signal(signum: int, frame) -> None:
            signal_name = signal.Signals(signum).name
            self.logger.info(f"Received {signal_name}, initiating graceful shutdown...")
            self.request_shutdown(signal_name)

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)
        self.logger.info("Signal handlers registered (SIGINT, SIGTERM)")

    def _close_store(self) -> None:
        if self.store is None:
            return
        try:
            self.store.close()
        except OrderServiceError:
            self.logger.error("Error closing store", exc_info=True)
