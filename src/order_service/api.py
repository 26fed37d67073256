"""
HTTP Read API

Read-only order API served by FastAPI on a uvicorn server thread.

ROUTES (mounted at "/" and under "/api/v1"):
- GET /order/{order_uid}  → 200 order | 400 empty uid | 404 | 500
- GET /health             → {"status": "ok", "cache_size": n}
- GET /cache/stats        → {"cache_size": n}

Errors are returned as {"error": "<message>"}.

DEADLINES:
- Read: request headers must arrive within SERVER_READ_TIMEOUT_S, otherwise
  the connection is closed
- Write: a request not answered within SERVER_WRITE_TIMEOUT_S gets 503
"""

import asyncio
import logging
import threading
import time
from typing import Callable, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from uvicorn.protocols.http.h11_impl import H11Protocol

from src.order_service.errors import ErrorKind, OrderServiceError
from src.order_service.models import Order
from src.order_service.read_service import ReadService

API_PREFIX = "/api/v1"

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.TRANSIENT: 500,
    ErrorKind.FATAL_STARTUP: 500,
}

INTERNAL_ERROR = "internal server error"
REQUEST_TIMEOUT = "request timed out"


# ==============================================================================
# APPLICATION FACTORY
# ==============================================================================


def create_app(
    read_service: ReadService,
    logger: Optional[logging.Logger] = None,
    write_timeout_s: Optional[float] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        read_service: Cache-aside read path
        logger: Logger for request and error events
        write_timeout_s: Seconds a request may run before it is answered
            with 503 (no deadline when None)

    Returns:
        Configured FastAPI app
    """
    logger = logger or logging.getLogger(__name__)

    app = FastAPI(title="Order Service", version="1.0.0")
    app.state.read_service = read_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client = request.client.host if request.client else None
        logger.info(
            f"{request.method} {request.url.path}",
            extra={"client": client},
        )
        return await call_next(request)

    @app.middleware("http")
    async def enforce_write_deadline(request: Request, call_next):
        try:
            return await asyncio.wait_for(call_next(request), timeout=write_timeout_s)
        except asyncio.TimeoutError:
            logger.warning(
                "Request exceeded write deadline",
                extra={"path": request.url.path, "timeout_s": write_timeout_s},
            )
            return JSONResponse(status_code=503, content={"error": REQUEST_TIMEOUT})

    @app.exception_handler(OrderServiceError)
    async def handle_service_error(request: Request, exc: OrderServiceError) -> JSONResponse:
        status_code = STATUS_BY_KIND.get(exc.kind, 500)
        if status_code >= 500:
            logger.error(
                "Failed to get order from database",
                extra={"path": request.url.path, "error": str(exc)},
            )
            return JSONResponse(status_code=status_code, content={"error": INTERNAL_ERROR})
        return JSONResponse(status_code=status_code, content={"error": exc.message})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error serving request", exc_info=exc, extra={"path": request.url.path})
        return JSONResponse(status_code=500, content={"error": INTERNAL_ERROR})

    router = APIRouter()

    @router.get("/order/", response_model=Order)
    def get_order_without_uid() -> Order:
        return read_service.get_order("")

    @router.get("/order/{order_uid}", response_model=Order)
    def get_order(order_uid: str) -> Order:
        logger.info("Fetching order", extra={"correlation_id": order_uid})
        return read_service.get_order(order_uid)

    @router.get("/health")
    def health() -> dict:
        return {"status": "ok", "cache_size": read_service.cache_size()}

    @router.get("/cache/stats")
    def cache_stats() -> dict:
        return {"cache_size": read_service.cache_size()}

    app.include_router(router)
    app.include_router(router, prefix=API_PREFIX)

    return app


# ==============================================================================
# REQUEST SERVER
# ==============================================================================


class ReadDeadlineProtocol(H11Protocol):
    """
    h11 connection protocol with a read deadline.

    A connection must deliver complete request headers within
    ``config.read_timeout_s`` of opening, or of its previous response
    finishing, otherwise it is closed.
    """

    def __init__(self, config: "ServerConfig", server_state, app_state, _loop=None):
        super().__init__(config, server_state, app_state, _loop)
        self.read_timeout_s = config.read_timeout_s
        self._read_deadline: Optional[asyncio.TimerHandle] = None

    def connection_made(self, transport: asyncio.Transport) -> None:
        super().connection_made(transport)
        self._arm_read_deadline()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._cancel_read_deadline()
        super().connection_lost(exc)

    def handle_events(self) -> None:
        cycle = self.cycle
        super().handle_events()
        if self.cycle is not cycle:
            self._cancel_read_deadline()

    def on_response_complete(self) -> None:
        self._arm_read_deadline()
        super().on_response_complete()

    def _arm_read_deadline(self) -> None:
        self._cancel_read_deadline()
        self._read_deadline = self.loop.call_later(self.read_timeout_s, self._read_deadline_expired)

    def _cancel_read_deadline(self) -> None:
        if self._read_deadline is not None:
            self._read_deadline.cancel()
            self._read_deadline = None

    def _read_deadline_expired(self) -> None:
        self._read_deadline = None
        if not self.transport.is_closing():
            self.transport.close()


class ServerConfig(uvicorn.Config):
    """uvicorn config serving over ReadDeadlineProtocol."""

    def __init__(self, app: FastAPI, read_timeout_s: float, **kwargs):
        super().__init__(app, http=ReadDeadlineProtocol, **kwargs)
        self.read_timeout_s = read_timeout_s


class RequestServer:
    """
    uvicorn server running on a background thread.

    Connections that do not send complete request headers within
    ``read_timeout_s`` are closed.

    ``stop()`` gives in-flight requests at most ``shutdown_grace_s`` seconds
    to finish and reports whether the server stopped in time. Startup
    failures (e.g. port already bound) set the shared shutdown event and are
    reported through ``on_failure``.
    """

    def __init__(
        self,
        app: FastAPI,
        host: str,
        port: int,
        shutdown_grace_s: float,
        read_timeout_s: float = 15.0,
        shutdown_event: Optional[threading.Event] = None,
        on_failure: Optional[Callable[[str, BaseException], None]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.host = host
        self.port = port
        self.shutdown_grace_s = shutdown_grace_s
        self.logger = logger or logging.getLogger(__name__)
        self.failure: Optional[BaseException] = None

        self._shutdown_event = shutdown_event or threading.Event()
        self._on_failure = on_failure
        self._stopping = False
        self._thread: Optional[threading.Thread] = None

        self.server = uvicorn.Server(
            ServerConfig(
                app,
                read_timeout_s=read_timeout_s,
                host=host,
                port=port,
                log_config=None,
                lifespan="off",
                timeout_keep_alive=read_timeout_s,
                timeout_graceful_shutdown=shutdown_grace_s,
            )
        )

    def start(self) -> None:
        self.logger.info(f"Starting HTTP server on {self.host}:{self.port}")
        self._thread = threading.Thread(target=self._serve, name="http-server", daemon=True)
        self._thread.start()

    def wait_started(self, timeout: float) -> bool:
        """Block until the server accepts connections, it fails, or ``timeout`` passes."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.server.started:
                return True
            if self._thread is None or not self._thread.is_alive():
                return False
            time.sleep(0.05)
        return self.server.started

    def stop(self) -> bool:
        """
        Stop accepting requests and wait for in-flight ones.

        Returns:
            True if the server stopped within the grace period, False on timeout
        """
        self._stopping = True
        if self._thread is None:
            return True

        self.logger.info("Stopping HTTP server...")
        self.server.should_exit = True
        self._thread.join(timeout=self.shutdown_grace_s)

        if self._thread.is_alive():
            self.server.force_exit = True
            self.logger.warning(
                "HTTP server did not stop within grace period",
                extra={"grace_s": self.shutdown_grace_s},
            )
            return False

        self.logger.info("HTTP server stopped")
        return True

    def _serve(self) -> None:
        try:
            self.server.run()
        # uvicorn calls sys.exit(1) when it cannot bind
        except (Exception, SystemExit) as e:
            self.logger.error("HTTP server error", exc_info=True)
            self._report_failure(e)
            return

        if not self.server.started and not self._stopping:
            self._report_failure(RuntimeError("HTTP server exited before it started"))

    def _report_failure(self, error: BaseException) -> None:
        if self.failure is None:
            self.failure = error
        if self._on_failure is not None:
            self._on_failure("http-server", error)
        self._shutdown_event.set()
