"""
=============================================================================
USER SERVICE SERVER
=============================================================================

Ties the pieces together:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        REQUEST FLOW                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Listener.accept()                                                  │
    │        │                                                             │
    │        ▼                                                             │
    │   new thread ──► Connection.read_request()   (one recv by default)  │
    │                        │                                             │
    │                        ├── read error ──► log, close, NO response   │
    │                        ▼                                             │
    │                  HTTPRequest.from_bytes()    (UTF-8, lossy)          │
    │                        │                                             │
    │                        ▼                                             │
    │                  Router.handle()  ──►  UserHandlers                  │
    │                        │                    │                        │
    │                        │                    └──► UserStore ──► DB    │
    │                        ▼                                             │
    │                  HTTPResponse.to_bytes() ──► sendall() ──► close    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

One thread per connection; the accept loop never waits for a handler.
There is no limit on concurrent connections.

=============================================================================
"""

import logging
import threading
import time
from typing import Optional

from .config import ServiceConfig
from .core import Connection, ConnectionState, Listener
from .db import Connector, UserStore, create_connector
from .handlers import build_router
from .http import HTTPRequest, HTTPResponse, Router, internal_error


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("userservice.access")


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logging.getLogger("userservice").setLevel(log_level)


class UserServer:
    """
    HTTP server for the /users API.

    Args:
        config: Validated service configuration.
        store: UserStore to serve. Built from config.database_url when omitted.
        router: Router to dispatch with. Built from the store when omitted.

    Usage:
        config = ServiceConfig.from_env()
        server = UserServer(config)
        server.store.create_schema()
        server.run()
    """

    def __init__(
        self,
        config: ServiceConfig,
        store: Optional[UserStore] = None,
        router: Optional[Router] = None,
    ):
        self.config = config
        self.config.validate()

        if store is None:
            store = UserStore(create_connector(
                config.database_url, config.pool_size, config.connect_timeout
            ))
        self.store = store
        self.router = router or build_router(store)

        self._listener = Listener(self.config)
        self._running = False

    @property
    def connector(self) -> Connector:
        return self.store.connector

    @property
    def address(self):
        return self._listener.address

    def run(self):
        """Serve until shutdown() or SIGINT/SIGTERM (blocking)."""
        self._running = True
        try:
            self._listener.serve(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._running = False
            self.connector.close()
            logger.info("Server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._listener.wait_until_listening(timeout)

    def shutdown(self):
        self._listener.stop()

    def _handle_connection(self, conn: Connection):
        thread = threading.Thread(
            target=self._process_connection,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        thread.start()

    def _process_connection(self, conn: Connection):
        """Read one request, answer it, close (runs in its own thread)."""
        with conn:
            try:
                raw_request = conn.read_request()
            except (OSError, ValueError) as e:
                logger.error(f"[{conn.id}] Error reading request from {conn.client_ip}: {e}")
                return

            if raw_request is None:
                logger.debug(f"[{conn.id}] Client closed without sending a request")
                return

            start = time.perf_counter()
            request = HTTPRequest.from_bytes(raw_request, conn.address)
            conn.state = ConnectionState.PROCESSING
            response = self.dispatch(request)

            conn.send_response(response.to_bytes(self.config.server_name))
            self._log_access(request, response, (time.perf_counter() - start) * 1000)

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """Route a request; unexpected handler errors become 500 "Error"."""
        try:
            return self.router.handle(request)
        except Exception as e:
            logger.exception(f"Handler error for {request.request_line!r}: {e}")
            return internal_error("Error")

    def _log_access(self, request: HTTPRequest, response: HTTPResponse, duration_ms: float):
        access_logger.info(
            f'{request.client_ip} "{request.request_line}" '
            f"{int(response.status)} {len(response.body)} {duration_ms:.2f}ms"
        )
