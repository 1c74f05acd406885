"""
=============================================================================
TCP LISTENER
=============================================================================

Owns the listening socket. Every accepted client becomes a Connection
that is passed to a callback; UserServer's callback starts one thread
per connection, so the accept loop never waits on a request.

    bind(host, port) ─► listen(backlog) ─► ready ─┐
                                                  ▼
                          ┌──── accept() ◄── timeout (1s) ── running? ──► close
                          │
                          ▼
                  Connection(socket, address, read settings)
                          │
                          ▼
                  on_connection(conn)

=============================================================================
STOPPING
=============================================================================

accept() wakes up once a second so a stop() from another thread is
noticed. SIGINT and SIGTERM trigger stop() only when serve() runs on
the main thread; Python delivers signals nowhere else.

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Dict, Optional, Tuple

from ..config import ServiceConfig
from .connection import Connection


logger = logging.getLogger(__name__)

ConnectionCallback = Callable[[Connection], None]

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class Listener:
    """
    Accepts TCP clients for the service.

    Usage:
        listener = Listener(config)
        listener.serve(lambda conn: ...)   # Blocks until stop()
    """

    ACCEPT_POLL_INTERVAL = 1.0

    def __init__(self, config: ServiceConfig):
        self.config = config
        self._sock: Optional[socket.socket] = None
        self._serving = False
        self._listening = threading.Event()
        self._previous_handlers: Dict[int, object] = {}
        self._bound: Optional[Tuple[str, int]] = None

    @property
    def address(self) -> Tuple[str, int]:
        """
        The (host, port) clients connect to. Until serve() has bound the
        socket this is the configured pair; port 0 resolves on bind.
        """
        return self._bound or (self.config.host, self.config.port)

    def serve(self, on_connection: ConnectionCallback) -> None:
        """
        Bind, listen and accept until stop() is called.

        Raises:
            OSError: The address could not be bound.
        """
        self._sock = self._bind()
        self._sock.listen(self.config.backlog)
        self._bound = self._sock.getsockname()[:2]

        self._serving = True
        self._install_signal_handlers()
        host, port = self._bound
        logger.info(f"Server listening on {host}:{port}")
        self._listening.set()

        try:
            while self._serving:
                conn = self._next_connection()
                if conn is not None:
                    on_connection(conn)
        finally:
            self._close()

    def stop(self) -> None:
        """Ask serve() to return. Safe from any thread, safe to repeat."""
        if self._serving:
            logger.info("Stopping listener...")
        self._serving = False

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        return self._listening.wait(timeout)

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(self.ACCEPT_POLL_INTERVAL)

        host, port = self.config.host, self.config.port
        try:
            sock.bind((host, port))
        except OSError as e:
            logger.error(f"Cannot bind {host}:{port}: {e}")
            sock.close()
            raise
        return sock

    def _next_connection(self) -> Optional[Connection]:
        """One accepted client, or None when the poll interval passed."""
        try:
            client, address = self._sock.accept()
        except socket.timeout:
            return None
        except OSError as e:
            if self._serving:
                logger.error(f"accept() failed: {e}")
            self._serving = False
            return None

        logger.debug(f"Accepted {address[0]}:{address[1]}")
        return Connection(
            socket=client,
            address=address,
            buffer_size=self.config.buffer_size,
            read_full_request=self.config.read_full_request,
            max_request_size=self.config.max_request_size,
            timeout=self.config.timeout,
        )

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Serving off the main thread; signals left alone")
            return

        def on_signal(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, stopping")
            self.stop()

        for sig in STOP_SIGNALS:
            self._previous_handlers[sig] = signal.signal(sig, on_signal)

    def _close(self) -> None:
        while self._previous_handlers:
            sig, handler = self._previous_handlers.popitem()
            signal.signal(sig, handler)

        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None

        self._serving = False
        self._listening.clear()
        logger.info("Listener closed")
