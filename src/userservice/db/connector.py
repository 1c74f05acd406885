"""
=============================================================================
DATABASE CONNECTORS
=============================================================================

A connector hands out ONE database connection for the duration of a
single handler call:

    with connector.connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT ...", (user_id,))

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    connection() lifecycle                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   _acquire()  ──► connect failed? ──► DatabaseUnavailable           │
    │       │                                                              │
    │       ▼                                                              │
    │   yield conn  ──► psycopg2.Error? ──► rollback, QueryFailed         │
    │       │                                                              │
    │       ▼                                                              │
    │   commit()                                                           │
    │       │                                                              │
    │       ▼                                                              │
    │   _release()  (always)                                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Two strategies:

    DirectConnector   Fresh connection per call, closed afterwards.
                      Simple, but every request pays the connect cost
                      and concurrent requests open concurrent connections.

    PooledConnector   psycopg2's ThreadedConnectionPool, owned by the
                      service and borrowed per call. Pool exhaustion is
                      reported the same way as a failed connect.

=============================================================================
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional

import psycopg2
from psycopg2 import pool


logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base class for database failures."""


class DatabaseUnavailable(StoreError):
    """Could not obtain a connection (connect failed, pool exhausted)."""


class QueryFailed(StoreError):
    """A statement or the commit failed on an open connection."""


class Connector:
    """
    Base connector. Subclasses implement _acquire() and _release().
    """

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """
        Borrow a connection for one unit of work (one transaction).

        Raises:
            DatabaseUnavailable: If no connection could be obtained.
            QueryFailed: If psycopg2 raised while the connection was in use.
        """
        conn = self._acquire()
        try:
            yield conn
            conn.commit()
        except psycopg2.Error as e:
            _rollback(conn)
            raise QueryFailed(str(e).strip()) from e
        except Exception:
            _rollback(conn)
            raise
        finally:
            self._release(conn)

    def close(self) -> None:
        """Release any resources held by the connector."""

    def _acquire(self) -> Any:
        raise NotImplementedError

    def _release(self, conn: Any) -> None:
        raise NotImplementedError


class DirectConnector(Connector):
    """
    Opens a brand new connection for every call.

    Args:
        dsn: libpq connection string or URL (postgresql://...).
        connect: Connection factory, psycopg2.connect by default.
        connect_timeout: Seconds to wait for the server, None for libpq's default.
    """

    def __init__(
        self,
        dsn: str,
        connect: Callable[..., Any] = psycopg2.connect,
        connect_timeout: Optional[int] = None,
    ):
        self.dsn = dsn
        self._connect = connect
        self._connect_timeout = connect_timeout

    def _acquire(self) -> Any:
        kwargs = {}
        if self._connect_timeout is not None:
            kwargs["connect_timeout"] = self._connect_timeout
        try:
            return self._connect(self.dsn, **kwargs)
        except psycopg2.Error as e:
            logger.warning(f"Database connect failed: {str(e).strip()}")
            raise DatabaseUnavailable(str(e).strip()) from e

    def _release(self, conn: Any) -> None:
        conn.close()


class PooledConnector(Connector):
    """
    Borrows connections from a ThreadedConnectionPool.

    The pool is created on first use so that constructing the connector
    never touches the network. Every borrowed connection goes back to the
    pool it came from; after close() it is closed instead.

    Args:
        dsn: libpq connection string or URL.
        max_connections: Upper bound on open connections.
        min_connections: Connections opened eagerly when the pool is created.
        connect_timeout: Seconds to wait for the server, None for libpq's default.
    """

    def __init__(
        self,
        dsn: str,
        max_connections: int,
        min_connections: int = 1,
        connect_timeout: Optional[int] = None,
    ):
        if max_connections < 1:
            raise ValueError("max_connections must be >= 1")
        self.dsn = dsn
        self.min_connections = min(min_connections, max_connections)
        self.max_connections = max_connections
        self.connect_timeout = connect_timeout
        self._pool: Optional[pool.ThreadedConnectionPool] = None
        self._lenders: Dict[int, pool.ThreadedConnectionPool] = {}
        self._lock = threading.Lock()

    def _get_pool(self) -> pool.ThreadedConnectionPool:
        with self._lock:
            if self._pool is None:
                kwargs = {}
                if self.connect_timeout is not None:
                    kwargs["connect_timeout"] = self.connect_timeout
                try:
                    self._pool = pool.ThreadedConnectionPool(
                        self.min_connections, self.max_connections, self.dsn, **kwargs
                    )
                except psycopg2.Error as e:
                    raise DatabaseUnavailable(str(e).strip()) from e
                logger.info(
                    f"Connection pool ready ({self.min_connections}-{self.max_connections} connections)"
                )
            return self._pool

    def _acquire(self) -> Any:
        db_pool = self._get_pool()
        try:
            # PoolError (exhausted) is a psycopg2.Error subclass
            conn = db_pool.getconn()
        except psycopg2.Error as e:
            logger.warning(f"Could not borrow a pooled connection: {str(e).strip()}")
            raise DatabaseUnavailable(str(e).strip()) from e

        with self._lock:
            self._lenders[id(conn)] = db_pool
        return conn

    def _release(self, conn: Any) -> None:
        with self._lock:
            db_pool = self._lenders.pop(id(conn), None)

        if db_pool is None or db_pool.closed:
            logger.debug("Pool already closed, closing connection")
            conn.close()
            return

        # Broken connections are discarded instead of going back to the pool
        db_pool.putconn(conn, close=bool(conn.closed))

    def close(self) -> None:
        with self._lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None


def _rollback(conn: Any) -> None:
    try:
        conn.rollback()
    except psycopg2.Error as e:
        logger.warning(f"Rollback failed: {str(e).strip()}")


def create_connector(
    dsn: str,
    pool_size: int = 0,
    connect_timeout: Optional[int] = None,
) -> Connector:
    """
    Pick a connector for the configured pool size.

    pool_size == 0 keeps the one-connection-per-request behavior.
    """
    if pool_size > 0:
        return PooledConnector(dsn, max_connections=pool_size, connect_timeout=connect_timeout)
    return DirectConnector(dsn, connect_timeout=connect_timeout)
