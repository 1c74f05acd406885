"""
pytest configuration and fixtures.

PostgreSQL is replaced by FakeDatabase, plugged in through the
DirectConnector's `connect` argument, so the real connector, store,
handlers and server code all run unchanged.
"""

import socket
import threading
from typing import Generator, List, Optional, Tuple

import psycopg2
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from userservice import ServiceConfig, UserServer
from userservice.db import DirectConnector, UserStore
from userservice.db import store as store_sql
from userservice.handlers import UserHandlers
from userservice.http import HTTPRequest, Router


FAKE_DSN = "postgresql://postgres:postgres@db/postgres"


def _normalize(sql: str) -> str:
    return " ".join(sql.split())


class FakeCursor:
    """Understands exactly the statements UserStore issues."""

    def __init__(self, connection: "FakeConnection"):
        self.connection = connection
        self.rowcount = -1
        self._results: List[tuple] = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def execute(self, sql: str, params: Optional[tuple] = None):
        db = self.connection.db
        if db.fail_queries:
            raise psycopg2.ProgrammingError('relation "users" does not exist')

        statement = _normalize(sql)
        with db.lock:
            db.statements.append(statement)
            if statement == _normalize(store_sql.CREATE_TABLE):
                db.schema_created = True
                self._results = []
            elif statement == _normalize(store_sql.INSERT_USER):
                name, email = params
                db.rows.append((db.next_id, name, email))
                db.next_id += 1
                self.rowcount = 1
            elif statement == _normalize(store_sql.SELECT_USER):
                self._results = [row for row in db.rows if row[0] == params[0]]
                self.rowcount = len(self._results)
            elif statement == _normalize(store_sql.SELECT_USERS):
                self._results = list(db.rows)
                self.rowcount = len(self._results)
            elif statement == _normalize(store_sql.DELETE_USER):
                before = len(db.rows)
                db.rows = [row for row in db.rows if row[0] != params[0]]
                self.rowcount = before - len(db.rows)
            else:
                raise psycopg2.ProgrammingError(f"unexpected statement: {statement}")

    def fetchall(self) -> List[tuple]:
        results, self._results = self._results, []
        return results

    def fetchmany(self, size: int) -> List[tuple]:
        results, self._results = self._results[:size], self._results[size:]
        return results


class FakeConnection:
    def __init__(self, db: "FakeDatabase"):
        self.db = db
        self.closed = 0

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def commit(self):
        self.db.commits += 1

    def rollback(self):
        self.db.rollbacks += 1

    def close(self):
        if not self.closed:
            self.closed = 1
            with self.db.lock:
                self.db.open_connections -= 1


class FakeDatabase:
    """
    In-memory stand-in for the users table.

    Attributes:
        rows: (id, name, email) tuples in insertion order.
        available: When False, connect() fails like an unreachable server.
        fail_queries: When True, every statement raises psycopg2.ProgrammingError.
    """

    def __init__(self):
        self.rows: List[Tuple[int, str, str]] = []
        self.next_id = 1
        self.available = True
        self.fail_queries = False
        self.schema_created = False
        self.statements: List[str] = []
        self.connects = 0
        self.open_connections = 0
        self.commits = 0
        self.rollbacks = 0
        self.lock = threading.Lock()

    def connect(self, dsn: str, **kwargs) -> FakeConnection:
        if not self.available:
            raise psycopg2.OperationalError("could not connect to server: Connection refused")
        with self.lock:
            self.connects += 1
            self.open_connections += 1
        return FakeConnection(self)


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /users/1 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "John", "email": "john@example.com"}'
    headers = (
        "POST /users HTTP/1.1\r\n"
        "Host: localhost:8080\r\n"
        "Content-Type: application/json\r\n"
        f"Content-Length: {len(body)}\r\n"
        "\r\n"
    )
    return headers.encode() + body


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def store(fake_db: FakeDatabase) -> UserStore:
    return UserStore(DirectConnector(FAKE_DSN, connect=fake_db.connect))


@pytest.fixture
def handlers(store: UserStore) -> UserHandlers:
    return UserHandlers(store)


@pytest.fixture
def router(handlers: UserHandlers) -> Router:
    return handlers.register(Router())


def make_request(request_line: str, body: str = "") -> HTTPRequest:
    """Build a raw request the way curl would send it."""
    headers = "Host: localhost:8080\r\nUser-Agent: pytest\r\n"
    if body:
        headers += f"Content-Type: application/json\r\nContent-Length: {len(body.encode())}\r\n"
    return HTTPRequest(raw=f"{request_line}\r\n{headers}\r\n{body}")


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestServer:
    """Runs a UserServer in a background thread."""

    __test__ = False  # not a test class

    def __init__(self, server: UserServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def send(self, data: bytes) -> bytes:
        """Send raw bytes, return everything the server wrote before closing."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=5.0) as s:
            s.sendall(data)
            chunks = []
            while True:
                chunk = s.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)


def make_server_config(port: int, **overrides) -> ServiceConfig:
    return ServiceConfig(
        database_url=FAKE_DSN,
        host="127.0.0.1",
        port=port,
        log_level="WARNING",
        **overrides,
    )


@pytest.fixture
def test_server(free_port: int, store: UserStore) -> Generator[TestServer, None, None]:
    """A running server backed by the fake database."""
    srv = TestServer(UserServer(make_server_config(free_port), store=store))
    srv.start()

    yield srv

    srv.stop()


def split_response(raw: bytes) -> Tuple[str, dict, str]:
    """(status line, headers, body) of a raw HTTP response."""
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("utf-8").split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip()] = value.strip()
    return lines[0], headers, body.decode("utf-8")
