"""
End-to-end tests: real sockets against a running UserServer.
"""

import json
import logging
import socket
import threading

import pytest

from conftest import (
    FakeDatabase,
    TestServer,
    make_server_config,
    split_response,
)
from userservice import UserServer
from userservice.db import UserStore


def request(method_path: str, body: str = "") -> bytes:
    headers = "Host: localhost\r\n"
    if body:
        headers += f"Content-Type: application/json\r\nContent-Length: {len(body.encode())}\r\n"
    return f"{method_path} HTTP/1.1\r\n{headers}\r\n{body}".encode()


def create_user(server: TestServer, name: str, email: str) -> bytes:
    return server.send(request("POST /users", json.dumps({"name": name, "email": email})))


class TestUserLifecycle:
    """Create, list, fetch and delete over the wire."""

    def test_full_lifecycle(self, test_server: TestServer):
        status, _, body = split_response(create_user(test_server, "Ada", "ada@example.com"))
        assert status == "HTTP/1.1 200 OK"
        assert body == "User Created"

        status, _, body = split_response(test_server.send(request("GET /users")))
        assert status == "HTTP/1.1 200 OK"
        users = json.loads(body)
        assert users == [{"id": 1, "name": "Ada", "email": "ada@example.com"}]

        status, _, body = split_response(test_server.send(request("GET /users/1")))
        assert status == "HTTP/1.1 200 OK"
        assert json.loads(body) == users[0]

        status, _, body = split_response(test_server.send(request("DELETE /users/1")))
        assert status == "HTTP/1.1 200 OK"
        assert body == "User Deleted"

        status, _, body = split_response(test_server.send(request("GET /users/1")))
        assert status == "HTTP/1.1 404 Not Found"
        assert body == "User not found"

    def test_empty_list(self, test_server: TestServer):
        status, _, body = split_response(test_server.send(request("GET /users")))
        assert status == "HTTP/1.1 200 OK"
        assert body == "[]"

    def test_invalid_id(self, test_server: TestServer):
        status, _, body = split_response(test_server.send(request("GET /users/abc")))
        assert status == "HTTP/1.1 500 Internal Server Error"
        assert body == "Invalid ID"

    def test_unknown_route(self, test_server: TestServer):
        status, _, body = split_response(test_server.send(request("PUT /users/1", '{"name":"x"}')))
        assert status == "HTTP/1.1 404 Not Found"
        assert body == "Not Found"

    def test_malformed_body(self, test_server: TestServer, fake_db: FakeDatabase):
        status, _, body = split_response(test_server.send(request("POST /users", "{oops")))
        assert status == "HTTP/1.1 500 Internal Server Error"
        assert body == "Error"
        assert fake_db.rows == []

    def test_database_down(self, test_server: TestServer, fake_db: FakeDatabase):
        fake_db.available = False
        status, _, body = split_response(test_server.send(request("GET /users")))
        assert status == "HTTP/1.1 500 Internal Server Error"
        assert body == "Database error"


class TestResponseFormat:
    def test_headers(self, test_server: TestServer):
        _, headers, body = split_response(test_server.send(request("GET /users")))

        assert headers["Content-Type"] == "application/json"
        assert headers["Content-Length"] == str(len(body.encode()))
        assert headers["Connection"] == "close"
        assert headers["Server"] == "UserService/1.0"
        assert headers["Date"].endswith("GMT")

    def test_one_exchange_per_connection(self, test_server: TestServer):
        """Test that the server closes after a single response."""
        raw = test_server.send(request("GET /users") + request("GET /users"))
        assert raw.count(b"HTTP/1.1 ") == 1


class TestReading:
    def test_oversized_request_is_truncated(self, test_server: TestServer, fake_db: FakeDatabase):
        """Test that bytes past the first 1024 are never seen by the handler."""
        body = json.dumps({"name": "a" * 2000, "email": "a@x"})
        status, _, text = split_response(test_server.send(request("POST /users", body)))

        assert status == "HTTP/1.1 500 Internal Server Error"
        assert text == "Error"
        assert fake_db.rows == []

    def test_full_read_mode_accepts_large_body(self, free_port: int, store: UserStore,
                                               fake_db: FakeDatabase):
        config = make_server_config(free_port, read_full_request=True)
        server = TestServer(UserServer(config, store=store))
        server.start()
        try:
            body = json.dumps({"name": "a" * 2000, "email": "a@x"})
            status, _, text = split_response(server.send(request("POST /users", body)))
        finally:
            server.stop()

        assert status == "HTTP/1.1 200 OK"
        assert text == "User Created"
        assert fake_db.rows == [(1, "a" * 2000, "a@x")]

    def test_read_timeout_drops_connection_without_response(self, free_port: int, store: UserStore,
                                                            caplog):
        """Test that a read error is logged and answered with nothing but a close."""
        caplog.set_level(logging.ERROR, logger="userservice")
        server = TestServer(UserServer(make_server_config(free_port, timeout=0.3), store=store))
        server.start()
        try:
            with socket.create_connection(("127.0.0.1", server.port), timeout=5.0) as s:
                assert s.recv(1024) == b""
        finally:
            server.stop()

        assert "Error reading request" in caplog.text

    def test_client_closes_without_sending(self, test_server: TestServer):
        with socket.create_connection(("127.0.0.1", test_server.port), timeout=5.0):
            pass

        status, _, _ = split_response(test_server.send(request("GET /users")))
        assert status == "HTTP/1.1 200 OK"


class TestConcurrency:
    def test_parallel_creates(self, test_server: TestServer, fake_db: FakeDatabase):
        results = []

        def worker(n: int):
            results.append(create_user(test_server, f"user{n}", f"u{n}@x"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10.0)

        assert len(results) == 10
        assert all(r.startswith(b"HTTP/1.1 200 OK") for r in results)
        assert sorted(row[0] for row in fake_db.rows) == list(range(1, 11))
        assert fake_db.open_connections == 0

    def test_slow_client_does_not_block_others(self, test_server: TestServer):
        with socket.create_connection(("127.0.0.1", test_server.port), timeout=5.0):
            status, _, _ = split_response(test_server.send(request("GET /users")))
            assert status == "HTTP/1.1 200 OK"


@pytest.mark.parametrize("raw", [b"\r\n\r\n", b"\xff\xfe garbage"])
def test_garbage_gets_not_found(test_server: TestServer, raw: bytes):
    status, _, body = split_response(test_server.send(raw))
    assert status == "HTTP/1.1 404 Not Found"
    assert body == "Not Found"
