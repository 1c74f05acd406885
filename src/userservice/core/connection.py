"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket for exactly one request/response
exchange. There is no keep-alive: read, respond, close.

=============================================================================
TWO READ MODES
=============================================================================

TCP is a byte stream, so a single recv() may return only part of what
the client sent.

    SINGLE READ (default)
    ─────────────────────
        recv(buffer_size) once. Whatever arrived is the request.

        Client sends 3000 bytes, buffer_size = 1024:

            ┌──────────────┬────────────────────────────────┐
            │ 1024 bytes   │ 1976 bytes                     │
            └──────────────┴────────────────────────────────┘
              ▲ request       ▲ never read, silently dropped

    FULL READ (read_full_request=True)
    ──────────────────────────────────
        1. recv() until \r\n\r\n (end of headers)
        2. parse Content-Length
        3. recv() until that many body bytes have arrived
        Bounded by max_request_size.

=============================================================================
CONNECTION STATES
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──► CLOSED
              │                                      ▲
              └──────────── (read error) ────────────┘

=============================================================================
"""

import socket
import time
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    CLOSED = "closed"


class RequestTooLarge(ValueError):
    """Full-read mode exceeded max_request_size."""


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The accepted client socket.
        address: Client's (ip, port).
        id: Short identifier for log lines.
        state: Current ConnectionState.
        created_at: Accept timestamp.
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    # Configuration (passed from ServiceConfig)
    buffer_size: int = 1024
    read_full_request: bool = False
    max_request_size: int = 1024 * 1024
    timeout: Optional[float] = None

    DRAIN_TIMEOUT = 0.5
    MAX_DRAIN_BYTES = 64 * 1024

    def __post_init__(self):
        self.socket.setblocking(True)
        # settimeout(None) keeps the socket fully blocking
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read the request bytes.

        Returns:
            The request bytes, or None if the client closed the connection
            without sending anything.

        Raises:
            OSError: On socket errors (socket.timeout included).
            RequestTooLarge: Full-read mode only.
        """
        self.state = ConnectionState.READING

        if self.read_full_request:
            data = self._read_full()
        else:
            data = self.socket.recv(self.buffer_size)

        return data or None

    def _read_full(self) -> bytes:
        buffer = b""

        # STEP 1: headers
        while b"\r\n\r\n" not in buffer:
            chunk = self.socket.recv(self.buffer_size)
            if not chunk:
                return buffer  # Client closed early; use what we have
            buffer += chunk
            self._check_size(buffer)

        # STEP 2: body
        header_end = buffer.find(b"\r\n\r\n")
        body_start = header_end + 4
        content_length = parse_content_length(buffer[:header_end])

        while len(buffer) - body_start < content_length:
            chunk = self.socket.recv(self.buffer_size)
            if not chunk:
                break  # Connection closed mid-body
            buffer += chunk
            self._check_size(buffer)

        return buffer[:body_start + content_length]

    def _check_size(self, buffer: bytes) -> None:
        if len(buffer) > self.max_request_size:
            raise RequestTooLarge(f"Request too large: {len(buffer)} bytes")

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send the full response with sendall().

        Returns:
            True if sent, False if the client went away.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Failed to send response: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection. Safe to call twice.

            1. shutdown(SHUT_WR)  sends FIN, the client sees end of response
            2. drain              discard anything we never read (e.g. the
                                  part of a request past buffer_size), so
                                  close() does not answer with a RST.
                                  At most DRAIN_TIMEOUT seconds and
                                  MAX_DRAIN_BYTES bytes in total.
            3. close()            release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        self._drain()

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age * 1000:.1f}ms")

    def _drain(self) -> None:
        deadline = time.monotonic() + self.DRAIN_TIMEOUT
        drained = 0
        try:
            while drained < self.MAX_DRAIN_BYTES:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                chunk = self.socket.recv(self.buffer_size)
                if not chunk:
                    break
                drained += len(chunk)
        except OSError:
            pass  # Timed out or reset; closing anyway

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def parse_content_length(headers: bytes) -> int:
    """
    Content-Length from raw header bytes, 0 if absent or malformed.
    """
    header_str = headers.decode("utf-8", errors="replace").lower()
    for line in header_str.split("\r\n"):
        if line.startswith("content-length:"):
            try:
                return max(int(line.split(":", 1)[1].strip()), 0)
            except ValueError:
                return 0
    return 0
