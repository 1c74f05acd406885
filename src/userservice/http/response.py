"""
=============================================================================
HTTP RESPONSE
=============================================================================

Responses are built by hand and serialized straight to bytes:

    HTTP/1.1 200 OK\r\n                    ← status line
    Content-Type: application/json\r\n
    Content-Length: 12\r\n                 ← auto-calculated
    Date: Sun, 18 Oct 2026 10:00:00 GMT\r\n ← auto-added
    Server: UserService/1.0\r\n            ← auto-added
    Connection: close\r\n                  ← no keep-alive, ever
    \r\n
    User Created                           ← body

Every response is labelled application/json, including the plain-text
messages ("User Created", "Not Found", ...).

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Union

from .status_codes import HTTPStatus


JSON_CONTENT_TYPE = "application/json"


@dataclass
class HTTPResponse:
    """
    Status, headers and body of a response.

    Handlers return one of these; the server calls to_bytes() and writes
    the result to the socket.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. 'HTTP/1.1 404 Not Found'."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def text(self) -> str:
        """Body decoded as UTF-8 (handy in logs and tests)."""
        return self.body.decode("utf-8", errors="replace")

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        """Set the body, encoding strings as UTF-8."""
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def to_bytes(self, server_name: str = "UserService/1.0") -> bytes:
        """
        Serialize for socket.sendall().

        Content-Length, Date and Server are added unless already set.
        """
        response_headers = dict(self.headers)
        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes + self.body


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP date (RFC 7231 IMF-fixdate).

    Day and month names are always English.
    """
    weekdays = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    dt = dt.astimezone(timezone.utc)
    return (
        f"{weekdays[dt.weekday()]}, {dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def respond(status: HTTPStatus, body: Union[str, bytes] = "") -> HTTPResponse:
    """Build a response with the service's standard headers."""
    response = HTTPResponse(status=status, headers={"Content-Type": JSON_CONTENT_TYPE})
    response.set_body(body)
    response.set_header("Connection", "close")
    return response


def ok(body: Union[str, bytes] = "") -> HTTPResponse:
    """200 OK."""
    return respond(HTTPStatus.OK, body)


def not_found(message: str = "Not Found") -> HTTPResponse:
    """404 Not Found."""
    return respond(HTTPStatus.NOT_FOUND, message)


def internal_error(message: str = "Error") -> HTTPResponse:
    """500 Internal Server Error."""
    return respond(HTTPStatus.INTERNAL_SERVER_ERROR, message)
