"""
=============================================================================
HTTP REQUEST
=============================================================================

Requests are NOT parsed into headers/query/etc. The service works on the
raw request text, the same text the router matches prefixes against:

    POST /users HTTP/1.1\r\n
    Host: localhost:8080\r\n
    Content-Type: application/json\r\n
    \r\n                                 ← first blank line
    {"name":"Alice","email":"a@x.io"}    ← body = everything after it

=============================================================================
PATH PARAMETER EXTRACTION
=============================================================================

The user id is the third "/"-separated token of the raw text, cut at the
first whitespace:

    "GET /users/42 HTTP/1.1\r\n..."
        .split("/")  →  ["GET ", "users", "42 HTTP", "1.1\r\n..."]
                                           ───┬───
                                 index 2 ─────┘
        first whitespace-separated word  →  "42"

A missing token gives "", which then fails id parsing.

=============================================================================
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple


HEADER_BODY_SEPARATOR = "\r\n\r\n"

# Signed 32-bit range, same as the SERIAL column
MIN_USER_ID = -(2 ** 31)
MAX_USER_ID = 2 ** 31 - 1

_ID_PATTERN = re.compile(r"[+-]?[0-9]+")


class InvalidUserID(ValueError):
    """The path segment is not a valid 32-bit integer."""


@dataclass
class HTTPRequest:
    """
    A request as received on the socket, decoded to text.

    Attributes:
        raw: Full request text (possibly truncated to the read buffer).
        client_address: (ip, port) of the peer, when known.
    """

    raw: str
    client_address: Optional[Tuple[str, int]] = None

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        client_address: Optional[Tuple[str, int]] = None,
    ) -> "HTTPRequest":
        """Decode as UTF-8, replacing invalid sequences with U+FFFD."""
        return cls(raw=data.decode("utf-8", errors="replace"), client_address=client_address)

    @property
    def request_line(self) -> str:
        """First line of the request, e.g. 'GET /users HTTP/1.1'."""
        return self.raw.split("\r\n", 1)[0]

    @property
    def method(self) -> str:
        parts = self.request_line.split(" ", 1)
        return parts[0]

    @property
    def path(self) -> str:
        parts = self.request_line.split(" ")
        return parts[1] if len(parts) > 1 else ""

    @property
    def body(self) -> str:
        """Text after the first blank line, or "" if there is none."""
        return self.raw.partition(HEADER_BODY_SEPARATOR)[2]

    @property
    def path_id(self) -> str:
        """Raw id segment, see extract_id()."""
        return extract_id(self.raw)

    @property
    def client_ip(self) -> str:
        return self.client_address[0] if self.client_address else "-"


def extract_id(raw: str) -> str:
    """
    Pull the id segment out of raw request text.

    Returns "" when the request has fewer than three "/"-separated tokens
    or the token is blank.
    """
    segments = raw.split("/")
    if len(segments) < 3:
        return ""
    words = segments[2].split()
    return words[0] if words else ""


def parse_user_id(segment: str) -> int:
    """
    Parse an id segment as a signed 32-bit integer.

    Only an optional sign followed by ASCII digits is accepted; no
    surrounding whitespace, underscores or non-ASCII digits.

    Raises:
        InvalidUserID: If the segment is not a valid id.
    """
    if not _ID_PATTERN.fullmatch(segment):
        raise InvalidUserID(f"not an integer: {segment!r}")

    value = int(segment)
    if not MIN_USER_ID <= value <= MAX_USER_ID:
        raise InvalidUserID(f"out of range: {segment!r}")
    return value
