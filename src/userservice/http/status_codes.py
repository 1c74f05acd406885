"""
=============================================================================
HTTP STATUS CODES
=============================================================================

Only the codes this service actually sends are defined here.

    ┌──────────┬──────────────────────────┬───────────────────────────────┐
    │ Code     │ Phrase                   │ Sent when                     │
    ├──────────┼──────────────────────────┼───────────────────────────────┤
    │ 200      │ OK                       │ Handler succeeded             │
    │ 404      │ Not Found                │ No route / no such user       │
    │ 500      │ Internal Server Error    │ Bad id, parse or DB failure   │
    └──────────┴──────────────────────────┴───────────────────────────────┘

Note that an unparseable user id is answered with 500, not 400. Clients
of this API already depend on that.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    OK = 200
    NOT_FOUND = 404
    INTERNAL_SERVER_ERROR = 500

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line."""
        return _PHRASES[self]


_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
}
