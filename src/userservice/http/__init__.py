"""
HTTP protocol pieces: raw request wrapper, response serialization,
status codes and the prefix router.
"""

from .status_codes import HTTPStatus
from .request import HTTPRequest, InvalidUserID, extract_id, parse_user_id
from .response import (
    HTTPResponse,
    format_http_date,
    respond,
    ok,
    not_found,
    internal_error,
)
from .router import Router, Rule, Handler

__all__ = [
    "HTTPStatus",
    "HTTPRequest",
    "InvalidUserID",
    "extract_id",
    "parse_user_id",
    "HTTPResponse",
    "format_http_date",
    "respond",
    "ok",
    "not_found",
    "internal_error",
    "Router",
    "Rule",
    "Handler",
]
