"""
=============================================================================
PREFIX ROUTER
=============================================================================

Routing is done on the raw request text, not on a parsed path. Each rule
is a (method, path-prefix) pair; a request matches when its text starts
with "<METHOD> <prefix>".

Rules are checked in registration order and the FIRST match wins:

    ┌─────┬────────────────────────┬──────────────┐
    │  #  │ Request starts with    │ Handler      │
    ├─────┼────────────────────────┼──────────────┤
    │  1  │ "POST /users"          │ create       │
    │  2  │ "GET /users/"          │ get_one      │  ← more specific first!
    │  3  │ "GET /users"           │ get_all      │
    │  4  │ "DELETE /users/"       │ delete       │
    │  -  │ (anything else)        │ 404          │
    └─────┴────────────────────────┴──────────────┘

Order matters: "GET /users/7" also starts with "GET /users", so rule 2
has to be registered before rule 3.

Matching is literal. "POST /users-archive" matches rule 1 and
"PUT /users/1" matches nothing.

=============================================================================
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from .request import HTTPRequest
from .response import HTTPResponse, not_found


logger = logging.getLogger(__name__)


# Handler: takes a request and returns a response
Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass
class Rule:
    """
    One routing rule.

    Attributes:
        method: HTTP method, matched case-sensitively.
        prefix: Path prefix, e.g. "/users/".
        handler: Called with the request when the rule matches.
        name: Optional label used in logs.
    """

    method: str
    prefix: str
    handler: Handler
    name: Optional[str] = None

    @property
    def marker(self) -> str:
        """The literal text a request must start with."""
        return f"{self.method} {self.prefix}"

    def matches(self, raw: str) -> bool:
        return raw.startswith(self.marker)


class Router:
    """
    Ordered, first-match-wins prefix router.

    Usage:
        router = Router()
        router.add_rule("POST", "/users", create_user)
        response = router.handle(request)
    """

    def __init__(self):
        self._rules: List[Rule] = []

    def add_rule(
        self,
        method: str,
        prefix: str,
        handler: Handler,
        name: Optional[str] = None,
    ) -> Rule:
        """Append a rule. It is checked after every rule added before it."""
        rule = Rule(method=method, prefix=prefix, handler=handler, name=name)
        self._rules.append(rule)
        return rule

    def match(self, request: HTTPRequest) -> Optional[Rule]:
        """First rule whose marker the raw request starts with, else None."""
        for rule in self._rules:
            if rule.matches(request.raw):
                return rule
        return None

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Dispatch to the matching handler, or answer 404 "Not Found"."""
        rule = self.match(request)
        if rule is None:
            logger.debug(f"No rule for {request.request_line!r}")
            return not_found("Not Found")
        logger.debug(f"{request.method} {request.path} -> {rule.name or rule.marker}")
        return rule.handler(request)
