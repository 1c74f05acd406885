"""
=============================================================================
USER HANDLERS
=============================================================================

One handler per route. Each performs exactly one store call and turns
the outcome into a response:

    ┌──────────────────────┬──────────────────────────────────────────────┐
    │ Outcome              │ Response                                     │
    ├──────────────────────┼──────────────────────────────────────────────┤
    │ create ok            │ 200 "User Created"                           │
    │ bad body / no DB     │ 500 "Error"               (create only)      │
    │ bad id               │ 500 "Invalid ID"                             │
    │ no DB / query failed │ 500 "Database error"                         │
    │ no such user         │ 404 "User not found"                         │
    │ get one / get all    │ 200 JSON                                     │
    │ delete ok            │ 200 "User Deleted"                           │
    └──────────────────────┴──────────────────────────────────────────────┘

The store is injected at construction; handlers never read the
environment themselves.

=============================================================================
"""

import logging

from ..db import UserStore, StoreError
from ..http.request import HTTPRequest, InvalidUserID, parse_user_id
from ..http.response import HTTPResponse, ok, not_found, internal_error
from ..http.router import Router
from ..models import User, UserParseError, users_to_json


logger = logging.getLogger(__name__)


USER_CREATED = "User Created"
USER_DELETED = "User Deleted"
USER_NOT_FOUND = "User not found"
INVALID_ID = "Invalid ID"
DATABASE_ERROR = "Database error"
GENERIC_ERROR = "Error"


class UserHandlers:
    """
    Handlers for the /users resource.

    Args:
        store: UserStore used by every handler call.
    """

    def __init__(self, store: UserStore):
        self.store = store

    def register(self, router: Router) -> Router:
        """
        Add the four routes to a router in match order.

        "GET /users/" goes before "GET /users" so that single-user lookups
        are not swallowed by the list route.
        """
        router.add_rule("POST", "/users", self.create, name="create_user")
        router.add_rule("GET", "/users/", self.get_one, name="get_user")
        router.add_rule("GET", "/users", self.get_all, name="list_users")
        router.add_rule("DELETE", "/users/", self.delete, name="delete_user")
        return router

    def create(self, request: HTTPRequest) -> HTTPResponse:
        """POST /users - body is {"name": ..., "email": ...}."""
        try:
            user = User.from_json(request.body)
        except UserParseError as e:
            logger.info(f"Rejected create request: {e}")
            return internal_error(GENERIC_ERROR)

        try:
            self.store.create(user)
        except StoreError as e:
            logger.error(f"Create failed: {e}")
            return internal_error(GENERIC_ERROR)

        return ok(USER_CREATED)

    def get_one(self, request: HTTPRequest) -> HTTPResponse:
        """GET /users/{id}"""
        try:
            user_id = parse_user_id(request.path_id)
        except InvalidUserID as e:
            logger.info(f"Rejected lookup: {e}")
            return internal_error(INVALID_ID)

        try:
            user = self.store.get(user_id)
        except StoreError as e:
            logger.error(f"Lookup of id={user_id} failed: {e}")
            return internal_error(DATABASE_ERROR)

        if user is None:
            return not_found(USER_NOT_FOUND)
        return ok(user.to_json())

    def get_all(self, request: HTTPRequest) -> HTTPResponse:
        """GET /users"""
        try:
            users = self.store.list()
        except StoreError as e:
            logger.error(f"Listing users failed: {e}")
            return internal_error(DATABASE_ERROR)

        return ok(users_to_json(users))

    def delete(self, request: HTTPRequest) -> HTTPResponse:
        """DELETE /users/{id}"""
        try:
            user_id = parse_user_id(request.path_id)
        except InvalidUserID as e:
            logger.info(f"Rejected delete: {e}")
            return internal_error(INVALID_ID)

        try:
            deleted = self.store.delete(user_id)
        except StoreError as e:
            logger.error(f"Delete of id={user_id} failed: {e}")
            return internal_error(DATABASE_ERROR)

        if deleted == 0:
            return not_found(USER_NOT_FOUND)
        return ok(USER_DELETED)


def build_router(store: UserStore) -> Router:
    """Router with the user routes registered, ready to serve."""
    return UserHandlers(store).register(Router())
