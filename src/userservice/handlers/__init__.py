"""
Request handlers.

A handler is a callable taking an HTTPRequest and returning an
HTTPResponse. The only resource served is /users:

    POST   /users        create
    GET    /users/{id}   get_one
    GET    /users        get_all
    DELETE /users/{id}   delete
"""

from .users import UserHandlers, build_router

__all__ = [
    "UserHandlers",
    "build_router",
]
