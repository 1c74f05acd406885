"""
Low-level networking: the listening socket and per-client connections.
"""

from .listener import Listener
from .connection import Connection, ConnectionState, RequestTooLarge

__all__ = [
    "Listener",
    "Connection",
    "ConnectionState",
    "RequestTooLarge",
]
