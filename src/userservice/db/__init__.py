"""
Data access layer: connectors (how to get a connection) and the
UserStore (what SQL to run with it).
"""

from .connector import (
    Connector,
    DirectConnector,
    PooledConnector,
    StoreError,
    DatabaseUnavailable,
    QueryFailed,
    create_connector,
)
from .store import UserStore

__all__ = [
    "Connector",
    "DirectConnector",
    "PooledConnector",
    "StoreError",
    "DatabaseUnavailable",
    "QueryFailed",
    "create_connector",
    "UserStore",
]
