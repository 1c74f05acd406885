"""
User persistence on top of a Connector.

Every method borrows one connection, runs one parameterized statement
and releases the connection before returning.
"""

import logging
from typing import List, Optional

from ..models import User
from .connector import Connector


logger = logging.getLogger(__name__)


CREATE_TABLE = """
    CREATE TABLE IF NOT EXISTS users (
        id SERIAL PRIMARY KEY,
        name VARCHAR NOT NULL,
        email VARCHAR NOT NULL
    )
"""

INSERT_USER = "INSERT INTO users (name, email) VALUES (%s, %s)"
SELECT_USER = "SELECT id, name, email FROM users WHERE id = %s"
SELECT_USERS = "SELECT id, name, email FROM users"
DELETE_USER = "DELETE FROM users WHERE id = %s"


class UserStore:
    """
    CRUD operations on the users table.

    Errors from the connector (DatabaseUnavailable, QueryFailed) are
    propagated unchanged; mapping them to HTTP responses is the
    handlers' job.
    """

    def __init__(self, connector: Connector):
        self.connector = connector

    def create_schema(self) -> None:
        """Create the users table if it does not exist yet (idempotent)."""
        with self.connector.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(CREATE_TABLE)
        logger.info("Schema ready: users")

    def create(self, user: User) -> None:
        """Insert a new row. The assigned id is not returned."""
        with self.connector.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(INSERT_USER, (user.name, user.email))
        logger.debug(f"Inserted user name={user.name!r}")

    def get(self, user_id: int) -> Optional[User]:
        """
        Fetch exactly one user.

        Returns None when the query yields zero rows, and also when it
        yields more than one.
        """
        with self.connector.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(SELECT_USER, (user_id,))
                rows = cur.fetchmany(2)

        if len(rows) != 1:
            return None
        return User.from_row(rows[0])

    def list(self) -> List[User]:
        """All users, in whatever order the store returns them."""
        with self.connector.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(SELECT_USERS)
                rows = cur.fetchall()

        return [User.from_row(row) for row in rows]

    def delete(self, user_id: int) -> int:
        """Hard-delete by id. Returns the number of rows removed."""
        with self.connector.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(DELETE_USER, (user_id,))
                deleted = cur.rowcount

        logger.debug(f"Deleted {deleted} row(s) for id={user_id}")
        return deleted
