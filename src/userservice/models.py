"""
=============================================================================
DATA MODEL
=============================================================================

The service manages exactly one entity: a User.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                              users                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │  id     SERIAL PRIMARY KEY    ← assigned by PostgreSQL              │
    │  name   VARCHAR NOT NULL                                             │
    │  email  VARCHAR NOT NULL      ← no uniqueness, duplicates allowed   │
    └─────────────────────────────────────────────────────────────────────┘

JSON shape (keys always in this order):

    {"id":1,"name":"Alice","email":"alice@example.com"}

On input (POST /users) the "id" key is ignored - the store assigns it.

=============================================================================
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence


class UserParseError(ValueError):
    """Raised when a request body cannot be turned into a User."""


@dataclass
class User:
    """
    A row of the users table.

    Attributes:
        id: Store-assigned identifier. None until the row is inserted.
        name: Display name.
        email: Contact address (not validated, not unique).
    """

    name: str
    email: str
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Dictionary with keys in wire order: id, name, email."""
        return {"id": self.id, "name": self.name, "email": self.email}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Any) -> "User":
        """
        Build a User from decoded JSON.

        Only the shape is checked: an object with string "name" and
        string "email". An integer "id" is kept when present.

        Raises:
            UserParseError: If the shape is wrong.
        """
        if not isinstance(data, dict):
            raise UserParseError("expected a JSON object")

        name = data.get("name")
        email = data.get("email")
        if not isinstance(name, str):
            raise UserParseError("field 'name' must be a string")
        if not isinstance(email, str):
            raise UserParseError("field 'email' must be a string")

        user_id = data.get("id")
        if user_id is not None and (isinstance(user_id, bool) or not isinstance(user_id, int)):
            raise UserParseError("field 'id' must be an integer")

        return cls(name=name, email=email, id=user_id)

    @classmethod
    def from_json(cls, text: str) -> "User":
        """
        Parse a User from JSON text. An "id" is kept when present;
        UserStore.create never writes it.

        Raises:
            UserParseError: If the text is not JSON or has the wrong shape.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise UserParseError(f"invalid JSON: {e}") from e

        return cls.from_dict(data)

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "User":
        """Map a (id, name, email) result row."""
        return cls(id=row[0], name=row[1], email=row[2])


def users_to_json(users: Sequence[User]) -> str:
    """Serialize a sequence of users as a JSON array."""
    return json.dumps([user.to_dict() for user in users], separators=(",", ":"))
