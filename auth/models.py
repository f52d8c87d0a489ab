"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; stores, the service and routes do the work. The pydantic models in
api/models.py are the HTTP contract and map from these.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered account.

    username and email are each unique (enforced by the users table).
    hashed_password is an argon2id PHC string -- never plaintext, and never
    serialized to API clients.
    """

    username: str
    email: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class FieldError:
    """A user-correctable failure attributed to one named input field."""

    field: str
    message: str


@dataclass
class UserResponse:
    """Result of register/login/reset-password: either errors or a user."""

    errors: list[FieldError] | None = None
    user: User | None = None

    @classmethod
    def fail(cls, field: str, message: str) -> UserResponse:
        return cls(errors=[FieldError(field, message)])
