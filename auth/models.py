"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these dataclasses own the domain shape.

Role is a closed two-variant enum. Code compares against Role members, never
against raw strings, and every authorization rule lives in auth/policy.py.

Layer rule: no imports from api/ or deals/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


@dataclass
class User:
    """An identity that can log in.

    username and email are both unique. hashed_password is the bcrypt hash;
    the plaintext is never stored or returned.

    id is None before the record is written to the database.
    """

    username: str
    email: str
    hashed_password: str
    role: Role = Role.USER
    id: int | None = None
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class RefreshTokenRecord:
    """One row of the refresh-token ledger.

    token is the opaque value handed to the client. revoked only ever flips
    from False to True; a revoked record is never reactivated.
    """

    token: str
    owner_id: int
    expires_at: str  # ISO 8601, UTC
    revoked: bool = False
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Caller:
    """The authenticated identity behind the current request.

    Built once per request by auth.dependencies and passed explicitly into
    services and policy checks. Never stored in module-level state.
    """

    user_id: int
    username: str
    role: Role


@dataclass(frozen=True)
class SessionTokens:
    """The (access, refresh) pair returned by login and refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
