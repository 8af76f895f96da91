"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data containers). Stores and services do the work;
the only behaviour here is PublicUser.from_user(), the projection that strips
credential material before a user leaves the auth layer.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Closed set of roles. Role checks compare against these members only."""

    user = "user"
    admin = "admin"


@dataclass
class User:
    """A persisted account, including credential material.

    Never returned to a caller directly -- convert with PublicUser.from_user().

    password_reset_token holds the SHA-256 hex digest of the raw reset token,
    never the raw value. It is set together with password_reset_expires and
    cleared together with it.
    """

    name: str
    email: str  # lowercased, unique
    hashed_password: str
    role: Role = Role.user
    id: int | None = None
    password_changed_at: datetime | None = None
    password_reset_token: str | None = None
    password_reset_expires: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class PublicUser:
    """Caller-facing view of a User. Has no field for any credential."""

    id: int
    name: str
    email: str
    role: Role
    password_changed_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> PublicUser:
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            password_changed_at=user.password_changed_at,
            created_at=user.created_at,
        )


@dataclass(frozen=True)
class TokenClaims:
    """Verified content of a session token."""

    subject_id: int
    issued_at: datetime


@dataclass(frozen=True)
class ResetToken:
    """A freshly issued reset token.

    raw is sent to the user inside the reset link and then forgotten;
    token_hash and expires_at are what gets persisted.
    """

    raw: str
    token_hash: str
    expires_at: datetime


@dataclass(frozen=True)
class AuthContext:
    """Identity attached to a request once the access gate has passed."""

    user: PublicUser
    issued_at: datetime
