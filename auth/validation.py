"""
auth/validation.py -- Field checks applied before anything is hashed or stored.

Raises auth.errors.ValidationError with a message suitable for the client.
The store enforces email uniqueness itself (UNIQUE constraint); everything
that can be checked without the database lives here.
"""

from __future__ import annotations

import re

from auth.errors import ValidationError

MIN_PASSWORD_LENGTH = 6
# bcrypt silently ignores (4.x) or rejects (5.x) anything past 72 bytes.
MAX_PASSWORD_BYTES = 72

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_name(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Please tell us your name!")
    return name


def validate_email(email: str | None) -> str:
    """Return the normalized email or raise ValidationError."""
    normalized = normalize_email(email)
    if not normalized:
        raise ValidationError("Please provide your email.")
    if not _EMAIL_RE.match(normalized):
        raise ValidationError("Please provide a valid email.")
    return normalized


def validate_password_pair(password: str | None, password_confirm: str | None) -> str:
    """Check a new password and its confirmation; return the password."""
    if not password:
        raise ValidationError("Please provide a password.")
    if not password_confirm:
        raise ValidationError("Please confirm your password.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
    if password != password_confirm:
        raise ValidationError("Passwords are not the same!")
    return password
