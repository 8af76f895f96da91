"""
auth/tokens.py -- Password hashing, reset tokens, and session JWTs.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). Each hash gets a fresh
       salt, so hashing the same password twice gives different outputs.
       bcrypt.checkpw does the comparison in constant time. The cost factor
       comes from Settings.bcrypt_rounds (12 in production).

  Reset tokens: secrets.token_hex(32) gives 256 bits of entropy. Only the
       SHA-256 digest is persisted. A plain (unkeyed, fast) hash is enough here
       because the input is already high-entropy -- bcrypt's slowness buys
       nothing, and a deterministic digest allows lookup by hash.

  Session JWTs: python-jose with HS256, wrapped in SessionTokenCodec. The
       signing secret is injected at construction (never read from module
       globals) and never mutated. Tokens carry only the subject id and
       issue/expiry times. There is no revocation list: a leaked token stays
       valid until it expires, so the expiry window is the only bound.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.errors import InvalidToken
from auth.models import ResetToken, TokenClaims

logger = logging.getLogger("gatehouse.auth")

_ALGORITHM = "HS256"

DEFAULT_BCRYPT_ROUNDS = 12
RESET_TOKEN_TTL_SECONDS = 600

COOKIE_NAME = "jwt"
LOGGED_OUT_SENTINEL = "loggedout"
_LOGGED_OUT_MAX_AGE = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt rejects inputs longer than 72 bytes; auth.validation enforces
    that limit before we get here. Any error raised by bcrypt propagates --
    a failed hash must abort the calling operation.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash or over-long input: treat as a mismatch.
        return False


# ---------------------------------------------------------------------------
# Password reset tokens
# ---------------------------------------------------------------------------


def hash_reset_token(raw: str) -> str:
    """Return the SHA-256 hex digest stored in place of a raw reset token."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def issue_reset_token(now: datetime | None = None, ttl_seconds: int = RESET_TOKEN_TTL_SECONDS) -> ResetToken:
    """Generate a one-time reset token valid for ttl_seconds (10 minutes by default)."""
    now = now or _utcnow()
    raw = secrets.token_hex(32)
    return ResetToken(
        raw=raw,
        token_hash=hash_reset_token(raw),
        expires_at=now + timedelta(seconds=ttl_seconds),
    )


def consume_reset_token(
    raw: str,
    stored_hash: str | None,
    stored_expiry: datetime | None,
    now: datetime | None = None,
) -> bool:
    """Return True if raw matches stored_hash and now is before stored_expiry.

    Does not clear the stored fields. The caller clears them in the same
    write that sets the new password, or when abandoning the reset.
    """
    if not raw or stored_hash is None or stored_expiry is None:
        return False
    now = now or _utcnow()
    if not hmac.compare_digest(hash_reset_token(raw), stored_hash):
        return False
    return now < stored_expiry


# ---------------------------------------------------------------------------
# Session tokens (JWT)
# ---------------------------------------------------------------------------


class SessionTokenCodec:
    """Issue and verify signed, time-limited bearer tokens.

    Usage:
        codec = SessionTokenCodec(settings.secret_key, settings.token_expire_seconds)
        token = codec.issue(user.id)
        claims = codec.verify(token)   # raises InvalidToken
    """

    def __init__(self, secret_key: str, expire_seconds: int) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        if expire_seconds <= 0:
            raise ValueError("expire_seconds must be positive")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def issue(self, subject_id: int, now: datetime | None = None) -> str:
        """Encode a signed JWT for subject_id, valid for expire_seconds from now."""
        now = now or _utcnow()
        issued_at = int(now.timestamp())
        payload = {
            "sub": str(subject_id),
            "iat": issued_at,
            "exp": issued_at + self.expire_seconds,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str, now: datetime | None = None) -> TokenClaims:
        """Decode and check a JWT. Raises InvalidToken on any failure.

        Expiry is checked here against `now` rather than by python-jose
        against the wall clock, so callers (and tests) control the clock.
        """
        now = now or _utcnow()
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
            subject_id = int(payload["sub"])
            issued_at = int(payload["iat"])
            expires_at = int(payload["exp"])
        except (JWTError, KeyError, TypeError, ValueError) as exc:
            raise InvalidToken() from exc

        if now.timestamp() >= expires_at:
            raise InvalidToken("Your token has expired! Please log in again.")

        return TokenClaims(
            subject_id=subject_id,
            issued_at=datetime.fromtimestamp(issued_at, tz=timezone.utc),
        )


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int, secure: bool = False) -> None:
    """Mirror the session token into an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="strict": never sent on cross-site requests (CSRF mitigation).
    max_age: matches the JWT expiry so both expire together.
    """
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="strict",
        secure=secure,
        max_age=expire_seconds,
    )


def set_logged_out_cookie(response, secure: bool = False) -> None:
    """Replace the session cookie with a short-lived sentinel value."""
    response.set_cookie(
        COOKIE_NAME,
        value=LOGGED_OUT_SENTINEL,
        httponly=True,
        samesite="strict",
        secure=secure,
        max_age=_LOGGED_OUT_MAX_AGE,
    )
