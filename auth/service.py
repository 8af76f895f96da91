"""
auth/service.py -- Sign-up, login, token verification and password change.

AuthService is the single entry point the HTTP layer uses for everything
except the password-reset handshake (see auth/reset.py). Every method that
returns a user returns a PublicUser -- the hash never leaves this module.

All methods are synchronous and CPU-bound while bcrypt runs. Route handlers
that call them are plain `def` functions, so FastAPI executes them in its
worker thread pool instead of on the event loop.

Every method that depends on the clock takes an optional `now` so tests can
pin time. Production callers leave it as None.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from auth.errors import InvalidCredentials, StalePassword, Unauthenticated, UserGone
from auth.models import AuthContext, PublicUser, Role, User
from auth.store import UserStore
from auth.tokens import DEFAULT_BCRYPT_ROUNDS, SessionTokenCodec, hash_password, verify_password
from auth.validation import normalize_email, validate_email, validate_name, validate_password_pair
from core.notifier import NotificationError, Notifier

logger = logging.getLogger("gatehouse.auth")

# password_changed_at is written one second in the past. A token issued in
# the same second as the password write must not count as stale.
PASSWORD_CHANGE_BACKOFF = timedelta(seconds=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def prepare_new_password(
    password: str | None,
    password_confirm: str | None,
    now: datetime,
    rounds: int = DEFAULT_BCRYPT_ROUNDS,
) -> tuple[str, datetime]:
    """Validate a new password and return (hash, password_changed_at)."""
    validate_password_pair(password, password_confirm)
    return hash_password(password, rounds), now - PASSWORD_CHANGE_BACKOFF


class AuthService:
    """Credential checks and session issuance on top of a UserStore."""

    def __init__(
        self,
        store: UserStore,
        codec: SessionTokenCodec,
        notifier: Notifier,
        bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
    ) -> None:
        self.store = store
        self.codec = codec
        self.notifier = notifier
        self.bcrypt_rounds = bcrypt_rounds
        # Unknown emails are checked against this hash so a login for a
        # missing account costs the same bcrypt work as a wrong password.
        self._dummy_hash = hash_password("gatehouse_timing_dummy", bcrypt_rounds)

    # ------------------------------------------------------------------
    # Sign-up / login
    # ------------------------------------------------------------------

    def sign_up(
        self,
        name: str | None,
        email: str | None,
        password: str | None,
        password_confirm: str | None,
        now: datetime | None = None,
    ) -> tuple[PublicUser, str]:
        """Create a `user`-role account and return it with a session token.

        Raises ValidationError before anything is written if a field is bad,
        or from the store if the email is already registered.
        """
        now = now or _utcnow()
        name = validate_name(name)
        email = validate_email(email)
        validate_password_pair(password, password_confirm)

        user = User(
            name=name,
            email=email,
            hashed_password=hash_password(password, self.bcrypt_rounds),
            role=Role.user,
        )
        user_id = self.store.create_user(user)
        created = self.store.get_by_id(user_id)
        logger.info("User %d signed up", user_id)
        return PublicUser.from_user(created), self.codec.issue(user_id, now)

    def send_welcome(self, user: PublicUser, profile_url: str) -> None:
        """Send the welcome email. Failure is logged and never raised."""
        try:
            self.notifier.send_welcome(user, profile_url)
        except NotificationError as exc:
            logger.warning("Welcome email for user %d failed: %s", user.id, exc)

    def login(self, email: str | None, password: str | None, now: datetime | None = None) -> tuple[PublicUser, str]:
        """Check credentials and issue a session token.

        Missing fields, unknown email and wrong password all raise the same
        InvalidCredentials so the response does not reveal which check failed.
        """
        now = now or _utcnow()
        if not email or not password:
            raise InvalidCredentials()

        user = self.store.get_by_email(normalize_email(email))
        if user is None:
            verify_password(password, self._dummy_hash)
            raise InvalidCredentials()
        if not verify_password(password, user.hashed_password):
            raise InvalidCredentials()

        return PublicUser.from_user(user), self.codec.issue(user.id, now)

    # ------------------------------------------------------------------
    # Token verification (access gate)
    # ------------------------------------------------------------------

    def verify_and_load(self, bearer_token: str | None, now: datetime | None = None) -> AuthContext:
        """Resolve a bearer token to the caller's identity.

        Raises Unauthenticated (no token), InvalidToken (bad signature,
        malformed, expired), UserGone (subject deleted) or StalePassword
        (password changed after the token was issued).
        """
        if not bearer_token:
            raise Unauthenticated()

        claims = self.codec.verify(bearer_token, now)
        user = self.store.get_by_id(claims.subject_id)
        if user is None:
            raise UserGone()
        if user.password_changed_at is not None and claims.issued_at < user.password_changed_at:
            raise StalePassword()

        return AuthContext(user=PublicUser.from_user(user), issued_at=claims.issued_at)

    # ------------------------------------------------------------------
    # Password change
    # ------------------------------------------------------------------

    def update_password(
        self,
        context: AuthContext,
        current_password: str | None,
        new_password: str | None,
        new_password_confirm: str | None,
        now: datetime | None = None,
    ) -> tuple[PublicUser, str]:
        """Change the caller's password and return a fresh session token.

        Tokens issued before this call stop verifying (StalePassword).
        """
        now = now or _utcnow()
        user = self.store.get_by_id(context.user.id)
        if user is None:
            raise UserGone()
        if not current_password or not verify_password(current_password, user.hashed_password):
            raise InvalidCredentials("Your current password is incorrect.")

        hashed, changed_at = prepare_new_password(new_password, new_password_confirm, now, self.bcrypt_rounds)
        self.store.update_password(user.id, hashed, changed_at)
        logger.info("User %d changed password", user.id)

        updated = self.store.get_by_id(user.id)
        return PublicUser.from_user(updated), self.codec.issue(user.id, now)
