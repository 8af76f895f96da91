"""
auth/reset.py -- Forgot-password / reset-password handshake.

Per-user states: "no active reset" (both reset fields null) and "reset
pending" (hash + expiry set). forgot_password() moves to pending, and
reset_password() moves back by clearing both fields in the same write that
stores the new password. A failed email send also moves back, so a user is
never left with a pending reset whose raw token nobody received.

Raw tokens are never stored or logged. They exist only in the email and in
the URL the user follows.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from auth.errors import DeliveryError, InvalidOrExpiredToken, NotFound
from auth.models import PublicUser
from auth.service import prepare_new_password
from auth.store import UserStore
from auth.tokens import (
    DEFAULT_BCRYPT_ROUNDS,
    RESET_TOKEN_TTL_SECONDS,
    SessionTokenCodec,
    consume_reset_token,
    hash_reset_token,
    issue_reset_token,
)
from auth.validation import normalize_email
from core.notifier import NotificationError, Notifier

logger = logging.getLogger("gatehouse.auth")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def reset_email_message(reset_url: str, app_name: str = "Gatehouse") -> str:
    return (
        "Forgot your password? Submit a PATCH request with your new password and "
        f"password_confirm to:\n\n{reset_url}\n\n"
        "This link is valid for 10 minutes.\n"
        "If you didn't request a password reset, please ignore this email.\n\n"
        f"The {app_name} Team\n"
    )


class PasswordResetWorkflow:
    """Issue and redeem one-time password reset tokens."""

    def __init__(
        self,
        store: UserStore,
        codec: SessionTokenCodec,
        notifier: Notifier,
        bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
        reset_token_ttl_seconds: int = RESET_TOKEN_TTL_SECONDS,
        app_name: str = "Gatehouse",
    ) -> None:
        self.store = store
        self.codec = codec
        self.notifier = notifier
        self.bcrypt_rounds = bcrypt_rounds
        self.reset_token_ttl_seconds = reset_token_ttl_seconds
        self.app_name = app_name

    def forgot_password(
        self,
        email: str | None,
        build_reset_url: Callable[[str], str],
        now: datetime | None = None,
    ) -> None:
        """Store a new reset token for the account and email the raw token.

        build_reset_url receives the raw token and returns the link to embed
        in the email. Raises NotFound for an unknown email (nothing written)
        and DeliveryError if the email could not be sent (token cleared first).
        """
        now = now or _utcnow()
        user = self.store.get_by_email(normalize_email(email))
        if user is None:
            raise NotFound()

        token = issue_reset_token(now, self.reset_token_ttl_seconds)
        # Written straight to the row, skipping field validation: nothing
        # about the rest of the record should be able to block this save.
        self.store.set_reset_token(user.id, token.token_hash, token.expires_at)

        reset_url = build_reset_url(token.raw)
        try:
            self.notifier.send_password_reset(
                PublicUser.from_user(user), reset_url, reset_email_message(reset_url, self.app_name)
            )
        except NotificationError as exc:
            logger.error("Password reset email for user %d failed, clearing token: %s", user.id, exc)
            self.store.clear_reset_token(user.id, token.token_hash)
            raise DeliveryError() from exc

        logger.info("Password reset token issued for user %d", user.id)

    def reset_password(
        self,
        raw_token: str | None,
        new_password: str | None,
        new_password_confirm: str | None,
        now: datetime | None = None,
    ) -> tuple[PublicUser, str]:
        """Redeem a reset token, set the new password, return a session token.

        Raises InvalidOrExpiredToken if the token is unknown, already used,
        superseded or past its expiry. A ValidationError on the new password
        leaves the token in place so the user can retry before it expires.
        """
        now = now or _utcnow()
        if not raw_token:
            raise InvalidOrExpiredToken()

        token_hash = hash_reset_token(raw_token)
        user = self.store.get_by_reset_token(token_hash)
        if user is None or not consume_reset_token(
            raw_token, user.password_reset_token, user.password_reset_expires, now
        ):
            raise InvalidOrExpiredToken()

        hashed, changed_at = prepare_new_password(new_password, new_password_confirm, now, self.bcrypt_rounds)
        if not self.store.complete_password_reset(user.id, token_hash, now, hashed, changed_at):
            # Another request redeemed or replaced the token between our read and write.
            raise InvalidOrExpiredToken()

        logger.info("Password reset completed for user %d", user.id)
        updated = self.store.get_by_id(user.id)
        return PublicUser.from_user(updated), self.codec.issue(user.id, now)
