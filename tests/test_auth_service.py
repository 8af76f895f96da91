"""Unit tests for auth/service.py -- sign-up, login, verify-and-load, update-password.

Covers:
- sign_up() returns a PublicUser (no hash) and a token; welcome failures are logged only
- sign_up() validation failures persist nothing
- login() failures are indistinguishable (same type, same message)
- verify_and_load() raises Unauthenticated / InvalidToken / UserGone / StalePassword
- update_password() checks the current password and invalidates older tokens
"""

from __future__ import annotations

import dataclasses
from datetime import timedelta

import pytest

from auth.errors import (
    InvalidCredentials,
    InvalidToken,
    StalePassword,
    Unauthenticated,
    UserGone,
    ValidationError,
)
from auth.models import PublicUser, Role
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import SessionTokenCodec, verify_password
from tests.conftest import T0, FakeNotifier


def _sign_up(service: AuthService, email: str = "ada@example.com", password: str = "abc123") -> tuple:
    return service.sign_up("Ada", email, password, password, now=T0)


class TestSignUp:
    def test_returns_public_user_and_token(self, service: AuthService, codec: SessionTokenCodec) -> None:
        user, token = _sign_up(service)
        assert isinstance(user, PublicUser)
        assert "hashed_password" not in {f.name for f in dataclasses.fields(user)}
        assert user.role is Role.user
        assert codec.verify(token, T0).subject_id == user.id

    def test_email_is_normalized(self, service: AuthService) -> None:
        user, _token = service.sign_up("Ada", "  Ada@Example.COM ", "abc123", "abc123", now=T0)
        assert user.email == "ada@example.com"

    def test_password_stored_hashed(self, service: AuthService, store: UserStore) -> None:
        user, _token = _sign_up(service)
        record = store.get_by_id(user.id)
        assert record.hashed_password != "abc123"
        assert verify_password("abc123", record.hashed_password)
        assert record.password_changed_at is None

    def test_password_mismatch_persists_nothing(self, service: AuthService, store: UserStore) -> None:
        """password='abc123', confirm='xyz' -> ValidationError and no user row."""
        with pytest.raises(ValidationError):
            service.sign_up("Ada", "ada@example.com", "abc123", "xyz", now=T0)
        assert store.list_users() == []

    @pytest.mark.parametrize("email", ["", "not-an-email", "a@b", "two@@example.com"])
    def test_malformed_email_rejected(self, service: AuthService, store: UserStore, email: str) -> None:
        with pytest.raises(ValidationError):
            service.sign_up("Ada", email, "abc123", "abc123", now=T0)
        assert store.list_users() == []

    def test_duplicate_email_rejected(self, service: AuthService) -> None:
        _sign_up(service)
        with pytest.raises(ValidationError):
            service.sign_up("Other Ada", "ADA@example.com", "abc123", "abc123", now=T0)

    def test_short_password_rejected(self, service: AuthService) -> None:
        with pytest.raises(ValidationError):
            service.sign_up("Ada", "ada@example.com", "abc", "abc", now=T0)

    def test_missing_name_rejected(self, service: AuthService) -> None:
        with pytest.raises(ValidationError):
            service.sign_up("  ", "ada@example.com", "abc123", "abc123", now=T0)

    def test_welcome_failure_is_swallowed(self, service: AuthService, notifier: FakeNotifier) -> None:
        notifier.fail_welcome = True
        user, token = _sign_up(service)
        service.send_welcome(user, "http://testserver/api/v1/users/me")
        assert token
        assert notifier.welcome == []

    def test_welcome_sent(self, service: AuthService, notifier: FakeNotifier) -> None:
        user, _token = _sign_up(service)
        service.send_welcome(user, "http://testserver/api/v1/users/me")
        assert notifier.welcome == [("ada@example.com", "http://testserver/api/v1/users/me")]


class TestLogin:
    def test_valid_credentials(self, service: AuthService, codec: SessionTokenCodec) -> None:
        signed_up, _token = _sign_up(service)
        user, token = service.login("ADA@example.com", "abc123", now=T0)
        assert user == signed_up
        assert codec.verify(token, T0).subject_id == user.id

    def test_wrong_password_and_unknown_email_are_identical(self, service: AuthService) -> None:
        _sign_up(service)
        with pytest.raises(InvalidCredentials) as wrong_password:
            service.login("ada@example.com", "wrong-password", now=T0)
        with pytest.raises(InvalidCredentials) as unknown_email:
            service.login("nobody@example.com", "abc123", now=T0)
        assert wrong_password.value.message == unknown_email.value.message
        assert wrong_password.value.status_code == unknown_email.value.status_code == 401

    @pytest.mark.parametrize("email,password", [(None, "abc123"), ("ada@example.com", None), ("", "")])
    def test_missing_fields(self, service: AuthService, email, password) -> None:
        with pytest.raises(InvalidCredentials) as exc_info:
            service.login(email, password, now=T0)
        assert exc_info.value.message == InvalidCredentials().message


class TestVerifyAndLoad:
    def test_valid_token(self, service: AuthService) -> None:
        user, token = _sign_up(service)
        context = service.verify_and_load(token, now=T0 + timedelta(minutes=5))
        assert context.user == user
        assert context.issued_at == T0

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing_token(self, service: AuthService, token) -> None:
        with pytest.raises(Unauthenticated):
            service.verify_and_load(token, now=T0)

    def test_invalid_token(self, service: AuthService) -> None:
        with pytest.raises(InvalidToken):
            service.verify_and_load("not.a.token", now=T0)

    def test_expired_token(self, service: AuthService, codec: SessionTokenCodec) -> None:
        _user, token = _sign_up(service)
        with pytest.raises(InvalidToken):
            service.verify_and_load(token, now=T0 + timedelta(seconds=codec.expire_seconds + 1))

    def test_user_gone(self, service: AuthService, codec: SessionTokenCodec) -> None:
        with pytest.raises(UserGone):
            service.verify_and_load(codec.issue(9999, T0), now=T0)

    def test_token_issued_before_password_change_is_stale(self, service: AuthService, store: UserStore) -> None:
        user, token = _sign_up(service)
        t1 = T0 + timedelta(minutes=5)
        store.update_password(user.id, store.get_by_id(user.id).hashed_password, t1)
        with pytest.raises(StalePassword):
            service.verify_and_load(token, now=t1 + timedelta(seconds=1))


class TestUpdatePassword:
    def test_changes_password_and_returns_fresh_token(self, service: AuthService, store: UserStore) -> None:
        _user, old_token = _sign_up(service)
        context = service.verify_and_load(old_token, now=T0)
        t1 = T0 + timedelta(minutes=10)

        user, new_token = service.update_password(context, "abc123", "newpass99", "newpass99", now=t1)

        record = store.get_by_id(user.id)
        assert verify_password("newpass99", record.hashed_password)
        assert record.password_changed_at == t1 - timedelta(seconds=1)
        # The fresh token works; the old one is stale even though unexpired.
        assert service.verify_and_load(new_token, now=t1).user.id == user.id
        with pytest.raises(StalePassword):
            service.verify_and_load(old_token, now=t1)
        # Old password no longer logs in.
        with pytest.raises(InvalidCredentials):
            service.login("ada@example.com", "abc123", now=t1)

    def test_wrong_current_password(self, service: AuthService, store: UserStore) -> None:
        _user, token = _sign_up(service)
        context = service.verify_and_load(token, now=T0)
        with pytest.raises(InvalidCredentials):
            service.update_password(context, "nope", "newpass99", "newpass99", now=T0)
        assert verify_password("abc123", store.get_by_id(context.user.id).hashed_password)

    def test_confirmation_mismatch(self, service: AuthService, store: UserStore) -> None:
        _user, token = _sign_up(service)
        context = service.verify_and_load(token, now=T0)
        with pytest.raises(ValidationError):
            service.update_password(context, "abc123", "newpass99", "different", now=T0)
        assert store.get_by_id(context.user.id).password_changed_at is None
