"""Unit tests for auth/dependencies.py -- token extraction and the role gate.

The gates are also exercised end-to-end in test_api_routes.py; these tests
pin the pure pieces without going through HTTP.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from starlette.requests import Request

from auth.dependencies import check_role, extract_token, restrict_to
from auth.errors import Forbidden
from auth.models import AuthContext, PublicUser, Role


def _context(role: Role) -> AuthContext:
    user = PublicUser(id=1, name="Ada", email="ada@example.com", role=role)
    return AuthContext(user=user, issued_at=datetime(2026, 1, 1, tzinfo=timezone.utc))


def _request(headers: dict[str, str]) -> Request:
    raw = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in headers.items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


class TestCheckRole:
    def test_allowed_role_passes(self) -> None:
        check_role(_context(Role.admin), [Role.admin])
        check_role(_context(Role.user), [Role.user, Role.admin])

    def test_disallowed_role_forbidden(self) -> None:
        with pytest.raises(Forbidden) as exc_info:
            check_role(_context(Role.user), [Role.admin])
        assert exc_info.value.status_code == 403

    def test_empty_allow_list_forbids_everyone(self) -> None:
        with pytest.raises(Forbidden):
            check_role(_context(Role.admin), [])

    def test_restrict_to_dependency(self) -> None:
        admin_only = restrict_to(Role.admin)
        context = _context(Role.admin)
        assert admin_only(context) is context
        with pytest.raises(Forbidden):
            admin_only(_context(Role.user))

    def test_restrict_to_accepts_role_values(self) -> None:
        assert restrict_to("user")(_context(Role.user)).user.role is Role.user


class TestExtractToken:
    def test_bearer_header(self) -> None:
        assert extract_token(_request({"Authorization": "Bearer abc.def.ghi"})) == "abc.def.ghi"

    def test_bearer_header_wins_over_cookie(self) -> None:
        request = _request({"Authorization": "Bearer from-header", "Cookie": "jwt=from-cookie"})
        assert extract_token(request) == "from-header"

    def test_cookie_fallback(self) -> None:
        assert extract_token(_request({"Cookie": "jwt=from-cookie"})) == "from-cookie"

    def test_logged_out_sentinel_is_no_token(self) -> None:
        assert extract_token(_request({"Cookie": "jwt=loggedout"})) is None

    @pytest.mark.parametrize("header", ["", "Bearer", "Bearer ", "Basic dXNlcjpwYXNz", "bearer abc"])
    def test_missing_or_non_bearer(self, header: str) -> None:
        assert extract_token(_request({"Authorization": header})) is None
