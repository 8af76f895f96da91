"""
auth/dependencies.py -- FastAPI Depends() helpers for the access and role gates.

Token sources, checked in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. "jwt" cookie -- browsers, set by login/sign-up. The "loggedout"
     sentinel written by logout counts as no token.

require_auth() resolves the token through AuthService.verify_and_load() and
returns the AuthContext. Any AuthError propagates to the exception handler in
api/main.py, so no protected handler runs on failure.

restrict_to(*roles) wraps require_auth() with check_role(), a pure predicate
over the closed Role enum.

Layer rule: auth/dependencies.py may import from fastapi (Depends/Request)
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from fastapi import Depends, Request

from auth.errors import Forbidden
from auth.models import AuthContext, Role
from auth.service import AuthService
from auth.tokens import COOKIE_NAME, LOGGED_OUT_SENTINEL


def extract_token(request: Request) -> str | None:
    """Return the session token carried by the request, or None."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token

    token = request.cookies.get(COOKIE_NAME)
    if token and token != LOGGED_OUT_SENTINEL:
        return token
    return None


def require_auth(request: Request) -> AuthContext:
    """Require a valid session. Raises a 401 AuthError otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(auth: AuthContext = Depends(require_auth)): ...
    """
    service: AuthService = request.app.state.auth_service
    context = service.verify_and_load(extract_token(request))
    request.state.auth = context
    return context


def check_role(context: AuthContext, allowed: Iterable[Role]) -> None:
    """Raise Forbidden unless the caller's role is in allowed."""
    if context.user.role not in set(allowed):
        raise Forbidden()


def restrict_to(*roles: Role) -> Callable[[AuthContext], AuthContext]:
    """Build a dependency that requires a session with one of roles.

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        def route(auth: AuthContext = Depends(restrict_to(Role.admin))): ...
    """
    allowed = frozenset(Role(r) for r in roles)

    def dependency(context: AuthContext = Depends(require_auth)) -> AuthContext:
        check_role(context, allowed)
        return context

    return dependency
