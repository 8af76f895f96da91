"""
api/routes/v1/users.py -- User profile endpoints behind the access and role gates.

Routes (mounted under /api/v1/users):
  GET /me  -- the caller's own profile (requires auth)
  GET ""   -- every account (admin only)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import UserListResponse, UserOut, UserResponse
from auth.dependencies import require_auth, restrict_to
from auth.models import AuthContext, PublicUser, Role
from auth.store import UserStore

router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def me(auth: AuthContext = Depends(require_auth)) -> UserResponse:
    """Return the authenticated caller's profile."""
    return UserResponse(user=UserOut.from_public(auth.user))


@router.get("", response_model=UserListResponse)
def list_users(request: Request, auth: AuthContext = Depends(restrict_to(Role.admin))) -> UserListResponse:
    """List all accounts. Admin only."""
    user_store: UserStore = request.app.state.user_store
    users = [UserOut.from_public(PublicUser.from_user(u)) for u in user_store.list_users()]
    return UserListResponse(results=len(users), users=users)
