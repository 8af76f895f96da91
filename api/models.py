"""
API request and response models for Gatehouse REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Request models are deliberately lenient (optional strings with length caps):
field rules such as email format and password confirmation live in
auth/validation.py so the same rules apply to every caller, and missing
login fields must produce the generic 401 rather than a 400.

Every response uses the envelope {status, token?, user?, message?}.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import PublicUser, Role

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/users/signup."""

    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)
    password_confirm: Optional[str] = Field(default=None, max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/users/login."""

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/v1/users/forgot-password."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)


class ResetPasswordRequest(BaseModel):
    """Request body for PATCH /api/v1/users/reset-password/{token}."""

    password: Optional[str] = Field(default=None, max_length=255)
    password_confirm: Optional[str] = Field(default=None, max_length=255)


class UpdatePasswordRequest(BaseModel):
    """Request body for PATCH /api/v1/users/update-password."""

    current_password: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)
    password_confirm: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserOut(BaseModel):
    """Public user representation. There is no password field to leak."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: Role
    password_changed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_public(cls, user: PublicUser) -> "UserOut":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            password_changed_at=user.password_changed_at,
            created_at=user.created_at,
        )


class AuthResponse(BaseModel):
    """Response for every endpoint that issues a session token."""

    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    token: str
    user: UserOut


class UserResponse(BaseModel):
    """Response for GET /api/v1/users/me."""

    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    user: UserOut


class UserListResponse(BaseModel):
    """Response for GET /api/v1/users."""

    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    results: int
    users: list[UserOut]


class MessageResponse(BaseModel):
    """Envelope carrying only a message (logout, forgot-password, errors)."""

    model_config = ConfigDict(frozen=True)

    status: Literal["success", "fail", "error"] = "success"
    message: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
