"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes (mounted under /api/v1/users):
  POST  /signup                  -- create account; 201 + session token
  POST  /login                   -- password login; session token
  POST  /logout                  -- replace session cookie with sentinel
  POST  /forgot-password         -- email a one-time reset link
  PATCH /reset-password/{token}  -- redeem reset token; session token
  PATCH /update-password         -- change password (requires auth); session token

Every handler that hashes or verifies a password is a plain `def`, so FastAPI
runs it in the worker thread pool and bcrypt never blocks the event loop.

Security:
  Cache-Control: no-store on every response that carries a token.
  The session token is mirrored in an httpOnly, SameSite=Strict cookie.
  The welcome email runs as a BackgroundTask after the response is built, so
  its outcome cannot change the response.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response

from api.models import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ResetPasswordRequest,
    SignupRequest,
    UpdatePasswordRequest,
    UserOut,
)
from auth.dependencies import require_auth
from auth.models import AuthContext, PublicUser
from auth.reset import PasswordResetWorkflow
from auth.service import AuthService
from auth.tokens import set_auth_cookie, set_logged_out_cookie

# Auth policy:
# - POST  /signup, /login, /logout, /forgot-password: public
# - PATCH /reset-password/{token}: public -- the token itself is the credential
# - PATCH /update-password: requires auth (require_auth)
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _auth_response(request: Request, response: Response, user: PublicUser, token: str) -> AuthResponse:
    settings = request.app.state.settings
    set_auth_cookie(response, token, settings.token_expire_seconds, secure=settings.secure_cookies)
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse(token=token, user=UserOut.from_public(user))


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/signup", response_model=AuthResponse, status_code=201)
def signup(
    request: Request,
    response: Response,
    body: SignupRequest,
    background_tasks: BackgroundTasks,
) -> AuthResponse:
    """Create a `user` account and log it in immediately.

    No email verification step: the account is trusted on sign-up.
    """
    service: AuthService = request.app.state.auth_service
    user, token = service.sign_up(body.name, body.email, body.password, body.password_confirm)
    background_tasks.add_task(service.send_welcome, user, str(request.url_for("me")))
    return _auth_response(request, response, user, token)


@router.post("/login", response_model=AuthResponse)
def login(request: Request, response: Response, body: LoginRequest) -> AuthResponse:
    """Authenticate with email and password.

    Wrong password, unknown email and missing fields all return the same 401.
    """
    service: AuthService = request.app.state.auth_service
    user, token = service.login(body.email, body.password)
    return _auth_response(request, response, user, token)


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request, response: Response) -> MessageResponse:
    """Overwrite the session cookie. Bearer tokens held by clients stay valid until expiry."""
    set_logged_out_cookie(response, secure=request.app.state.settings.secure_cookies)
    return MessageResponse(message="You have been logged out.")


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    """Email a password reset link valid for 10 minutes."""
    workflow: PasswordResetWorkflow = request.app.state.reset_workflow
    workflow.forgot_password(
        body.email,
        lambda raw_token: str(request.url_for("reset_password", token=raw_token)),
    )
    return MessageResponse(message="Token sent to email.")


@router.patch("/reset-password/{token}", response_model=AuthResponse)
def reset_password(
    request: Request,
    response: Response,
    token: str,
    body: ResetPasswordRequest,
) -> AuthResponse:
    """Redeem a reset token and log the user in with the new password."""
    workflow: PasswordResetWorkflow = request.app.state.reset_workflow
    user, session_token = workflow.reset_password(token, body.password, body.password_confirm)
    return _auth_response(request, response, user, session_token)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.patch("/update-password", response_model=AuthResponse)
def update_password(
    request: Request,
    response: Response,
    body: UpdatePasswordRequest,
    auth: AuthContext = Depends(require_auth),
) -> AuthResponse:
    """Change the caller's password. Older tokens stop working."""
    service: AuthService = request.app.state.auth_service
    user, token = service.update_password(auth, body.current_password, body.password, body.password_confirm)
    return _auth_response(request, response, user, token)
