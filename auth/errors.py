"""
auth/errors.py -- Domain error taxonomy for the auth layer.

Every failure the auth layer reports is an AuthError subclass carrying an
HTTP-equivalent status_code and a human-readable message. The auth layer
raises them; api/main.py owns the single handler that turns them into the
{"status": "fail", "message": ...} envelope. Nothing in auth/ imports FastAPI
for error reporting.

The four 401 "not currently authenticated" errors are kept as distinct types
so tests and logs can tell them apart, even though clients only see the
status and message.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 400
    default_message: str = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    status_code = 400
    default_message = "Invalid input data."


class InvalidCredentials(AuthError):
    status_code = 401
    default_message = "Incorrect email or password."


class Unauthenticated(AuthError):
    status_code = 401
    default_message = "You are not logged in! Please log in to get access."


class InvalidToken(AuthError):
    status_code = 401
    default_message = "Invalid token. Please log in again."


class UserGone(AuthError):
    status_code = 401
    default_message = "The user belonging to this token no longer exists."


class StalePassword(AuthError):
    status_code = 401
    default_message = "User recently changed password! Please log in again."


class Forbidden(AuthError):
    status_code = 403
    default_message = "You do not have permission to perform this action."


class NotFound(AuthError):
    status_code = 404
    default_message = "There is no user with that email address."


class InvalidOrExpiredToken(AuthError):
    status_code = 400
    default_message = "Token is invalid or has expired. Please request a new password reset."


class DeliveryError(AuthError):
    status_code = 503
    default_message = "There was an error sending the email. Please try again later."
