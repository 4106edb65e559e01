"""
core/errors.py -- Domain error taxonomy shared by every layer.

Stores, the OTP manager and the token verifier raise these; api/main.py has a
single exception handler that turns any AppError into the standard error
envelope. Route handlers may raise them directly as well, which keeps the
status-code mapping in one place instead of scattered HTTPException calls.

Each subclass fixes its HTTP status and machine-readable code. The message is
per-raise so callers can be specific ("Property post not found").

Layer rule: no imports from api/, auth/, listings/, media/, or notify/.
"""

from __future__ import annotations

from typing import Optional


class AppError(Exception):
    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationFailed(AppError):
    status_code = 400
    code = "validation_failed"
    default_message = "Request validation failed."


class InvalidCode(AppError):
    status_code = 400
    code = "invalid_code"
    default_message = "Invalid OTP."


class Expired(AppError):
    status_code = 400
    code = "otp_expired"
    default_message = "OTP has expired."


class InvalidCredentials(AppError):
    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid credentials."


class Unauthenticated(AppError):
    status_code = 401
    code = "unauthorized"
    default_message = "Not authorized."


class TokenInvalid(Unauthenticated):
    code = "token_invalid"
    default_message = "Not authorized, token failed."


class TokenExpired(Unauthenticated):
    code = "token_expired"
    default_message = "Not authorized, token expired."


class Forbidden(AppError):
    status_code = 403
    code = "forbidden"
    default_message = "Not authorized to perform this action."


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found."


class Conflict(AppError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists."


class DependencyFailure(AppError):
    status_code = 502
    code = "dependency_failure"
    default_message = "An upstream service failed. Please try again later."
