"""
api/routes/v1/auth.py -- Signup, login and the OTP flows.

Routes:
  POST /api/v1/auth/signup                   -- create account + profile, email a verification OTP
  POST /api/v1/auth/login                    -- email/password login; returns a bearer token
  GET  /api/v1/auth/me                       -- current account (requires auth)
  POST /api/v1/auth/verify-email-otp         -- consume the verification OTP, mark verified
  POST /api/v1/auth/resend-verification-otp  -- re-issue the verification OTP
  POST /api/v1/auth/forgot-password          -- issue a password-reset OTP
  POST /api/v1/auth/verify-otp               -- check a reset OTP without consuming it
  POST /api/v1/auth/reset-password           -- consume the reset OTP and set a new password
  POST /api/v1/auth/resend-otp               -- re-issue the password-reset OTP

Security:
  [H2] login is rate-limited per IP; signup and every OTP-issuing or
       OTP-checking route share the stricter OTP limit.
  [C1] authenticate_account() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on login responses.
  OTP codes travel only by email. No response body ever contains one.

Delivery failures:
  A failed OTP email is a 502 dependency_failure. On signup the account and
  profile are kept; the message points the client at the resend endpoint.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import LOGIN_LIMIT, OTP_LIMIT, limiter
from api.models import (
    AccountOut,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    OtpRequest,
    ProfileOut,
    ResetPasswordRequest,
    SignupRequest,
    SignupResponse,
)
from auth.dependencies import get_current_user
from auth.models import Account, OtpPurpose
from auth.otp import OtpManager
from auth.store import AccountStore
from auth.tokens import authenticate_account, create_access_token
from core.config import get_settings
from core.errors import AppError, DependencyFailure, InvalidCredentials, NotFound
from listings.models import Profile
from listings.store import ListingStore
from notify.mailer import EmailSendError, send_otp_email

logger = logging.getLogger("estatedesk.auth")

# Auth policy:
# - GET /api/v1/auth/me: requires auth (get_current_user)
# - everything else:     public
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _account_for_email(store: AccountStore, email: str) -> Account:
    account = store.get_by_email(email)
    if account is None:
        raise NotFound("User not found with this email.")
    return account


def _issue_and_send(request: Request, account: Account, purpose: OtpPurpose, failure_message: str) -> None:
    """Mint a fresh code for (account, purpose) and email it.

    Raises DependencyFailure if the mailer fails. The issued code stays
    stored; a later resend simply overwrites it.
    """
    store: AccountStore = request.app.state.account_store
    code = OtpManager(store).issue(account, purpose)
    try:
        send_otp_email(request.app.state.mailer, account.email, code, purpose, get_settings().otp_expire_minutes)
    except EmailSendError as exc:
        logger.error("OTP delivery failed account_id=%s purpose=%s: %s", account.id, purpose.value, exc)
        raise DependencyFailure(failure_message) from exc


# ---------------------------------------------------------------------------
# Signup / login
# ---------------------------------------------------------------------------


@limiter.limit(OTP_LIMIT)
@router.post("/auth/signup", response_model=SignupResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> SignupResponse:
    """Create the account and its profile, then email a verification OTP.

    If the profile cannot be created the account is removed again, so a
    signup either produces both records or neither.
    """
    accounts: AccountStore = request.app.state.account_store
    listings: ListingStore = request.app.state.listing_store

    account = accounts.create_account(body.full_name, body.email, body.phone_no, body.password)
    try:
        profile = listings.create_profile(
            Profile(
                account_id=account.id,
                full_name=account.full_name,
                email=account.email,
                phone_no=account.phone_no,
            )
        )
    except SQLAlchemyError as exc:
        accounts.delete_account(account.id)
        logger.error("Profile creation failed, signup rolled back account_id=%s: %s", account.id, exc)
        raise AppError("User registration failed due to profile creation error.") from exc

    logger.info("Account created account_id=%s", account.id)
    _issue_and_send(
        request,
        account,
        OtpPurpose.EMAIL_VERIFY,
        "Account created, but the verification email could not be sent. "
        "Request a new code via /api/v1/auth/resend-verification-otp.",
    )
    return SignupResponse(
        message="User registered successfully. Please verify your email using the OTP sent to your email address.",
        user_id=account.id,
        user=AccountOut.from_domain(account),
        profile=ProfileOut.from_domain(profile, account),
    )


@limiter.limit(LOGIN_LIMIT)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
    """Authenticate with email and password; return a bearer token.

    Unknown email and wrong password produce the same invalid_credentials
    error. The configured admin logs in here too -- the startup seed made it
    an ordinary account.
    """
    store: AccountStore = request.app.state.account_store
    account = authenticate_account(store, body.email, body.password)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    if account is None:
        raise InvalidCredentials("Invalid credentials.")

    logger.info("Login account_id=%s role=%s", account.id, account.role)
    return LoginResponse(
        token=create_access_token(account.id),
        expires_in=get_settings().token_expire_seconds,
        user=AccountOut.from_domain(account),
    )


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: Account = Depends(get_current_user)) -> MeResponse:
    """Return the account behind the bearer token."""
    return MeResponse(user=AccountOut.from_domain(current_user))


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


@limiter.limit(OTP_LIMIT)
@router.post("/auth/verify-email-otp", response_model=MessageResponse)
def verify_email_otp(request: Request, body: OtpRequest) -> MessageResponse:
    store: AccountStore = request.app.state.account_store
    account = _account_for_email(store, body.email)
    OtpManager(store).validate(account, OtpPurpose.EMAIL_VERIFY, body.otp)
    store.mark_verified(account.id)
    return MessageResponse(message="Email verified successfully.")


@limiter.limit(OTP_LIMIT)
@router.post("/auth/resend-verification-otp", response_model=MessageResponse)
def resend_verification_otp(request: Request, body: EmailRequest) -> MessageResponse:
    """Re-issue the verification code with a fresh expiry window."""
    account = _account_for_email(request.app.state.account_store, body.email)
    _issue_and_send(
        request,
        account,
        OtpPurpose.EMAIL_VERIFY,
        "Failed to send OTP email. Please try again later.",
    )
    return MessageResponse(message="OTP resent to your email address.")


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@limiter.limit(OTP_LIMIT)
@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(request: Request, body: EmailRequest) -> MessageResponse:
    account = _account_for_email(request.app.state.account_store, body.email)
    _issue_and_send(
        request,
        account,
        OtpPurpose.PASSWORD_RESET,
        "Failed to send OTP email. Please try again later.",
    )
    return MessageResponse(message="OTP sent to your email address.")


@limiter.limit(OTP_LIMIT)
@router.post("/auth/verify-otp", response_model=MessageResponse)
def verify_otp(request: Request, body: OtpRequest) -> MessageResponse:
    """Confirm a reset code is correct and unexpired. The code stays usable for reset-password."""
    store: AccountStore = request.app.state.account_store
    account = _account_for_email(store, body.email)
    OtpManager(store).check(account, OtpPurpose.PASSWORD_RESET, body.otp)
    return MessageResponse(message="OTP verified successfully.")


@limiter.limit(OTP_LIMIT)
@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Consume the reset code, then overwrite the password. Never the other way round."""
    store: AccountStore = request.app.state.account_store
    account = _account_for_email(store, body.email)
    OtpManager(store).validate(account, OtpPurpose.PASSWORD_RESET, body.otp)
    store.set_password(account.id, body.new_password)
    logger.info("Password reset account_id=%s", account.id)
    return MessageResponse(message="Password reset successfully.")


@limiter.limit(OTP_LIMIT)
@router.post("/auth/resend-otp", response_model=MessageResponse)
def resend_otp(request: Request, body: EmailRequest) -> MessageResponse:
    account = _account_for_email(request.app.state.account_store, body.email)
    _issue_and_send(
        request,
        account,
        OtpPurpose.PASSWORD_RESET,
        "Failed to send OTP email. Please try again later.",
    )
    return MessageResponse(message="OTP resent to your email address.")
