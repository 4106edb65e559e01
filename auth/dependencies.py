"""
auth/dependencies.py -- FastAPI Depends() helpers for the session gate.

Sequence for every protected request:
  1. Read "Authorization: Bearer <token>". Missing header or wrong scheme -> 401.
  2. Verify the JWT signature and expiry. Any failure -> 401.
  3. Load the account named by the token. Deleted since issue -> 401.
  4. Attach the account (password hash already stripped by the store) to
     request.state.account and return it to the handler.
  5. require_admin additionally demands role == "admin" -> otherwise 403.

get_current_user() is the hard variant; try_get_current_user() returns None
instead of raising, for public routes that behave differently when a session
is present.

Layer rule: no imports from listings/, media/, or notify/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import Account
from auth.store import AccountStore
from auth.tokens import verify_access_token
from core.errors import AppError, Forbidden, Unauthenticated

_BEARER_PREFIX = "Bearer "


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    if not header.startswith(_BEARER_PREFIX):
        raise Unauthenticated("Not authorized, no token.")
    token = header[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise Unauthenticated("Not authorized, no token.")
    return token


def get_current_user(request: Request) -> Account:
    """Require a valid session. Raises Unauthenticated (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: Account = Depends(get_current_user)): ...
    """
    token = _bearer_token(request)
    account_id = verify_access_token(token)

    account_store: AccountStore = request.app.state.account_store
    account = account_store.get_by_id(account_id)
    if account is None:
        raise Unauthenticated("Not authorized, user not found.")

    request.state.account = account
    return account


def try_get_current_user(request: Request) -> Account | None:
    """Soft variant of get_current_user(). Never raises for auth failures."""
    try:
        return get_current_user(request)
    except AppError:
        return None


def require_admin(request: Request) -> Account:
    """Require admin role. Raises 401 if unauthenticated, 403 if not admin.

    Use as a FastAPI dependency:
        @router.delete("/admin-only")
        def route(user: Account = Depends(require_admin)): ...
    """
    account = get_current_user(request)
    if not account.is_admin:
        raise Forbidden("Not authorized, admin access required.")
    return account
