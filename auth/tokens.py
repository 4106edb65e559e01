"""
auth/tokens.py -- Password hashing, session tokens, and credential checks.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       only the account id (sub), issue time (iat) and expiry (exp). Nothing
       about the session is stored server-side, so a token stays valid until
       exp -- there is no revocation list.

  Expiry: checked here rather than by python-jose so the comparison is strict
       (a token is rejected AT its exp instant, not one second after) and so
       tests can pass an explicit `now`.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_account() so response time does not
       reveal whether an email is registered [C1].

  SECRET_KEY: sourced from core.config.get_settings(), which validates the
       key at startup [M6].

Layer rule: no imports from api/, listings/, media/, or notify/. Import from
core/ is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings
from core.errors import TokenExpired, TokenInvalid

if TYPE_CHECKING:
    from auth.models import Account
    from auth.store import AccountStore

logger = logging.getLogger("estatedesk.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt truncates input at 72 bytes; the API layer caps passwords at 72
    characters so that limit is never reached silently for ASCII input.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the DB.
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("estatedesk_timing_dummy")


# ---------------------------------------------------------------------------
# JWT issue / verify
# ---------------------------------------------------------------------------


def create_access_token(account_id: int, expire_seconds: int = 0, now: datetime | None = None) -> str:
    """Encode a signed JWT binding the bearer to account_id.

    Args:
        account_id:     Primary key of the Account.
        expire_seconds: Lifetime in seconds. 0 (default) uses
                        Settings.token_expire_seconds (30 days).
        now:            Issue instant; defaults to the current UTC time.
    """
    issued = now or datetime.now(timezone.utc)
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = issued + timedelta(seconds=duration)
    payload = {
        "sub": str(account_id),
        "iat": int(issued.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def verify_access_token(token: str, now: datetime | None = None) -> int:
    """Verify a JWT and return the embedded account id.

    Raises:
        TokenInvalid: bad signature, tampered or malformed payload.
        TokenExpired: signature is fine but now >= exp.
    """
    try:
        payload = jwt.decode(
            token,
            _settings.secret_key,
            algorithms=[_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError as exc:
        raise TokenInvalid() from exc

    try:
        account_id = int(payload["sub"])
        exp = int(payload["exp"])
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenInvalid() from exc

    current = now or datetime.now(timezone.utc)
    if current.timestamp() >= exp:
        raise TokenExpired()
    return account_id


# ---------------------------------------------------------------------------
# Account authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_account(store: AccountStore, email: str, password: str) -> Account | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the Account on success, None on any failure. Callers must report
    both failure modes with the same message.
    """
    account = store.get_by_email(email, include_password=True)
    if account is None or not account.hashed_password:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, account.hashed_password):
        return None
    account.hashed_password = None
    return account
