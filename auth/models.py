"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in listings/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/, listings/, media/, or notify/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

ROLE_CLIENT = "client"
ROLE_ADMIN = "admin"
ROLES = (ROLE_CLIENT, ROLE_ADMIN)


class OtpPurpose(str, Enum):
    """What a one-time code proves. Each purpose has its own challenge slot."""

    EMAIL_VERIFY = "email_verify"
    PASSWORD_RESET = "password_reset"


@dataclass
class Account:
    """An authenticated identity.

    email is always stored lower-cased so lookups are case-insensitive.
    hashed_password is None on copies handed to request handlers -- the
    session gate strips it before attaching the account to the request.
    """

    full_name: str
    email: str
    phone_no: str
    role: str = ROLE_CLIENT  # "client" | "admin"
    id: int | None = None
    hashed_password: str | None = None
    is_verified: bool = False
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass
class OtpChallenge:
    """One outstanding code for (account, purpose).

    code and expires_at live in the same row, so they are always set and
    cleared together. A code is usable only while now < expires_at.
    """

    account_id: int
    purpose: OtpPurpose
    code: str
    expires_at: datetime
    created_at: str | None = None
