"""
auth/otp.py -- One-time code lifecycle for email verification and password reset.

State machine per (account, purpose):

    NONE --issue--> ISSUED --validate(ok)--> CONSUMED   (row deleted == NONE)
                      |  \\--issue--> ISSUED (new code, new window)
                      \\--time passes--> EXPIRED        (still stored, rejected)

Rules:
  - Codes are uniform over 100000..999999 (six digits, never a leading zero)
    drawn from the `secrets` CSPRNG.
  - A code is valid only on exact match AND now < expires_at.
  - Failed validation has no side effect: the stored code and its expiry are
    untouched, so the user can retry the right code until it expires.
  - Each purpose has its own slot. A password-reset request never cancels an
    in-flight email-verification code, and vice versa.

The clock is injectable so expiry can be tested without sleeping.

Layer rule: no imports from api/, listings/, media/, or notify/.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.models import Account, OtpPurpose
from auth.store import AccountStore
from core.config import get_settings
from core.errors import Expired, InvalidCode

logger = logging.getLogger("estatedesk.otp")

_CODE_MIN = 100000
_CODE_MAX = 999999


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_code() -> str:
    """Return a uniformly random six-digit code as a string."""
    return str(_CODE_MIN + secrets.randbelow(_CODE_MAX - _CODE_MIN + 1))


class OtpManager:
    """Issues and checks one-time codes stored through an AccountStore.

    Usage:
        otp = OtpManager(store)
        code = otp.issue(account, OtpPurpose.EMAIL_VERIFY)   # hand to the mailer
        otp.validate(account, OtpPurpose.EMAIL_VERIFY, code) # raises on failure
    """

    def __init__(
        self,
        store: AccountStore,
        ttl: timedelta | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.ttl = ttl or timedelta(minutes=get_settings().otp_expire_minutes)
        self.clock = clock

    def issue(self, account: Account, purpose: OtpPurpose) -> str:
        """Mint a fresh code for (account, purpose), overwriting any prior one.

        Returns the code for delivery. It must never be echoed to the HTTP
        caller.
        """
        code = generate_code()
        expires_at = self.clock() + self.ttl
        self.store.set_otp(account.id, purpose, code, expires_at)
        logger.info("OTP issued account_id=%s purpose=%s", account.id, OtpPurpose(purpose).value)
        return code

    def check(self, account: Account, purpose: OtpPurpose, submitted: str) -> None:
        """Raise InvalidCode / Expired if the code would not validate. Never consumes."""
        challenge = self.store.get_otp(account.id, purpose)
        candidate = (submitted or "").strip().encode("utf-8")
        if challenge is None or not hmac.compare_digest(challenge.code.encode("utf-8"), candidate):
            raise InvalidCode()
        if self.clock() >= challenge.expires_at:
            raise Expired()

    def validate(self, account: Account, purpose: OtpPurpose, submitted: str) -> None:
        """Check the code and consume it on success.

        Raises InvalidCode when nothing is stored or the digits differ, and
        Expired when the window has closed. Stored state is left untouched on
        either failure. A code that another request consumed (or a resend
        replaced) after the check is reported as InvalidCode.
        """
        self.check(account, purpose, submitted)
        if not self.store.consume_otp(account.id, purpose, submitted.strip()):
            raise InvalidCode()
        logger.info("OTP consumed account_id=%s purpose=%s", account.id, OtpPurpose(purpose).value)
