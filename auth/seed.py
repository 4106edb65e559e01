"""
auth/seed.py -- Idempotent admin bootstrap.

The configured admin identity (ADMIN_EMAIL / ADMIN_PASSWORD) is turned into a
real Account once at startup. Login then has a single code path for everyone;
nothing compares request bodies against environment variables.

Idempotency: running the seed any number of times leaves exactly one account
for ADMIN_EMAIL, with role "admin" and a password matching ADMIN_PASSWORD.

Layer rule: no imports from api/, listings/, media/, or notify/.
"""

from __future__ import annotations

import logging

from auth.models import ROLE_ADMIN, Account
from auth.store import AccountStore
from core.config import Settings
from core.errors import Conflict

logger = logging.getLogger("estatedesk.seed")


def ensure_admin_account(store: AccountStore, settings: Settings) -> Account | None:
    """Create, promote or re-sync the configured admin account.

    Returns the admin Account, or None when no admin identity is configured
    or when ADMIN_PHONE_NO already belongs to a different account.

    - Missing: created with role "admin" and marked verified.
    - Present but not admin: promoted.
    - Present with a different password: password reset to ADMIN_PASSWORD, so
      the configured credentials always work.
    """
    if not settings.admin_email or not settings.admin_password:
        logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set -- admin seeding skipped")
        return None

    account = store.get_by_email(settings.admin_email)
    if account is None:
        try:
            account = store.create_account(
                full_name=settings.admin_full_name,
                email=settings.admin_email,
                phone_no=settings.admin_phone_no,
                raw_password=settings.admin_password,
                role=ROLE_ADMIN,
            )
        except Conflict as exc:
            # Usually ADMIN_EMAIL changed while ADMIN_PHONE_NO still belongs to
            # the previous admin (or to a client). The owner of that phone is
            # never promoted implicitly.
            logger.error(
                "Admin seeding skipped for %s: %s Set ADMIN_PHONE_NO to an unused number.",
                settings.admin_email,
                exc.message,
            )
            return None
        store.mark_verified(account.id)
        logger.info("Admin account created (id=%s)", account.id)
        return store.get_by_id(account.id)

    if account.role != ROLE_ADMIN:
        store.update_account(account.id, role=ROLE_ADMIN)
        logger.info("Account %s promoted to admin", account.id)
    if not store.verify_password(account, settings.admin_password):
        store.set_password(account.id, settings.admin_password)
        logger.info("Admin password re-synced from configuration (id=%s)", account.id)
    return store.get_by_id(account.id)
