"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and OTP challenges.

Pattern: Repository + Data Mapper (same as listings/store.py).
AccountStore is the repository; _row_to_account / _row_to_challenge are the
mappers. Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Password hashes never leave this module unless include_password=True is
  passed explicitly. Only the credential check in auth/tokens.py asks for it.

  Email and phone uniqueness are enforced both by a pre-check (for a clean
  Conflict message) and by UNIQUE constraints (for concurrent signups).

OTP challenges:
  One row per (account_id, purpose), enforced by UNIQUE. Issuing replaces the
  row; consuming deletes it. Code and expiry therefore always appear and
  disappear together. Concurrent writers race at the row level and the last
  one wins.

Layer rule: no imports from api/, listings/, media/, or notify/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import ROLE_ADMIN, ROLE_CLIENT, Account, OtpChallenge, OtpPurpose
from auth.tokens import hash_password
from auth.tokens import verify_password as _check_hash
from core.config import get_settings
from core.errors import Conflict

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("full_name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # lower-cased
    Column("phone_no", String(10), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(10), nullable=False, server_default=ROLE_CLIENT),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    CheckConstraint(f"role IN ('{ROLE_CLIENT}', '{ROLE_ADMIN}')", name="ck_accounts_role"),
)

_otp_challenges = Table(
    "otp_challenges",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, nullable=False),
    Column("purpose", String(30), nullable=False),
    Column("code", String(6), nullable=False),
    Column("expires_at", String(32), nullable=False),  # ISO 8601, UTC
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("account_id", "purpose", name="uq_otp_account_purpose"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account and OtpChallenge entities.

    Usage:
        store = AccountStore()
        account = store.create_account("A B", "a@b.com", "9876543210", "secret1")
        same = store.get_by_email("A@B.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def create_account(
        self,
        full_name: str,
        email: str,
        phone_no: str,
        raw_password: str,
        role: str = ROLE_CLIENT,
    ) -> Account:
        """Hash the password, insert the account and return it (without the hash).

        Raises Conflict if the email or phone number is already registered.
        The UNIQUE constraints back up the pre-check when two signups race.
        """
        email = normalize_email(email)
        if self.get_by_email(email) is not None:
            raise Conflict("User already exists with this email.")
        if self.get_by_phone(phone_no) is not None:
            raise Conflict("User already exists with this phone number.")

        now = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _accounts.insert().values(
                        full_name=full_name.strip(),
                        email=email,
                        phone_no=phone_no,
                        hashed_password=hash_password(raw_password),
                        role=role,
                        is_verified=0,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
                account_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise Conflict("User already exists with this email or phone number.") from exc
        return self.get_by_id(account_id)

    def get_by_email(self, email: str, include_password: bool = False) -> Account | None:
        """Case-insensitive lookup by email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row, include_password) if row is not None else None

    def get_by_phone(self, phone_no: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.phone_no == phone_no)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: int, include_password: bool = False) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row, include_password) if row is not None else None

    def get_many(self, account_ids: list[int]) -> dict[int, Account]:
        """Return {id: Account} for the given ids; missing ids are skipped."""
        ids = {i for i in account_ids if i is not None}
        if not ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(_accounts.select().where(_accounts.c.id.in_(ids))).fetchall()
        return {r.id: _row_to_account(r) for r in rows}

    def list_accounts(self, role: str | None = None) -> list[Account]:
        """Return accounts newest first, optionally restricted to one role."""
        query = _accounts.select().order_by(_accounts.c.created_at.desc(), _accounts.c.id.desc())
        if role is not None:
            query = query.where(_accounts.c.role == role)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_account(r) for r in rows]

    def count_accounts(self, role: str | None = None) -> int:
        query = select(func.count()).select_from(_accounts)
        if role is not None:
            query = query.where(_accounts.c.role == role)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def verify_password(self, account: Account, raw_password: str) -> bool:
        """bcrypt comparison against the stored hash for this account.

        Works on stripped Account copies too: the hash is re-read from the DB.
        """
        if account.id is None:
            return False
        with self.engine.connect() as conn:
            hashed = conn.execute(
                select(_accounts.c.hashed_password).where(_accounts.c.id == account.id)
            ).scalar()
        if not hashed:
            return False
        return _check_hash(raw_password, hashed)

    def set_password(self, account_id: int, raw_password: str) -> bool:
        """Rehash and overwrite the password. Returns False if the account is gone."""
        return self.update_account(account_id, hashed_password=hash_password(raw_password))

    def update_account(self, account_id: int, **fields) -> bool:
        """Update mutable fields on an existing account.

        Accepted fields: full_name, role, is_verified, hashed_password.
        is_verified must be passed as bool; this method converts to int.

        Returns True if a row was updated, False if account_id was not found.
        """
        if "is_verified" in fields:
            fields["is_verified"] = 1 if fields["is_verified"] else 0
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def mark_verified(self, account_id: int) -> bool:
        return self.update_account(account_id, is_verified=True)

    def delete_account(self, account_id: int) -> bool:
        """Permanently delete the identity record and its OTP challenges.

        Dependent data (profile, listings, media) lives in other stores and
        must be removed first -- see listings.service.delete_account_cascade().
        Returns True if the account existed.
        """
        with self.engine.connect() as conn:
            conn.execute(_otp_challenges.delete().where(_otp_challenges.c.account_id == account_id))
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # OTP challenges
    # ------------------------------------------------------------------

    def set_otp(self, account_id: int, purpose: OtpPurpose, code: str, expires_at: datetime) -> None:
        """Store the outstanding challenge for (account, purpose), replacing any prior one."""
        purpose = OtpPurpose(purpose)
        with self.engine.connect() as conn:
            conn.execute(
                _otp_challenges.delete().where(
                    (_otp_challenges.c.account_id == account_id) & (_otp_challenges.c.purpose == purpose.value)
                )
            )
            conn.execute(
                _otp_challenges.insert().values(
                    account_id=account_id,
                    purpose=purpose.value,
                    code=code,
                    expires_at=expires_at.astimezone(timezone.utc).isoformat(),
                    created_at=_now_iso(),
                )
            )
            conn.commit()

    def get_otp(self, account_id: int, purpose: OtpPurpose) -> OtpChallenge | None:
        purpose = OtpPurpose(purpose)
        with self.engine.connect() as conn:
            row = conn.execute(
                _otp_challenges.select().where(
                    (_otp_challenges.c.account_id == account_id) & (_otp_challenges.c.purpose == purpose.value)
                )
            ).fetchone()
        return _row_to_challenge(row) if row is not None else None

    def clear_otp(self, account_id: int, purpose: OtpPurpose) -> bool:
        """Remove the challenge. Returns True if one existed."""
        purpose = OtpPurpose(purpose)
        with self.engine.connect() as conn:
            result = conn.execute(
                _otp_challenges.delete().where(
                    (_otp_challenges.c.account_id == account_id) & (_otp_challenges.c.purpose == purpose.value)
                )
            )
            conn.commit()
        return result.rowcount > 0

    def consume_otp(self, account_id: int, purpose: OtpPurpose, code: str) -> bool:
        """Delete the challenge only if it still holds this exact code.

        Single conditional DELETE: of two concurrent consumers exactly one sees
        a row removed, and a code re-issued in between is left in place.
        """
        purpose = OtpPurpose(purpose)
        with self.engine.connect() as conn:
            result = conn.execute(
                _otp_challenges.delete().where(
                    (_otp_challenges.c.account_id == account_id)
                    & (_otp_challenges.c.purpose == purpose.value)
                    & (_otp_challenges.c.code == code)
                )
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row, include_password: bool = False) -> Account:
    return Account(
        id=row.id,
        full_name=row.full_name,
        email=row.email,
        phone_no=row.phone_no,
        role=row.role,
        hashed_password=row.hashed_password if include_password else None,
        is_verified=bool(row.is_verified),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_challenge(row) -> OtpChallenge:
    expires_at = datetime.fromisoformat(row.expires_at)
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return OtpChallenge(
        account_id=row.account_id,
        purpose=OtpPurpose(row.purpose),
        code=row.code,
        expires_at=expires_at,
        created_at=row.created_at,
    )
