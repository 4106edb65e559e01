"""
tests/conftest.py -- Shared test fixtures for EstateDesk integration tests.

This module provides:
  - RecordingMailer / RecordingMediaStore: in-process fakes for the two
    outbound dependencies, with switches to simulate provider failures
  - _make_test_stores(): creates isolated in-memory DBs for accounts + listings
  - _patch_lifespan(): wires test stores and fakes into app.state, bypassing real startup
  - api_env: module-scoped TestClient plus handles on the stores and fakes
  - signup_verified() / login(): helpers for building authenticated callers

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment variables must be set before any core/auth import, because
get_settings() is cached at first use and auth.tokens reads it at import.
"""

from __future__ import annotations

import os
import re
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set env before any auth/core import so get_settings() sees it.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ADMIN_EMAIL", "admin@estatedesk.test")
os.environ.setdefault("ADMIN_PASSWORD", "adminpass123")
os.environ.setdefault("EMAIL_BACKEND", "console")
os.environ.setdefault("MEDIA_BACKEND", "local")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.seed import ensure_admin_account
from auth.store import AccountStore
from core.config import get_settings
from listings.store import ListingStore
from media.storage import MediaStorageError, MediaStore
from notify.mailer import EmailSendError

ADMIN_EMAIL = os.environ["ADMIN_EMAIL"]
ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]

_CODE_RE = re.compile(r"\b(\d{6})\b")


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class RecordingMailer:
    """Mailer stand-in that keeps every message in memory."""

    backend = "recording"

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    def send(self, to_email: str, subject: str, body: str) -> None:
        if self.fail:
            raise EmailSendError("simulated provider outage")
        self.sent.append((to_email, subject, body))

    def last_code(self, to_email: str) -> str:
        """Return the six-digit code from the newest message sent to to_email."""
        for recipient, _subject, body in reversed(self.sent):
            if recipient == to_email:
                match = _CODE_RE.search(body)
                assert match, f"No code in message body: {body!r}"
                return match.group(1)
        raise AssertionError(f"No email sent to {to_email}")

    def close(self) -> None:
        pass


class RecordingMediaStore(MediaStore):
    """MediaStore that keeps objects in a dict keyed by URL."""

    name = "recording"

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_put = False
        self.fail_delete = False
        self._counter = 0

    def put(self, raw: bytes, content_type: str, key_hint: str) -> str:
        if self.fail_put:
            raise MediaStorageError("simulated upload failure")
        self._counter += 1
        url = f"https://media.test/{key_hint}/{self._counter}"
        self.objects[url] = raw
        return url

    def delete(self, url: str) -> None:
        if self.fail_delete:
            raise MediaStorageError("simulated delete failure")
        self.objects.pop(url, None)
        self.deleted.append(url)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[AccountStore, ListingStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    accounts_url = f"sqlite:///file:test_accounts_{db_suffix}?mode=memory&cache=shared&uri=true"
    listings_url = f"sqlite:///file:test_listings_{db_suffix}?mode=memory&cache=shared&uri=true"
    return AccountStore(db_url=accounts_url), ListingStore(db_url=listings_url)


def _patch_lifespan(env: "ApiEnv"):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = env.accounts
        app.state.listing_store = env.listings
        app.state.mailer = env.mailer
        app.state.media_store = env.media
        ensure_admin_account(env.accounts, get_settings())
        yield

    return test_lifespan


@dataclass
class ApiEnv:
    accounts: AccountStore
    listings: ListingStore
    mailer: RecordingMailer = field(default_factory=RecordingMailer)
    media: RecordingMediaStore = field(default_factory=RecordingMediaStore)
    client: TestClient | None = None


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_env(request) -> Generator[ApiEnv, None, None]:
    """Yield an ApiEnv whose client talks to the real app over isolated stores.

    The admin account is seeded from ADMIN_EMAIL / ADMIN_PASSWORD by the
    patched lifespan, exactly as the real startup does.
    """
    accounts, listings = _make_test_stores(request.module.__name__.rsplit(".", 1)[-1])
    env = ApiEnv(accounts=accounts, listings=listings)
    app.router.lifespan_context = _patch_lifespan(env)

    with TestClient(app, raise_server_exceptions=False) as client:
        env.client = client
        yield env

    listings.close()
    accounts.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def login(client: TestClient, email: str, password: str) -> str:
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


def admin_token(client: TestClient) -> str:
    return login(client, ADMIN_EMAIL, ADMIN_PASSWORD)


def signup_verified(env: ApiEnv, email: str, phone_no: str, password: str = "secret123") -> tuple[int, str]:
    """Sign up, verify the emailed code and log in. Returns (account_id, token)."""
    resp = env.client.post(
        "/api/v1/auth/signup",
        json={"fullName": "Test User", "email": email, "phoneNo": phone_no, "password": password},
    )
    assert resp.status_code == 201, resp.text
    account_id = resp.json()["userId"]
    code = env.mailer.last_code(email)
    resp = env.client.post("/api/v1/auth/verify-email-otp", json={"email": email, "otp": code})
    assert resp.status_code == 200, resp.text
    return account_id, login(env.client, email, password)


def accounts_with_email(store: AccountStore, email: str) -> int:
    """Number of stored accounts whose (normalized) email matches."""
    wanted = email.strip().lower()
    return sum(1 for account in store.list_accounts() if account.email == wanted)
