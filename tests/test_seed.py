"""Unit tests for auth/seed.py -- idempotent admin bootstrap."""

import pytest
from conftest import accounts_with_email

from auth.models import ROLE_ADMIN, ROLE_CLIENT
from auth.seed import ensure_admin_account
from auth.store import AccountStore
from core.config import Settings


def _settings(**overrides) -> Settings:
    values = {
        "debug": True,
        "secret_key": "s" * 40,
        "admin_email": "boss@example.com",
        "admin_password": "bosspass123",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def store():
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


def test_seed_creates_verified_admin(store):
    admin = ensure_admin_account(store, _settings())
    assert admin.role == ROLE_ADMIN
    assert admin.is_verified is True
    assert store.verify_password(admin, "bosspass123")


def test_seed_is_idempotent(store):
    first = ensure_admin_account(store, _settings())
    second = ensure_admin_account(store, _settings())
    assert first.id == second.id
    assert accounts_with_email(store, "boss@example.com") == 1


def test_seed_promotes_existing_client(store):
    existing = store.create_account("Boss", "boss@example.com", "9000000099", "bosspass123")
    assert existing.role == ROLE_CLIENT
    admin = ensure_admin_account(store, _settings())
    assert admin.id == existing.id
    assert admin.role == ROLE_ADMIN


def test_seed_resyncs_password(store):
    ensure_admin_account(store, _settings())
    admin = ensure_admin_account(store, _settings(admin_password="rotated-pass"))
    assert store.verify_password(admin, "rotated-pass")
    assert not store.verify_password(admin, "bosspass123")


def test_seed_skipped_without_credentials(store):
    assert ensure_admin_account(store, _settings(admin_email="", admin_password="")) is None
    assert store.count_accounts() == 0


def test_quoted_admin_values_are_stripped():
    settings = _settings(admin_email=' "Boss@Example.com" ', admin_password='"bosspass123"')
    assert settings.admin_email == "boss@example.com"
    assert settings.admin_password == "bosspass123"


def test_seed_with_new_email_and_taken_phone_is_skipped(store, caplog):
    old = ensure_admin_account(store, _settings(admin_email="old@example.com"))
    with caplog.at_level("ERROR", logger="estatedesk.seed"):
        assert ensure_admin_account(store, _settings(admin_email="new@example.com")) is None
    assert "ADMIN_PHONE_NO" in caplog.text
    assert store.get_by_email("new@example.com") is None
    assert store.get_by_id(old.id).role == ROLE_ADMIN


def test_seed_never_promotes_phone_owner(store):
    client = store.create_account("Someone", "someone@example.com", "0000000000", "secret123")
    assert ensure_admin_account(store, _settings()) is None
    assert store.get_by_id(client.id).role == ROLE_CLIENT


def test_password_keeps_inner_quotes():
    settings = _settings(admin_password='"pa"ss"word"')
    assert settings.admin_password == 'pa"ss"word'
