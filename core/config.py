"""
core/config.py -- EstateDesk settings, read once from the environment / .env.

Every tunable lives on Settings: database URL, token and OTP lifetimes, the
seeded admin identity, email and media backends, and the HTTP surface (hosts,
CORS origins, rate limits). Other modules call get_settings() and never read
os.environ themselves.

get_settings() is lru_cached, so the first call fixes the configuration for the
life of the process. Tests set environment variables before the first import.

Secret handling:
  [M6] SECRET_KEY must be at least 32 characters; it signs every bearer token.
  [M7] With DEBUG off a missing SECRET_KEY stops startup. With DEBUG on a
       random key is generated and tokens die with the process.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
listings/, media/, or notify/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("estatedesk.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'estatedesk.db'}"


class Settings(BaseSettings):
    """EstateDesk configuration. Every field has a default except the secret in production."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # 30 days. Tokens are stateless and cannot be revoked before this.
    token_expire_seconds: int = 30 * 24 * 3600
    otp_expire_minutes: int = 5

    # Admin identity guaranteed by auth.seed.ensure_admin_account() at startup.
    # Both empty means no admin is seeded.
    admin_email: str = ""
    admin_password: str = ""
    admin_full_name: str = "Admin User"
    admin_phone_no: str = "0000000000"

    # ------------------------------------------------------------------
    # Email delivery
    # ------------------------------------------------------------------

    # "auto" | "resend" | "smtp" | "console"
    email_backend: str = "auto"
    email_from: str = "noreply@estatedesk.local"
    email_sender_name: str = "EstateDesk"
    email_max_attempts: int = 3
    resend_api_key: str = ""
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""

    # ------------------------------------------------------------------
    # Media storage
    # ------------------------------------------------------------------

    # "local" | "cloudinary"
    media_backend: str = "local"
    media_root: str = "./media"
    media_base_url: str = "/media"
    media_max_bytes: int = 10 * 1024 * 1024
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    cloudinary_folder: str = "estatedesk"

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    otp_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("admin_email", "admin_password", mode="before")
    @classmethod
    def strip_quotes(cls, value: str) -> str:
        """Drop surrounding whitespace and surrounding double quotes.

        Several hosting dashboards store quoted values verbatim, which would
        otherwise make the admin login silently fail.
        """
        if isinstance(value, str):
            return value.strip().strip('"')
        return value

    @field_validator("admin_email")
    @classmethod
    def lower_admin_email(cls, value: str) -> str:
        return value.lower()

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Generate a throwaway key in debug mode, otherwise require one [M6, M7]."""
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Cached Settings instance. Call get_settings.cache_clear() to re-read the environment."""
    return Settings()
