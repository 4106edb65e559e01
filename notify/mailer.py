"""
notify/mailer.py -- Notification dispatcher for transactional email.

Backends (EMAIL_BACKEND):
  console  -- log the message instead of sending it. Local development only.
  resend   -- Resend HTTP API through a requests.Session whose adapter carries
              a urllib3 Retry policy (connection errors, 429 and 5xx).
  smtp     -- smtplib with STARTTLS on 587 or implicit TLS on 465, retried up
              to EMAIL_MAX_ATTEMPTS times.
  auto     -- resend when RESEND_API_KEY is set, else smtp when SMTP_HOST is
              set, else console when DEBUG is on, else a hard failure.

Every failure surfaces as EmailSendError. The mailer never decides what the
HTTP caller sees; auth routes translate EmailSendError into DependencyFailure.

Security:
  OTP codes appear in log output only through the console backend.

Layer rule: no imports from api/, auth/, listings/, or media/.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
import time
from email.message import EmailMessage

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from core.config import Settings, get_settings

logger = logging.getLogger("estatedesk.mailer")

_RESEND_URL = "https://api.resend.com/emails"
_TIMEOUT_SECONDS = 15
_SMTP_BACKOFF_SECONDS = 1.0

_PURPOSE_LABELS = {
    "email_verify": "Email verification",
    "password_reset": "Password reset",
}


class EmailSendError(RuntimeError):
    pass


def _retrying_session(max_attempts: int) -> requests.Session:
    """Session that retries idempotent-safe failures with exponential backoff.

    POST is listed explicitly: urllib3 skips non-idempotent methods otherwise.
    Resend deduplicates nothing on our behalf, so retries are limited to
    connection failures and responses that mean "not processed".
    """
    retry = Retry(
        total=max(max_attempts - 1, 0),
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"POST"}),
        raise_on_status=False,
    )
    session = requests.Session()
    session.mount("https://", HTTPAdapter(max_retries=retry))
    return session


class Mailer:
    """Send plain-text email through the configured backend.

    Usage:
        mailer = Mailer()
        mailer.send("a@b.com", "Subject", "Body")   # raises EmailSendError
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._session: requests.Session | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def backend(self) -> str:
        """Resolve "auto" into a concrete backend name."""
        backend = (self.settings.email_backend or "auto").strip().lower()
        if backend != "auto":
            return backend
        if self.settings.resend_api_key:
            return "resend"
        if self.settings.smtp_host:
            return "smtp"
        if self.settings.debug:
            return "console"
        return "unconfigured"

    def send(self, to_email: str, subject: str, body: str) -> None:
        to_email = (to_email or "").strip()
        if not to_email or "@" not in to_email:
            raise EmailSendError("Invalid recipient email")

        backend = self.backend
        if backend in ("console", "log"):
            self._send_console(to_email, subject, body)
        elif backend == "resend":
            self._send_resend(to_email, subject, body)
        elif backend == "smtp":
            self._send_smtp(to_email, subject, body)
        elif backend == "unconfigured":
            raise EmailSendError(
                "Email provider not configured. Set RESEND_API_KEY (Resend) or SMTP_HOST (SMTP), "
                "or EMAIL_BACKEND=console for local development."
            )
        else:
            raise EmailSendError(f"Unknown EMAIL_BACKEND: {backend!r}")
        logger.info("Email sent backend=%s to=%s subject=%r", backend, to_email, subject)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Backends
    # ------------------------------------------------------------------

    def _send_console(self, to_email: str, subject: str, body: str) -> None:
        logger.warning("EMAIL_BACKEND=console: to=%s subject=%s\n%s", to_email, subject, body)

    def _send_resend(self, to_email: str, subject: str, body: str) -> None:
        key = self.settings.resend_api_key
        if not key:
            raise EmailSendError("RESEND_API_KEY not configured")
        if self._session is None:
            self._session = _retrying_session(self.settings.email_max_attempts)

        payload = {
            "from": f"{self.settings.email_sender_name} <{self.settings.email_from}>",
            "to": [to_email],
            "subject": subject,
            "text": body,
        }
        try:
            resp = self._session.post(
                _RESEND_URL,
                json=payload,
                headers={"Authorization": f"Bearer {key}"},
                timeout=_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            raise EmailSendError(f"Resend request failed: {exc}") from exc
        if not (200 <= resp.status_code < 300):
            raise EmailSendError(f"Resend send failed: HTTP {resp.status_code}: {resp.text[:500]}")

    def _send_smtp(self, to_email: str, subject: str, body: str) -> None:
        if not self.settings.smtp_host:
            raise EmailSendError("SMTP_HOST not configured")

        msg = EmailMessage()
        msg["From"] = f"{self.settings.email_sender_name} <{self.settings.email_from}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)

        attempts = max(self.settings.email_max_attempts, 1)
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                self._smtp_deliver(msg)
                return
            except (smtplib.SMTPException, OSError) as exc:
                last_error = exc
                logger.warning("SMTP attempt %d/%d failed: %s", attempt, attempts, exc)
                if attempt < attempts:
                    time.sleep(_SMTP_BACKOFF_SECONDS * attempt)
        raise EmailSendError(f"SMTP send failed after {attempts} attempts: {last_error}")

    def _smtp_deliver(self, msg: EmailMessage) -> None:
        host = self.settings.smtp_host
        port = self.settings.smtp_port
        user = self.settings.smtp_user
        password = self.settings.smtp_pass
        context = ssl.create_default_context()

        if port == 465:
            with smtplib.SMTP_SSL(host, port, timeout=_TIMEOUT_SECONDS, context=context) as s:
                if user and password:
                    s.login(user, password)
                s.send_message(msg)
            return

        with smtplib.SMTP(host, port, timeout=_TIMEOUT_SECONDS) as s:
            s.ehlo()
            if s.has_extn("starttls"):
                s.starttls(context=context)
                s.ehlo()
            if user and password:
                s.login(user, password)
            s.send_message(msg)


def send_otp_email(mailer: Mailer, to_email: str, code: str, purpose: str, minutes: int) -> None:
    """Compose and send the OTP message for an email-verification or reset code."""
    label = _PURPOSE_LABELS.get(str(getattr(purpose, "value", purpose)), "Verification")
    subject = f"{label} OTP"
    body = (
        f"Your {label.lower()} code is: {code}\n\n"
        f"This code expires in {minutes} minutes.\n\n"
        "If you did not request this, you can ignore this email."
    )
    mailer.send(to_email, subject, body)
