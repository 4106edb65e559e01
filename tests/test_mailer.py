"""Unit tests for notify/mailer.py -- backend selection and failure reporting.

Covers:
- "auto" resolves to resend, smtp, console or unconfigured in that order
- unconfigured and invalid-recipient sends raise EmailSendError
- resend: JSON payload with bearer key; non-2xx becomes EmailSendError
- smtp: retried up to EMAIL_MAX_ATTEMPTS, then EmailSendError
- send_otp_email() puts the code and lifetime in the body
"""

import smtplib
from unittest.mock import MagicMock, patch

import pytest
import requests

from core.config import Settings
from notify.mailer import EmailSendError, Mailer, send_otp_email


def _settings(**overrides) -> Settings:
    values = {"debug": False, "secret_key": "s" * 40, "email_backend": "auto"}
    values.update(overrides)
    return Settings(**values)


@pytest.mark.parametrize(
    "overrides, expected",
    [
        ({"resend_api_key": "re_123", "smtp_host": "smtp.example.com"}, "resend"),
        ({"smtp_host": "smtp.example.com"}, "smtp"),
        ({"debug": True}, "console"),
        ({}, "unconfigured"),
        ({"email_backend": "SMTP"}, "smtp"),
    ],
)
def test_backend_resolution(overrides, expected):
    assert Mailer(_settings(**overrides)).backend == expected


def test_unconfigured_raises():
    with pytest.raises(EmailSendError, match="not configured"):
        Mailer(_settings()).send("a@example.com", "Subject", "Body")


def test_invalid_recipient_raises():
    with pytest.raises(EmailSendError, match="Invalid recipient"):
        Mailer(_settings(debug=True)).send("not-an-email", "Subject", "Body")


def test_console_backend_logs(caplog):
    mailer = Mailer(_settings(email_backend="console"))
    with caplog.at_level("WARNING", logger="estatedesk.mailer"):
        mailer.send("a@example.com", "Hello", "Body text")
    assert "a@example.com" in caplog.text


def test_resend_posts_payload():
    mailer = Mailer(_settings(resend_api_key="re_123", email_from="noreply@example.com"))
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=200, text="{}")
    mailer._session = session

    mailer.send("a@example.com", "Hello", "Body text")

    _url, kwargs = session.post.call_args
    assert kwargs["headers"]["Authorization"] == "Bearer re_123"
    assert kwargs["json"]["to"] == ["a@example.com"]
    assert kwargs["json"]["subject"] == "Hello"
    assert kwargs["json"]["text"] == "Body text"


def test_resend_http_error_raises():
    mailer = Mailer(_settings(resend_api_key="re_123"))
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=500, text="boom")
    mailer._session = session
    with pytest.raises(EmailSendError, match="HTTP 500"):
        mailer.send("a@example.com", "Hello", "Body")


def test_resend_connection_error_raises():
    mailer = Mailer(_settings(resend_api_key="re_123"))
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("refused")
    mailer._session = session
    with pytest.raises(EmailSendError, match="request failed"):
        mailer.send("a@example.com", "Hello", "Body")


def test_smtp_retries_then_fails():
    mailer = Mailer(_settings(smtp_host="smtp.example.com", email_max_attempts=3))
    with patch("notify.mailer.smtplib.SMTP", side_effect=OSError("unreachable")) as smtp, patch(
        "notify.mailer.time.sleep"
    ) as sleep:
        with pytest.raises(EmailSendError, match="after 3 attempts"):
            mailer.send("a@example.com", "Hello", "Body")
    assert smtp.call_count == 3
    assert sleep.call_count == 2


def test_smtp_succeeds_after_transient_failure():
    mailer = Mailer(_settings(smtp_host="smtp.example.com", smtp_user="u", smtp_pass="p"))
    connection = MagicMock()
    connection.__enter__.return_value = connection
    connection.has_extn.return_value = True
    with patch(
        "notify.mailer.smtplib.SMTP",
        side_effect=[smtplib.SMTPServerDisconnected("bye"), connection],
    ), patch("notify.mailer.time.sleep"):
        mailer.send("a@example.com", "Hello", "Body")
    connection.starttls.assert_called_once()
    connection.login.assert_called_once_with("u", "p")
    connection.send_message.assert_called_once()


def test_send_otp_email_body():
    mailer = MagicMock()
    send_otp_email(mailer, "a@example.com", "482913", "password_reset", 5)
    to_email, subject, body = mailer.send.call_args.args
    assert to_email == "a@example.com"
    assert subject == "Password reset OTP"
    assert "482913" in body
    assert "5 minutes" in body
