from __future__ import annotations

import html
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional, Protocol
from urllib.parse import urlencode

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised by a sender when the message could not be handed to the mail server."""


class NotificationSender(Protocol):
    def send_verification_email(self, to: str, name: str, token: str) -> None: ...

    def send_password_reset_email(self, to: str, name: str, token: str) -> None: ...


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if not email or "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def _link(frontend_url: str, path: str, token: str) -> str:
    return f"{frontend_url.rstrip('/')}/{path}?{urlencode({'token': token})}"


def verification_message(frontend_url: str, name: str, token: str) -> tuple[str, str, str]:
    """(subject, text body, html body) for the email verification message."""
    url = _link(frontend_url, "verify-email", token)
    subject = "Verify Your Email Address"
    text = (
        f"Welcome, {name}!\n\n"
        "Thank you for signing up. Please verify your email address by opening the link below:\n"
        f"{url}\n\n"
        "This link will expire in 24 hours.\n"
        "If you didn't create an account, please ignore this email.\n"
    )
    safe_url = html.escape(url, quote=True)
    body = f"""
<html>
<body>
    <h2>Welcome, {html.escape(name)}!</h2>
    <p>Thank you for signing up. Please verify your email address by clicking the link below:</p>
    <p><a href="{safe_url}">Verify Email</a></p>
    <p>Or copy and paste this link into your browser:</p>
    <p>{safe_url}</p>
    <p>This link will expire in 24 hours.</p>
    <p>If you didn't create an account, please ignore this email.</p>
</body>
</html>
"""
    return subject, text, body


def password_reset_message(frontend_url: str, name: str, token: str) -> tuple[str, str, str]:
    """(subject, text body, html body) for the password reset message."""
    url = _link(frontend_url, "reset-password", token)
    subject = "Reset Your Password"
    text = (
        f"Hi {name},\n\n"
        "We received a request to reset your password. Open the link below to reset it:\n"
        f"{url}\n\n"
        "This link will expire in 1 hour.\n"
        "If you didn't request a password reset, please ignore this email.\n"
    )
    safe_url = html.escape(url, quote=True)
    body = f"""
<html>
<body>
    <h2>Password Reset Request</h2>
    <p>Hi {html.escape(name)},</p>
    <p>We received a request to reset your password. Click the link below to reset it:</p>
    <p><a href="{safe_url}">Reset Password</a></p>
    <p>Or copy and paste this link into your browser:</p>
    <p>{safe_url}</p>
    <p>This link will expire in 1 hour.</p>
    <p>If you didn't request a password reset, please ignore this email or contact support if you have concerns.</p>
</body>
</html>
"""
    return subject, text, body


class SMTPEmailSender:
    """
    Sends transactional email over SMTP (STARTTLS, or implicit TLS when
    use_tls is False and the port speaks SSL). Raises EmailDeliveryError.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        from_email: str,
        from_name: str = "User Accounts",
        frontend_url: str = "http://localhost:3000",
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email
        self.from_name = from_name
        self.frontend_url = frontend_url
        self.timeout = timeout

    def send_verification_email(self, to: str, name: str, token: str) -> None:
        subject, text, body = verification_message(self.frontend_url, name, token)
        self._send(to, subject, text, body)

    def send_password_reset_email(self, to: str, name: str, token: str) -> None:
        subject, text, body = password_reset_message(self.frontend_url, name, token)
        self._send(to, subject, text, body)

    def _build(self, to: str, subject: str, text: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to
        msg.set_content(text)
        msg.add_alternative(body, subtype="html")
        return msg

    def _send(self, to: str, subject: str, text: str, body: str) -> None:
        msg = self._build(to, subject, text, body)
        context = ssl.create_default_context()
        try:
            if self.use_tls:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    if self.username and self.password:
                        server.login(self.username, self.password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout) as server:
                    if self.username and self.password:
                        server.login(self.username, self.password)
                    server.send_message(msg)
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error("Failed to send %r to %s via %s:%s: %s", subject, redact_email(to), self.host, self.port, exc)
            raise EmailDeliveryError(f"failed to send email: {exc}") from exc
        logger.info("Sent %r to %s", subject, redact_email(to))


class LoggingEmailSender:
    """Development sender: logs the link instead of sending anything."""

    def __init__(self, frontend_url: str = "http://localhost:3000"):
        self.frontend_url = frontend_url

    def send_verification_email(self, to: str, name: str, token: str) -> None:
        logger.info("[DEV EMAIL] verification for %s: %s", redact_email(to), _link(self.frontend_url, "verify-email", token))

    def send_password_reset_email(self, to: str, name: str, token: str) -> None:
        logger.info("[DEV EMAIL] password reset for %s: %s", redact_email(to), _link(self.frontend_url, "reset-password", token))
