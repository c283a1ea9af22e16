# Overview: Outbound email; SMTP transport plus the templates for each auth flow.

"""
Mail transport boundary.

send_email() either delivers or raises DeliveryFailedError. There is no
"pretend it was sent" path: an unconfigured transport fails closed, and
callers only report a secret as issued once delivery succeeded.

Tests (or alternative deployments) inject any object exposing
send(to, subject, html) through app.config["MAIL_TRANSPORT"].
"""

from __future__ import annotations

import smtplib
from email.mime.text import MIMEText
from urllib.parse import urlencode

from flask import current_app

from ..errors import DeliveryFailedError


class SmtpTransport:
    """SMTP delivery with a bounded socket timeout."""

    def __init__(self, host: str, port: int, user: str, password: str, sender: str, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "SmtpTransport":
        host = config.get("SMTP_HOST")
        user = config.get("SMTP_USER")
        password = config.get("SMTP_PASS")
        if not host or not user or not password:
            raise DeliveryFailedError(reason="SMTP is not configured (SMTP_HOST, SMTP_USER, SMTP_PASS)")
        return cls(
            host=host,
            port=int(config.get("SMTP_PORT") or 587),
            user=user,
            password=password,
            sender=config.get("EMAIL_FROM") or user,
            timeout=float(config.get("MAIL_TIMEOUT_SECONDS") or 10.0),
        )

    def send(self, to: str, subject: str, html: str) -> None:
        msg = MIMEText(html, "html", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to

        try:
            if self.port == 465:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as server:
                    server.login(self.user, self.password)
                    server.sendmail(self.sender, [to], msg.as_string())
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.starttls()
                    server.login(self.user, self.password)
                    server.sendmail(self.sender, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryFailedError(reason=f"{type(exc).__name__}: {exc}") from exc


def _get_transport():
    injected = current_app.config.get("MAIL_TRANSPORT")
    if injected is not None:
        return injected
    return SmtpTransport.from_config(current_app.config)


def send_email(to: str, subject: str, html: str) -> None:
    """
    Deliver one message.

    Raises DeliveryFailedError on any transport failure (including a
    transport that is not configured). The reason is logged, not returned.
    """
    try:
        transport = _get_transport()
        transport.send(to, subject, html)
    except DeliveryFailedError as exc:
        current_app.logger.warning("Email delivery to %s failed: %s", to, exc.reason)
        raise
    except Exception as exc:
        current_app.logger.exception("Email delivery to %s failed", to)
        raise DeliveryFailedError(reason=str(exc)) from exc

    current_app.logger.info("Email sent to %s: %s", to, subject)


# =============================================================================
# TEMPLATES
# =============================================================================

def build_link(path: str, **params) -> str:
    base = current_app.config["APP_BASE_URL"].rstrip("/")
    return f"{base}{path}?{urlencode(params)}"


def _wrap(title: str, body: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        f"<h2>{title}</h2>{body}"
        '<p style="color: #666; font-size: 12px; margin-top: 30px;">'
        "If you did not request this, please ignore this email.</p></div>"
    )


def send_verification_email(email: str, token: str) -> None:
    link = build_link("/auth/verify-email", token=token, email=email)
    send_email(
        email,
        "Verify your email",
        _wrap("Verify your email", f'<p><a href="{link}">Verify Email Address</a></p>'
                                   "<p>This link expires in 24 hours.</p>"),
    )


def send_login_otp_email(email: str, code: str) -> None:
    send_email(
        email,
        "Your login code",
        _wrap("Login Code", f'<h1 style="letter-spacing: 5px; text-align: center;">{code}</h1>'
                            "<p>This code expires in 10 minutes.</p>"),
    )


def send_password_reset_email(email: str, token: str) -> None:
    link = build_link("/auth/reset-password", token=token, email=email)
    send_email(
        email,
        "Reset your password",
        _wrap("Reset your password", f'<p><a href="{link}">Reset Password</a></p>'
                                     "<p><strong>This link expires in 1 hour.</strong></p>"),
    )


def send_admin_access_email(email: str, token: str) -> None:
    link = build_link("/admin/verify-access", token=token, email=email)
    send_email(
        email,
        "Admin panel access verification",
        _wrap("Admin panel access", f'<p><a href="{link}">Verify Admin Access</a></p>'
                                    "<p>This link expires in 30 minutes.</p>"),
    )
