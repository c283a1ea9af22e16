# Overview: Customer-facing secret flows: email verification, login OTP, password reset.

"""
Each request_* function issues a secret and delivers it by email. A secret
counts as issued only once delivery succeeded: on DeliveryFailedError the
pending secret is discarded (and its cooldown released) before the error
propagates to the route.

Requests for unknown (or not yet eligible) emails return quietly so the
endpoints cannot be used to enumerate accounts.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import DeliveryFailedError, NoPendingRequestError
from ..models import User
from . import admin_verification_service, auth_service, mail_service, session_service
from .secret_service import SecretPurpose, discard_secret, issue_secret, check_secret, verify_secret
from storefront.time_utils import utcnow


def _issue_and_deliver(user: User, purpose: SecretPurpose, deliver, now: datetime | None = None) -> datetime:
    issued = issue_secret(user, purpose, now=now)
    try:
        deliver(user.email, issued.secret)
    except DeliveryFailedError:
        discard_secret(user, purpose)
        raise
    current_app.logger.info("Issued %s secret for user %s", purpose.value, user.id)
    return issued.expires_at


# =============================================================================
# EMAIL VERIFICATION
# =============================================================================

def send_email_verification(user: User, now: datetime | None = None) -> datetime:
    """Issue and mail a verification link. Returns its expiry."""
    return _issue_and_deliver(user, SecretPurpose.EMAIL_VERIFICATION, mail_service.send_verification_email, now)


def resend_email_verification(email: str, now: datetime | None = None) -> bool:
    """
    Re-send the verification link.

    Returns True if a link was sent, False when there is nothing to send
    (unknown email or already verified).
    """
    user = auth_service.get_user_by_email(email)
    if not user or user.email_verified_at:
        return False
    send_email_verification(user, now=now)
    return True


def confirm_email(email: str, token: str, now: datetime | None = None) -> User:
    """Consume the verification token and mark the email verified."""
    user = verify_secret(email, SecretPurpose.EMAIL_VERIFICATION, token, now=now)
    user.email_verified_at = utcnow()
    db.session.commit()
    return user


# =============================================================================
# LOGIN OTP
# =============================================================================

def request_login_otp(email: str, now: datetime | None = None) -> bool:
    """
    Mail a 6-digit login code to a verified, active account.

    Returns False without sending for unknown, inactive or unverified accounts.
    Raises RateLimitedError within 30 seconds of the previous code and
    DeliveryFailedError if the mail could not be sent.
    """
    user = auth_service.get_user_by_email(email)
    if not user or not user.is_active or not user.email_verified_at:
        return False
    _issue_and_deliver(user, SecretPurpose.LOGIN_OTP, mail_service.send_login_otp_email, now)
    return True


def login_with_otp(email: str, code: str, now: datetime | None = None) -> User:
    """Consume the login code. The caller opens the session."""
    user = verify_secret(email, SecretPurpose.LOGIN_OTP, code, now=now)
    if not user.is_active or not user.email_verified_at:
        raise NoPendingRequestError()
    user.last_login_at = utcnow()
    db.session.commit()
    return user


# =============================================================================
# PASSWORD RESET
# =============================================================================

def request_password_reset(email: str, now: datetime | None = None) -> bool:
    """Mail a reset link if the account exists. Returns whether one was sent."""
    user = auth_service.get_user_by_email(email)
    if not user or not user.is_active:
        return False
    _issue_and_deliver(user, SecretPurpose.PASSWORD_RESET, mail_service.send_password_reset_email, now)
    return True


def check_reset_token(email: str, token: str, now: datetime | None = None) -> User:
    """Non-consuming check used before showing the new-password form."""
    return check_secret(email, SecretPurpose.PASSWORD_RESET, token, now=now)


def reset_password(email: str, token: str, new_password: str, now: datetime | None = None) -> User:
    """
    Consume the reset token and set the new password.

    Password strength is validated first so a rejected password does not
    burn the token. All existing sessions are revoked, and an admin's panel
    verification is cleared so the next session starts unverified.
    """
    auth_service.validate_password_strength(new_password)
    user = verify_secret(email, SecretPurpose.PASSWORD_RESET, token, now=now)
    auth_service.set_password(user, new_password)
    session_service.revoke_all_user_sessions(user.id, reason="Password reset")
    if user.is_admin:
        admin_verification_service.clear_verification(user, reason="password_reset")
    return user
