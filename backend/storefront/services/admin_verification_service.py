# Overview: Admin panel verification, the second factor in front of admin mutations.

"""
Admin panel verification

A signed-in admin is Authenticated(ADMIN) but not yet AdminPanelVerified.
To reach mutation endpoints the admin requests a token that is mailed to
the designated admin address and confirms it while signed in.

Verification does not expire on its own; it is cleared on sign-out and
when the inactivity monitor expires the working session, so every new
working session starts unverified.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import AdminAccessDeniedError, AttemptsExceededError, DeliveryFailedError, InvalidSecretError
from ..models import User
from . import activity_service, mail_service
from .activity_service import ActivityAction
from .auth_service import normalize_email
from .secret_service import SecretPurpose, discard_secret, issue_secret, verify_secret
from storefront.time_utils import utcnow


def is_designated_admin(user: User | None) -> bool:
    """ADMIN role AND the configured admin email. Role alone is not enough."""
    if user is None or not user.is_active or not user.is_admin:
        return False
    return normalize_email(user.email) == normalize_email(current_app.config["ADMIN_EMAIL"])


def is_verified(user: User) -> bool:
    return user.admin_panel_verified_at is not None


def request_verification(
    user: User,
    ip_address: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> datetime:
    """
    Issue and mail an admin panel token to the designated admin.

    Returns the token expiry. Raises AdminAccessDeniedError for anyone else,
    RateLimitedError inside the cooldown and DeliveryFailedError when the
    mail could not be sent (the token is discarded in that case).
    """
    if not is_designated_admin(user):
        raise AdminAccessDeniedError()

    issued = issue_secret(user, SecretPurpose.ADMIN_PANEL, now=now)
    try:
        mail_service.send_admin_access_email(user.email, issued.secret)
    except DeliveryFailedError:
        discard_secret(user, SecretPurpose.ADMIN_PANEL)
        raise

    activity_service.record_activity(
        user.id, ActivityAction.ADMIN_ACCESS_REQUESTED,
        ip_address=ip_address, user_agent=user_agent,
        details={"expires_at": issued.expires_at.isoformat()},
    )
    return issued.expires_at


def verify(
    user: User,
    token: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> User:
    """
    Consume the admin panel token of the signed-in designated admin.

    Failed attempts are recorded in the activity log before the error
    propagates.
    """
    if not is_designated_admin(user):
        raise AdminAccessDeniedError()

    try:
        verified = verify_secret(user.email, SecretPurpose.ADMIN_PANEL, token, now=now)
    except (InvalidSecretError, AttemptsExceededError) as exc:
        activity_service.record_activity(
            user.id, ActivityAction.FAILED_ADMIN_VERIFICATION,
            ip_address=ip_address, user_agent=user_agent,
            details={"reason": exc.message},
        )
        raise

    verified.admin_panel_verified_at = utcnow()
    db.session.commit()

    activity_service.record_activity(
        verified.id, ActivityAction.ADMIN_PANEL_VERIFIED,
        ip_address=ip_address, user_agent=user_agent,
    )
    return verified


def clear_verification(
    user: User,
    reason: str = "sign_out",
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> bool:
    """
    Drop AdminPanelVerified state and any pending admin panel token.

    Returns True if the user was an admin (state cleared), False otherwise.
    """
    if not user.is_admin:
        return False

    user.admin_panel_verified_at = None
    user.admin_panel_verify_token = None
    user.admin_panel_verify_expires_at = None
    user.admin_panel_verify_attempt_count = 0
    try:
        db.session.commit()
    except Exception:
        # Leave the session usable for the caller's own cleanup
        db.session.rollback()
        raise

    activity_service.record_activity(
        user.id, ActivityAction.ADMIN_VERIFICATION_CLEARED,
        ip_address=ip_address, user_agent=user_agent,
        details={"reason": reason},
    )
    return True
