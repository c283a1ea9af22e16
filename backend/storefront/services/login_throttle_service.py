
"""
Admin Login Throttling Service

Brute-force protection for the admin account. Failed password attempts
against an ADMIN account are counted on the account; after
MAX_FAILED_ATTEMPTS the account is locked for LOCKOUT_DURATION.

Every attempt is also appended to the admin activity log
(LOGIN_SUCCESS / FAILED_LOGIN_ATTEMPT) for later anomaly review.
Customer accounts are not throttled here.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from ..extensions import db
from ..models import User
from . import activity_service
from storefront.time_utils import as_naive_utc, utcnow


# Configuration constants
MAX_FAILED_ATTEMPTS = 5  # Lock after 5 failed attempts
LOCKOUT_DURATION = timedelta(minutes=30)  # Lockout for 30 minutes


def is_account_locked(user: User, now: datetime | None = None) -> tuple[bool, int | None]:
    """
    Check if an admin account is currently locked.

    An expired lock is cleared (counter reset) as a side effect.

    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    locked_until = as_naive_utc(user.admin_login_locked_until)
    if locked_until is None:
        return False, None

    moment = now or utcnow()
    if moment < locked_until:
        return True, max(1, math.ceil((locked_until - moment).total_seconds()))

    user.admin_login_locked_until = None
    user.admin_login_attempts = 0
    db.session.commit()
    return False, None


def record_failed_attempt(
    user: User,
    ip_address: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> int:
    """
    Record a failed admin login attempt.

    Returns the consecutive failure count (including this one).
    """
    moment = now or utcnow()
    attempts = (user.admin_login_attempts or 0) + 1
    locked = attempts >= MAX_FAILED_ATTEMPTS

    user.admin_login_attempts = attempts
    user.admin_login_locked_until = moment + LOCKOUT_DURATION if locked else None
    user.last_admin_login_ip = ip_address
    db.session.commit()

    activity_service.record_failed_login(
        user.id, ip_address, user_agent,
        details={"attempts": attempts, "locked": locked},
    )
    return attempts


def record_successful_login(
    user: User,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """Reset the failure counter and log the successful admin login."""
    user.admin_login_attempts = 0
    user.admin_login_locked_until = None
    user.last_admin_login_at = utcnow()
    user.last_admin_login_ip = ip_address
    db.session.commit()

    activity_service.record_successful_login(user.id, ip_address, user_agent)


def get_lockout_status(user: User) -> dict:
    """
    Get detailed lockout status for an admin account.

    Returns dict with:
    - locked: bool
    - failed_attempts: int
    - max_attempts: int
    - seconds_until_unlock: int | None
    """
    is_locked, seconds_remaining = is_account_locked(user)

    return {
        "locked": is_locked,
        "failed_attempts": user.admin_login_attempts or 0,
        "max_attempts": MAX_FAILED_ATTEMPTS,
        "seconds_until_unlock": seconds_remaining,
        "lockout_duration_minutes": int(LOCKOUT_DURATION.total_seconds() / 60),
    }
