# Overview: Service-layer operations for one-time secrets; issues, checks and consumes codes and tokens.

"""
One-Time Secret issuance and verification

Four independent secret slots live on the User row, all with the same
shape (hash, expiry, attempt counter, last-sent time):

- EMAIL_VERIFICATION: 64-hex link token, valid 24 hours
- LOGIN_OTP:          6-digit numeric code, valid 10 minutes
- PASSWORD_RESET:     64-hex link token, valid 1 hour
- ADMIN_PANEL:        64-hex link token, valid 30 minutes

SECURITY FEATURES:
- Secrets generated with the `secrets` CSPRNG
- Only a bcrypt hash (cost 12) is stored, never the plaintext
- A secret is valid only while now < expires_at
- Single use: a successful verification clears hash and expiry with a
  conditional UPDATE keyed on the hash that was checked, so at most one
  concurrent verification can consume it
- 30 second cooldown between issuances of the same purpose
- 5 invalid attempts burn the pending secret
- Issuing a new secret overwrites (invalidates) the previous one
"""

from __future__ import annotations

import bcrypt
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from ..extensions import db
from ..errors import (
    AccountNotFoundError,
    AttemptsExceededError,
    InvalidSecretError,
    NoPendingRequestError,
    RateLimitedError,
    SecretExpiredError,
)
from ..models import User
from .auth_service import BCRYPT_ROUNDS, get_user_by_email
from storefront.time_utils import as_naive_utc, utcnow


# Configuration constants
ISSUE_COOLDOWN = timedelta(seconds=30)
MAX_SECRET_ATTEMPTS = 5
OTP_DIGITS = 6


class SecretPurpose(str, Enum):
    EMAIL_VERIFICATION = "email_verification"
    LOGIN_OTP = "login_otp"
    PASSWORD_RESET = "password_reset"
    ADMIN_PANEL = "admin_panel"


@dataclass(frozen=True)
class SecretPolicy:
    """Column mapping and lifetime for one secret slot."""
    hash_field: str
    expires_field: str
    attempts_field: str
    sent_field: str
    ttl: timedelta
    numeric: bool
    label: str


POLICIES: dict[SecretPurpose, SecretPolicy] = {
    SecretPurpose.EMAIL_VERIFICATION: SecretPolicy(
        hash_field="verify_token_hash",
        expires_field="verify_token_expires_at",
        attempts_field="verify_token_attempt_count",
        sent_field="verify_token_sent_at",
        ttl=timedelta(hours=24),
        numeric=False,
        label="Verification link",
    ),
    SecretPurpose.LOGIN_OTP: SecretPolicy(
        hash_field="login_otp_hash",
        expires_field="login_otp_expires_at",
        attempts_field="login_otp_attempt_count",
        sent_field="login_otp_sent_at",
        ttl=timedelta(minutes=10),
        numeric=True,
        label="Code",
    ),
    SecretPurpose.PASSWORD_RESET: SecretPolicy(
        hash_field="reset_token_hash",
        expires_field="reset_token_expires_at",
        attempts_field="reset_token_attempt_count",
        sent_field="reset_token_sent_at",
        ttl=timedelta(hours=1),
        numeric=False,
        label="Reset link",
    ),
    SecretPurpose.ADMIN_PANEL: SecretPolicy(
        hash_field="admin_panel_verify_token",
        expires_field="admin_panel_verify_expires_at",
        attempts_field="admin_panel_verify_attempt_count",
        sent_field="admin_panel_verify_sent_at",
        ttl=timedelta(minutes=30),
        numeric=False,
        label="Verification token",
    ),
}


@dataclass(frozen=True)
class IssuedSecret:
    """Plaintext secret handed to the delivery step. Never persisted."""
    purpose: SecretPurpose
    secret: str
    expires_at: datetime


def generate_otp_code() -> str:
    """Uniform 6-digit code, leading zeros allowed."""
    return f"{secrets.randbelow(10 ** OTP_DIGITS):0{OTP_DIGITS}d}"


def generate_link_token() -> str:
    """64 hex characters (32 bytes of entropy); fits under bcrypt's 72-byte limit."""
    return secrets.token_hex(32)


def hash_secret(secret: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(secret.encode('utf-8'), salt).decode('utf-8')


def secret_matches(presented: str | None, secret_hash: str) -> bool:
    if not presented:
        return False
    try:
        return bcrypt.checkpw(presented.encode('utf-8'), secret_hash.encode('utf-8'))
    except ValueError:
        # Oversized input or malformed stored hash
        return False


def issue_secret(user: User, purpose: SecretPurpose, now: datetime | None = None) -> IssuedSecret:
    """
    Generate a new secret for `purpose`, store its hash and expiry on the user.

    Raises RateLimitedError if the previous secret of the same purpose was
    sent less than ISSUE_COOLDOWN ago. The cooldown check is read-then-write;
    a double send under concurrent requests is tolerated.
    """
    policy = POLICIES[purpose]
    moment = now or utcnow()

    last_sent = as_naive_utc(getattr(user, policy.sent_field))
    if last_sent is not None and moment - last_sent < ISSUE_COOLDOWN:
        wait = ISSUE_COOLDOWN - (moment - last_sent)
        raise RateLimitedError(retry_after_seconds=max(1, math.ceil(wait.total_seconds())))

    secret = generate_otp_code() if policy.numeric else generate_link_token()
    expires_at = moment + policy.ttl

    setattr(user, policy.hash_field, hash_secret(secret))
    setattr(user, policy.expires_field, expires_at)
    setattr(user, policy.attempts_field, 0)
    setattr(user, policy.sent_field, moment)
    db.session.commit()

    return IssuedSecret(purpose=purpose, secret=secret, expires_at=expires_at)


def discard_secret(user: User, purpose: SecretPurpose) -> None:
    """
    Drop a pending secret that was never delivered.

    Also clears the cooldown: an undelivered secret does not count as sent.
    """
    policy = POLICIES[purpose]
    setattr(user, policy.hash_field, None)
    setattr(user, policy.expires_field, None)
    setattr(user, policy.attempts_field, 0)
    setattr(user, policy.sent_field, None)
    db.session.commit()


def has_pending_secret(user: User, purpose: SecretPurpose) -> bool:
    policy = POLICIES[purpose]
    return bool(getattr(user, policy.hash_field)) and getattr(user, policy.expires_field) is not None


def _load_pending(email: str, purpose: SecretPurpose, moment: datetime) -> tuple[User, str]:
    policy = POLICIES[purpose]

    user = get_user_by_email(email)
    if not user:
        raise AccountNotFoundError()

    stored_hash = getattr(user, policy.hash_field)
    expires_at = as_naive_utc(getattr(user, policy.expires_field))
    if not stored_hash or expires_at is None:
        raise NoPendingRequestError()

    if moment >= expires_at:
        raise SecretExpiredError(f"{policy.label} expired. Please request a new one.")

    return user, stored_hash


def _compare_and_clear(user_id: int, policy: SecretPolicy, stored_hash: str) -> bool:
    """
    Clear the slot only if it still holds `stored_hash`.

    Returns True for exactly one caller per issued secret; a concurrent
    verifier (or a re-issue) that changed the row first makes this a no-op.
    """
    cleared = db.session.query(User).filter(
        User.id == user_id,
        getattr(User, policy.hash_field) == stored_hash,
    ).update(
        {
            getattr(User, policy.hash_field): None,
            getattr(User, policy.expires_field): None,
            getattr(User, policy.attempts_field): 0,
        },
        synchronize_session=False,
    )
    db.session.commit()
    return cleared == 1


def _register_invalid_attempt(user: User, policy: SecretPolicy, stored_hash: str) -> None:
    attempts_column = getattr(User, policy.attempts_field)
    db.session.query(User).filter(
        User.id == user.id,
        getattr(User, policy.hash_field) == stored_hash,
    ).update({attempts_column: attempts_column + 1}, synchronize_session=False)
    db.session.commit()

    db.session.refresh(user)
    if (getattr(user, policy.attempts_field) or 0) >= MAX_SECRET_ATTEMPTS:
        _compare_and_clear(user.id, policy, stored_hash)
        raise AttemptsExceededError()

    raise InvalidSecretError(f"Invalid {policy.label.lower()}")


def check_secret(email: str, purpose: SecretPurpose, presented: str | None, now: datetime | None = None) -> User:
    """
    Validate a presented secret WITHOUT consuming it.

    Used to decide whether to show a form (e.g. the new-password form for a
    reset link). Invalid attempts still count towards MAX_SECRET_ATTEMPTS.
    """
    moment = now or utcnow()
    user, stored_hash = _load_pending(email, purpose, moment)
    if not secret_matches(presented, stored_hash):
        _register_invalid_attempt(user, POLICIES[purpose], stored_hash)
    return user


def verify_secret(email: str, purpose: SecretPurpose, presented: str | None, now: datetime | None = None) -> User:
    """
    Verify and consume a secret.

    Raises:
        AccountNotFoundError: no account with this email
        NoPendingRequestError: nothing issued, already consumed, or consumed concurrently
        SecretExpiredError: now >= expires_at (even for the correct value)
        InvalidSecretError: hash mismatch
        AttemptsExceededError: mismatch that exhausted the attempt budget

    On success the slot is cleared and the (refreshed) user is returned;
    the caller applies the flow-specific effect.
    """
    policy = POLICIES[purpose]
    moment = now or utcnow()

    user, stored_hash = _load_pending(email, purpose, moment)

    if not secret_matches(presented, stored_hash):
        _register_invalid_attempt(user, policy, stored_hash)

    if not _compare_and_clear(user.id, policy, stored_hash):
        raise NoPendingRequestError()

    db.session.refresh(user)
    return user
