# Overview: Service-layer operations for maintenance; housekeeping for expired credentials.

from __future__ import annotations

from ..extensions import db
from ..models import User
from .secret_service import POLICIES
from . import session_service
from storefront.time_utils import utcnow


def cleanup_sessions(*, retention_days: int = 30) -> int:
    """Delete expired or revoked sessions older than retention_days."""
    return session_service.cleanup_expired_sessions(retention_days=retention_days)


def purge_expired_secrets() -> int:
    """
    Clear one-time secret slots whose expiry has passed.

    Expired secrets are already rejected on verification; this only removes
    the stale hashes. Returns the number of slots cleared.
    """
    now = utcnow()
    cleared = 0
    for policy in POLICIES.values():
        expires_column = getattr(User, policy.expires_field)
        cleared += db.session.query(User).filter(
            expires_column.isnot(None),
            expires_column <= now,
        ).update(
            {
                getattr(User, policy.hash_field): None,
                expires_column: None,
                getattr(User, policy.attempts_field): 0,
            },
            synchronize_session=False,
        )
    db.session.commit()
    return cleared
