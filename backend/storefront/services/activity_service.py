# Overview: Service-layer operations for the admin activity log; append and query.

"""
Admin Activity Recorder

record_activity() is a best-effort side channel: it never raises. A
failure to persist an entry is rolled back and written to the application
log, and the privileged action that triggered it carries on.

Recording is synchronous: the entry is committed inside the request that
performed the action, with no queue or background writer. A failed append
therefore costs that single entry and nothing else; there is no retry.

Callers commit their own work before recording, so the rollback on a
failed append can only discard the activity entry itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from flask import current_app

from ..extensions import db
from ..models import AdminActivity
from storefront.time_utils import utcnow

DEFAULT_PAGE_LIMIT = 100
MAX_PAGE_LIMIT = 500


class ActivityAction(str, Enum):
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    FAILED_LOGIN_ATTEMPT = "FAILED_LOGIN_ATTEMPT"
    ADMIN_ACCESS_REQUESTED = "REQUEST_ADMIN_ACCESS"
    ADMIN_PANEL_VERIFIED = "ADMIN_PANEL_VERIFIED"
    FAILED_ADMIN_VERIFICATION = "FAILED_ADMIN_VERIFICATION"
    ADMIN_VERIFICATION_CLEARED = "ADMIN_VERIFICATION_CLEARED"
    UNAUTHORIZED_ADMIN_ACCESS = "UNAUTHORIZED_ADMIN_ACCESS"
    BLOCKED_IP_ACCESS = "BLOCKED_IP_ACCESS"
    VIEW_ACTIVITY_LOGS = "VIEW_ACTIVITY_LOGS"
    SERVICES_STOPPED = "SERVICES_STOPPED"
    SERVICES_RESUMED = "SERVICES_RESUMED"
    ADMIN_PASSWORD_RESET = "ADMIN_PASSWORD_RESET"


@dataclass
class ActivityPage:
    entries: list[AdminActivity] = field(default_factory=list)
    total: int = 0
    limit: int = DEFAULT_PAGE_LIMIT
    offset: int = 0

    def to_dict(self) -> dict:
        return {
            "activities": [entry.to_dict() for entry in self.entries],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
        }


def _persist(entry: AdminActivity) -> None:
    db.session.add(entry)
    db.session.commit()


def record_activity(
    user_id: int | None,
    action: ActivityAction | str,
    resource_type: str | None = None,
    resource_id: str | int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    details: Mapping[str, Any] | None = None,
) -> AdminActivity | None:
    """
    Append one activity entry.

    Returns the entry, or None if it could not be stored. Never raises.
    """
    action_name = action.value if isinstance(action, ActivityAction) else str(action)
    try:
        entry = AdminActivity(
            user_id=user_id,
            action=action_name,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            ip_address=ip_address,
            user_agent=user_agent[:512] if user_agent else None,
            details=dict(details) if details else None,
            created_at=utcnow(),
        )
        _persist(entry)
        return entry
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to record admin activity %s for user %s", action_name, user_id
        )
        return None


def record_successful_login(user_id: int, ip_address: str | None, user_agent: str | None) -> AdminActivity | None:
    return record_activity(
        user_id, ActivityAction.LOGIN_SUCCESS,
        ip_address=ip_address, user_agent=user_agent,
    )


def record_failed_login(
    user_id: int,
    ip_address: str | None,
    user_agent: str | None = None,
    details: Mapping[str, Any] | None = None,
) -> AdminActivity | None:
    return record_activity(
        user_id, ActivityAction.FAILED_LOGIN_ATTEMPT,
        ip_address=ip_address, user_agent=user_agent, details=details,
    )


def query_activity(
    user_id: int | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = DEFAULT_PAGE_LIMIT,
    offset: int = 0,
) -> ActivityPage:
    """
    Page through the log, newest first.

    limit is clamped to [1, MAX_PAGE_LIMIT]; negative offsets become 0.
    `since` is inclusive, `until` exclusive.
    """
    limit = max(1, min(int(limit), MAX_PAGE_LIMIT))
    offset = max(0, int(offset))

    query = db.session.query(AdminActivity)
    if user_id is not None:
        query = query.filter(AdminActivity.user_id == user_id)
    if since is not None:
        query = query.filter(AdminActivity.created_at >= since)
    if until is not None:
        query = query.filter(AdminActivity.created_at < until)

    total = query.count()
    entries = (
        query.order_by(AdminActivity.created_at.desc(), AdminActivity.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return ActivityPage(entries=entries, total=total, limit=limit, offset=offset)
