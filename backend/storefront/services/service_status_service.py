# Overview: Service-layer operations for the storefront service switch.

from __future__ import annotations

from ..extensions import db
from ..models import ServiceStatus, SERVICE_STATUS_ID, DEFAULT_STOPPED_MESSAGE
from storefront.time_utils import utcnow


def get_status() -> ServiceStatus:
    """Return the singleton row, creating it in the running state on first read."""
    status = db.session.get(ServiceStatus, SERVICE_STATUS_ID)
    if status is None:
        status = ServiceStatus(
            id=SERVICE_STATUS_ID,
            is_stopped=False,
            message=DEFAULT_STOPPED_MESSAGE,
            updated_at=utcnow(),
        )
        db.session.add(status)
        db.session.commit()
    return status


def set_status(is_stopped: bool, message: str | None = None, updated_by: int | None = None) -> ServiceStatus:
    """
    Stop or resume the storefront.

    stopped_at is kept when an already stopped storefront is stopped again,
    and cleared on resume. A blank message falls back to the default notice.
    """
    status = get_status()
    was_stopped = bool(status.is_stopped)

    status.is_stopped = bool(is_stopped)
    if is_stopped and not was_stopped:
        status.stopped_at = utcnow()
    elif not is_stopped:
        status.stopped_at = None

    if message is not None and message.strip():
        status.message = message.strip()
    elif not status.message:
        status.message = DEFAULT_STOPPED_MESSAGE

    status.updated_by = updated_by
    status.updated_at = utcnow()
    db.session.commit()
    return status
