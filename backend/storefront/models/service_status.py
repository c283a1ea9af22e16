from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z

SERVICE_STATUS_ID = "service-status"
DEFAULT_STOPPED_MESSAGE = "Our services are stopped today. Please check after 12 hours."


class ServiceStatus(db.Model):
    """
    Storefront-wide switch for order placement.

    Singleton: the only row has id SERVICE_STATUS_ID and is created lazily
    in the running state on first read.
    """
    __tablename__ = "service_status"

    id = db.Column(db.String(32), primary_key=True, default=SERVICE_STATUS_ID)
    is_stopped = db.Column(db.Boolean, nullable=False, default=False)
    stopped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    message = db.Column(db.Text, nullable=False, default=DEFAULT_STOPPED_MESSAGE)
    updated_by = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "is_stopped": self.is_stopped,
            "stopped_at": to_utc_z(self.stopped_at) if self.stopped_at else None,
            "message": self.message,
            "updated_by": self.updated_by,
            "updated_at": to_utc_z(self.updated_at) if self.updated_at else None,
        }
