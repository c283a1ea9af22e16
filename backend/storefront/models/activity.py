from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from storefront.time_utils import to_utc_z


class ImmutableRecordError(Exception):
    """Raised when code tries to update or delete an append-only record."""


class AdminActivity(db.Model):
    """
    Admin activity audit log.

    Records privileged actions, admin panel verification attempts and
    login attempts (success and failure) for later anomaly review.

    IMMUTABLE: Never update or delete. Append-only for audit integrity;
    the ORM refuses updates and deletes on mapped instances.

    user_id is a weak reference (no foreign key) so entries outlive the
    account they describe.
    """
    __tablename__ = "admin_activity"
    __table_args__ = (
        db.Index("ix_admin_activity_user_created", "user_id", "created_at"),
        db.Index("ix_admin_activity_action", "action"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)

    action = db.Column(db.String(64), nullable=False)
    resource_type = db.Column(db.String(64), nullable=True)  # e.g., "ServiceStatus"
    resource_id = db.Column(db.String(64), nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)
    details = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    @classmethod
    def __declare_last__(cls) -> None:
        event.listen(cls, "before_update", cls._deny_mutation)
        event.listen(cls, "before_delete", cls._deny_mutation)

    @staticmethod
    def _deny_mutation(mapper, connection, target) -> None:
        raise ImmutableRecordError("Admin activity entries are immutable")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "details": self.details,
            "created_at": to_utc_z(self.created_at),
        }
