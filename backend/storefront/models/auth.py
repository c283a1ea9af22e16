from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z

ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"


class User(db.Model):
    """
    Customer and admin accounts.

    Email is the login identifier and is stored normalized (stripped,
    lower-cased) so uniqueness holds regardless of how it was typed.

    One-time secrets live on the account itself, one slot per purpose.
    Each slot has the same shape: bcrypt hash, expiry, failed attempt
    counter and the time it was last sent (cooldown). A slot is
    "pending" while its hash and expiry are both set.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        db.Index("ix_users_role", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=ROLE_USER)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Set only by `flask admin setup`; the designated admin is identified by
    # this flag, not by creation order.
    is_primary_admin = db.Column(db.Boolean, nullable=False, default=False)

    email_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Email verification link token
    verify_token_hash = db.Column(db.String(255), nullable=True)
    verify_token_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    verify_token_attempt_count = db.Column(db.Integer, nullable=False, default=0)
    verify_token_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Login OTP (6 digits)
    login_otp_hash = db.Column(db.String(255), nullable=True)
    login_otp_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    login_otp_attempt_count = db.Column(db.Integer, nullable=False, default=0)
    login_otp_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Password reset link token
    reset_token_hash = db.Column(db.String(255), nullable=True)
    reset_token_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reset_token_attempt_count = db.Column(db.Integer, nullable=False, default=0)
    reset_token_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Admin panel verification (second factor for the admin panel).
    # Cleared on sign-out and on inactivity expiry.
    admin_panel_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    admin_panel_verify_token = db.Column(db.String(255), nullable=True)
    admin_panel_verify_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    admin_panel_verify_attempt_count = db.Column(db.Integer, nullable=False, default=0)
    admin_panel_verify_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Admin login lockout bookkeeping
    admin_login_attempts = db.Column(db.Integer, nullable=False, default=0)
    admin_login_locked_until = db.Column(db.DateTime(timezone=True), nullable=True)
    last_admin_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_admin_login_ip = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "email_verified": self.email_verified_at is not None,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Bearer session tokens.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - 24-hour absolute timeout
    - 2-hour idle timeout
    - Revocable on logout or password reset
    - role is a snapshot taken at login; the gatekeeper re-checks the live account
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    role = db.Column(db.String(16), nullable=False)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Session metadata
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # Revocation support
    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    # Client information (for security monitoring)
    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    user = db.relationship("User", backref=db.backref("sessions", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "role": self.role,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
        }
