"""Accounts, sessions, admin activity log and service status

Revision ID: 0001_auth_security
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_auth_security"
down_revision = None
branch_labels = None
depends_on = None


def _secret_slot(prefix: str, hash_column: str) -> list:
    return [
        sa.Column(hash_column, sa.String(length=255), nullable=True),
        sa.Column(f"{prefix}_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(f"{prefix}_attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(f"{prefix}_sent_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="USER"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_primary_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        *_secret_slot("verify_token", "verify_token_hash"),
        *_secret_slot("login_otp", "login_otp_hash"),
        *_secret_slot("reset_token", "reset_token_hash"),
        sa.Column("admin_panel_verified_at", sa.DateTime(timezone=True), nullable=True),
        *_secret_slot("admin_panel_verify", "admin_panel_verify_token"),
        sa.Column("admin_login_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("admin_login_locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_admin_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_admin_login_ip", sa.String(length=45), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_email", ["email"], unique=False)
        batch_op.create_index("ix_users_role", ["role"], unique=False)

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("token_hash", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.String(length=255), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.create_index("ix_session_tokens_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_session_tokens_token_hash", ["token_hash"], unique=True)
        batch_op.create_index("ix_session_tokens_expires_at", ["expires_at"], unique=False)
        batch_op.create_index("ix_session_tokens_is_revoked", ["is_revoked"], unique=False)
        batch_op.create_index("ix_session_tokens_user_active", ["user_id", "is_revoked"], unique=False)

    # user_id has no foreign key: entries outlive the account they describe
    op.create_table(
        "admin_activity",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("resource_type", sa.String(length=64), nullable=True),
        sa.Column("resource_id", sa.String(length=64), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("admin_activity", schema=None) as batch_op:
        batch_op.create_index("ix_admin_activity_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_admin_activity_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_admin_activity_user_created", ["user_id", "created_at"], unique=False)
        batch_op.create_index("ix_admin_activity_action", ["action"], unique=False)

    op.create_table(
        "service_status",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("is_stopped", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("stopped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade():
    op.drop_table("service_status")

    with op.batch_alter_table("admin_activity", schema=None) as batch_op:
        batch_op.drop_index("ix_admin_activity_action")
        batch_op.drop_index("ix_admin_activity_user_created")
        batch_op.drop_index("ix_admin_activity_created_at")
        batch_op.drop_index("ix_admin_activity_user_id")

    op.drop_table("admin_activity")

    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.drop_index("ix_session_tokens_user_active")
        batch_op.drop_index("ix_session_tokens_is_revoked")
        batch_op.drop_index("ix_session_tokens_expires_at")
        batch_op.drop_index("ix_session_tokens_token_hash")
        batch_op.drop_index("ix_session_tokens_user_id")

    op.drop_table("session_tokens")

    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.drop_index("ix_users_role")
        batch_op.drop_index("ix_users_email")

    op.drop_table("users")
