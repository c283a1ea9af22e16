# Overview: Flask CLI command groups for bootstrap, admin setup, inspection, and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Create all tables (idempotent). Use `flask db upgrade` for migrated databases.
#
# Designated admin:
# - python -m flask admin setup [--email owner@example.com] --password "Password123!"
#   Create or promote the single admin account (verified, is_primary_admin) and
#   demote any other ADMIN account.
# - python -m flask admin reset-password --password "Password123!"
#   Reset the designated admin password, unlock it and revoke its sessions.
#
# Activity log:
# - python -m flask activity list [--user-id 1] [--limit 20]
#   Print recent admin activity, newest first.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired or revoked sessions older than the retention window.
# - python -m flask maintenance purge-secrets
#   Clear expired one-time secrets (codes and links).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User, ROLE_ADMIN, ROLE_USER
from .services.auth_service import create_user, get_user_by_email, normalize_email, set_password, PasswordValidationError
from .services import activity_service
from .services import maintenance_service
from .services import session_service
from .services.activity_service import ActivityAction
from .time_utils import utcnow, to_utc_z


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")
    click.echo(f"      Designated admin email: {current_app.config['ADMIN_EMAIL']}")
    click.echo("      Next: python -m flask admin setup --password <password>")


# =============================================================================
# DESIGNATED ADMIN
# =============================================================================

@click.group('admin')
def admin_group():
    """Designated admin account management."""


@admin_group.command('setup')
@click.option('--email', default=None, help='Admin email (defaults to ADMIN_EMAIL)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--name', default='Store Admin', show_default=True)
@with_appcontext
def setup_admin(email, password, name):
    """
    Create or promote the designated admin account.

    The admin is marked with is_primary_admin and a verified email. Any
    other ADMIN account is demoted to USER; their sessions stop validating
    because the role snapshot no longer matches.

    SECURITY: Only the account matching ADMIN_EMAIL can pass the admin gate.
    """
    configured = normalize_email(current_app.config["ADMIN_EMAIL"])
    email = normalize_email(email) if email else configured
    if email != configured:
        click.echo(f"WARN  {email} is not ADMIN_EMAIL ({configured}); it will not pass the admin gate")

    try:
        user = get_user_by_email(email)
        if user is None:
            user = create_user(email, password, name=name, role=ROLE_ADMIN)
            click.echo(f"PASS Created admin account {email}")
        else:
            set_password(user, password)
            click.echo(f"PASS Updated existing account {email}")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        return
    except ValueError as e:
        click.echo(f"FAIL {str(e)}")
        return

    user.role = ROLE_ADMIN
    user.is_active = True
    user.is_primary_admin = True
    if not user.email_verified_at:
        user.email_verified_at = utcnow()

    others = db.session.query(User).filter(User.id != user.id, User.role == ROLE_ADMIN).all()
    for other in others:
        other.role = ROLE_USER
        other.is_primary_admin = False
        other.admin_panel_verified_at = None
    db.session.query(User).filter(User.id != user.id, User.is_primary_admin.is_(True)).update(
        {User.is_primary_admin: False}, synchronize_session=False
    )
    db.session.commit()

    for other in others:
        session_service.revoke_all_user_sessions(other.id, reason="Admin role removed")
        click.echo(f"WARN  Demoted {other.email} to {ROLE_USER}")

    click.echo(f"DONE Designated admin: {user.email} (ID: {user.id})")


@admin_group.command('reset-password')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def reset_admin_password(password):
    """
    Reset the designated admin password.

    Also clears the login lockout and panel verification and revokes every
    session of the account.
    """
    email = normalize_email(current_app.config["ADMIN_EMAIL"])
    user = get_user_by_email(email)
    if user is None or not user.is_admin:
        click.echo(f"FAIL No admin account for {email}. Run: python -m flask admin setup")
        return

    try:
        set_password(user, password)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        return

    user.admin_login_attempts = 0
    user.admin_login_locked_until = None
    user.admin_panel_verified_at = None
    db.session.commit()

    revoked = session_service.revoke_all_user_sessions(user.id, reason="Admin password reset")
    activity_service.record_activity(
        user.id, ActivityAction.ADMIN_PASSWORD_RESET,
        resource_type="User", resource_id=user.id,
        details={"source": "cli", "sessions_revoked": revoked},
    )
    click.echo(f"PASS Password reset for {email}; {revoked} session(s) revoked")


# =============================================================================
# ACTIVITY LOG
# =============================================================================

@click.group('activity')
def activity_group():
    """Admin activity log inspection."""


@activity_group.command('list')
@click.option('--user-id', type=int, default=None, help='Only entries for this user')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_activity(user_id, limit):
    """List recent admin activity, newest first."""
    page = activity_service.query_activity(user_id=user_id, limit=limit)

    if not page.entries:
        click.echo("No activity found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<6} {'When (UTC)':<22} {'User':<6} {'Action':<28} {'IP':<16} {'Resource'}")
    click.echo("="*100)

    for entry in page.entries:
        resource = f"{entry.resource_type}:{entry.resource_id}" if entry.resource_type else "-"
        user_label = str(entry.user_id) if entry.user_id is not None else "-"
        click.echo(
            f"{entry.id:<6} {to_utc_z(entry.created_at) or '-':<22} {user_label:<6} "
            f"{entry.action:<28} {entry.ip_address or '-':<16} {resource}"
        )

    click.echo("="*100)
    click.echo(f"Showing {len(page.entries)} of {page.total}\n")


# =============================================================================
# MAINTENANCE
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """
    Cleanup old sessions.

    Default retention: 30 days.
    """
    deleted = maintenance_service.cleanup_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


@maintenance_group.command('purge-secrets')
@with_appcontext
def purge_secrets_cli():
    """Clear expired one-time codes and links."""
    cleared = maintenance_service.purge_expired_secrets()
    click.echo(f"Cleared {cleared} expired one-time secrets.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(admin_group)
    app.cli.add_command(activity_group)
    app.cli.add_command(maintenance_group)
