# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/storefront/routes/admin.py
"""
Admin panel routes.

Every request under /api/admin passes gate_admin_request first (designated
admin session, optional IP allow-list, lockout). Mutations and the activity
log additionally require admin panel verification.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import activity_service, login_throttle_service, service_status_service
from ..services import admin_verification_service
from ..services.activity_service import ActivityAction, DEFAULT_PAGE_LIMIT
from ..services.secret_service import SecretPurpose, has_pending_secret
from ..decorators import gate_admin_request, require_admin_panel_verified, get_client_ip
from storefront.time_utils import parse_iso_datetime, to_utc_z

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")
admin_bp.before_request(gate_admin_request)


def _int_arg(*names: str, default: int | None = None) -> int | None:
    """First present query arg among `names`, as int. Raises ValueError if not numeric."""
    for name in names:
        raw = request.args.get(name)
        if raw not in (None, ""):
            return int(raw)
    return default


# =============================================================================
# VERIFICATION STATE
# =============================================================================

@admin_bp.get("/verify-access")
def verify_access_state():
    """
    Current admin panel verification state for the signed-in admin.

    Read-only; does not require the panel to be verified.
    """
    user = g.current_user
    return jsonify({
        "email": user.email,
        "verified": admin_verification_service.is_verified(user),
        "verified_at": to_utc_z(user.admin_panel_verified_at),
        "verification_pending": has_pending_secret(user, SecretPurpose.ADMIN_PANEL),
        "lockout": login_throttle_service.get_lockout_status(user),
    })


# =============================================================================
# ACTIVITY LOG
# =============================================================================

@admin_bp.get("/activity")
@require_admin_panel_verified
def list_activity():
    """
    Page through the admin activity log, newest first.

    Query params:
    - userId: int - only entries for this actor
    - since / until: ISO-8601 - created_at window (since inclusive, until exclusive)
    - limit: int (default 100, max 500)
    - offset: int (default 0)
    """
    try:
        user_id = _int_arg("userId", "user_id")
        limit = _int_arg("limit", default=DEFAULT_PAGE_LIMIT)
        offset = _int_arg("offset", default=0)
        since = parse_iso_datetime(request.args.get("since"))
        until = parse_iso_datetime(request.args.get("until"))
    except ValueError:
        return jsonify({"error": "Invalid query parameters"}), 400

    try:
        page = activity_service.query_activity(
            user_id=user_id,
            since=since,
            until=until,
            limit=limit,
            offset=offset,
        )

        activity_service.record_activity(
            g.current_user.id, ActivityAction.VIEW_ACTIVITY_LOGS,
            resource_type="AdminActivity",
            ip_address=get_client_ip(),
            user_agent=request.headers.get("User-Agent"),
            details={"user_id": user_id, "limit": page.limit, "offset": page.offset},
        )

        return jsonify(page.to_dict())

    except Exception:
        current_app.logger.exception("Failed to load admin activity")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SERVICE STATUS
# =============================================================================

@admin_bp.get("/service-status")
def get_service_status():
    try:
        return jsonify(service_status_service.get_status().to_dict())
    except Exception:
        current_app.logger.exception("Failed to load service status")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/service-status")
@require_admin_panel_verified
def update_service_status():
    """
    Stop or resume order placement across the storefront.

    Request body: {"is_stopped": true|false, "message": "..."}
    """
    data = request.get_json(silent=True) or {}
    is_stopped = data.get("is_stopped", data.get("isStopped"))

    if not isinstance(is_stopped, bool):
        return jsonify({"error": "is_stopped must be a boolean"}), 400

    message = data.get("message")
    if message is not None and not isinstance(message, str):
        return jsonify({"error": "message must be a string"}), 400

    try:
        status = service_status_service.set_status(
            is_stopped, message=message, updated_by=g.current_user.id
        )

        activity_service.record_activity(
            g.current_user.id,
            ActivityAction.SERVICES_STOPPED if is_stopped else ActivityAction.SERVICES_RESUMED,
            resource_type="ServiceStatus",
            resource_id=status.id,
            ip_address=get_client_ip(),
            user_agent=request.headers.get("User-Agent"),
            details={"message": status.message} if is_stopped else None,
        )

        return jsonify(status.to_dict())

    except Exception:
        current_app.logger.exception("Failed to update service status")
        return jsonify({"error": "Internal server error"}), 500
