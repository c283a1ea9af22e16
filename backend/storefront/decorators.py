# Overview: Request decorators and the admin gate for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service, login_throttle_service, activity_service
from .services import admin_verification_service
from .services.activity_service import ActivityAction


ADMIN_ACCESS_DENIED = {"error": "Admin access required"}


def get_client_ip() -> str | None:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket address."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.headers.get("X-Real-IP") or request.remote_addr


def get_bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _load_session() -> bool:
    """Populate g from the bearer token. Returns False when there is no valid session."""
    token = get_bearer_token()
    if not token:
        return False

    context = session_service.validate_session(token)
    if not context:
        return False

    g.current_user = context.user
    g.session_context = context
    return True


def require_auth(f):
    """
    Require a valid session token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired, idle or revoked token
    - User account deactivated or its role changed since login
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not get_bearer_token():
            return jsonify({"error": "Authentication required"}), 401

        if not _load_session():
            return jsonify({"error": "Invalid or expired token"}), 401

        return f(*args, **kwargs)

    return decorated_function


def gate_admin_request():
    """
    before_request hook for the admin blueprint.

    Every /api/admin/* request must come from an active ADMIN account whose
    email is the configured ADMIN_EMAIL. No session, wrong role and wrong
    email all get the same 403 body so the caller cannot tell which check
    failed. Returns None to let the request through.

    SECURITY: fails closed; an exception in here is a 500, never an allow.
    """
    if request.method == "OPTIONS":
        return None

    try:
        ip_address = get_client_ip()
        user_agent = request.headers.get("User-Agent")

        if not _load_session():
            return jsonify(ADMIN_ACCESS_DENIED), 403

        user = g.current_user
        if not user.is_admin:
            return jsonify(ADMIN_ACCESS_DENIED), 403

        if not admin_verification_service.is_designated_admin(user):
            activity_service.record_activity(
                user.id, ActivityAction.UNAUTHORIZED_ADMIN_ACCESS,
                resource_type="route", resource_id=request.path,
                ip_address=ip_address, user_agent=user_agent,
                details={"email": user.email},
            )
            return jsonify(ADMIN_ACCESS_DENIED), 403

        allowed_ips = current_app.config.get("ADMIN_ALLOWED_IPS") or []
        if allowed_ips and ip_address not in allowed_ips:
            activity_service.record_activity(
                user.id, ActivityAction.BLOCKED_IP_ACCESS,
                resource_type="route", resource_id=request.path,
                ip_address=ip_address, user_agent=user_agent,
            )
            return jsonify(ADMIN_ACCESS_DENIED), 403

        is_locked, seconds_remaining = login_throttle_service.is_account_locked(user)
        if is_locked:
            return jsonify({
                "error": "Account temporarily locked due to too many failed login attempts",
                "locked": True,
                "retry_after_seconds": seconds_remaining,
            }), 423

        return None

    except Exception:
        current_app.logger.exception("Admin security check failed")
        return jsonify({"error": "Security check failed"}), 500


def require_admin_panel_verified(f):
    """
    Require AdminPanelVerified on top of the admin gate.

    Applied to mutation endpoints and the activity log view.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None or not admin_verification_service.is_designated_admin(user):
            return jsonify(ADMIN_ACCESS_DENIED), 403

        if not admin_verification_service.is_verified(user):
            return jsonify({
                "error": "Admin panel access not verified",
                "requires_verification": True,
            }), 403

        return f(*args, **kwargs)

    return decorated_function
