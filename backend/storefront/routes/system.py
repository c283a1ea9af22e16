# backend/storefront/routes/system.py
"""
System health and public service status endpoints.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import User, SessionToken
from ..services import service_status_service
from storefront.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with two cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "active_sessions": active_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Liveness plus database check.

    Returns:
    - 200: healthy
    - 503: database unreachable
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
        }
    }
    return response, 200 if healthy else 503


@system_bp.get("/api/service-status")
def public_service_status():
    """
    Public storefront status used by checkout to block orders while stopped.

    Exposes only whether services are stopped and the customer notice.
    """
    try:
        status = service_status_service.get_status()
        return jsonify({
            "is_stopped": status.is_stopped,
            "message": status.message if status.is_stopped else None,
        })
    except Exception:
        current_app.logger.exception("Failed to load service status")
        return jsonify({"error": "Internal server error"}), 500
