# Overview: System health and version endpoints.

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Location, SessionToken, User
from ..models.auth import ROLE_SUPER_ADMIN
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Database connectivity plus a super-admin presence check."""
    start_time = time.time()
    try:
        location_count = db.session.query(Location).count()
        user_count = db.session.query(User).count()
        admin_count = db.session.query(User).filter(
            User.role == ROLE_SUPER_ADMIN, User.is_active.is_(True),
        ).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }

    result = {
        "status": "healthy",
        "latency_ms": round((time.time() - start_time) * 1000, 2),
        "details": {
            "locations": location_count,
            "users": user_count,
            "active_sessions": active_sessions,
        },
    }
    if admin_count == 0:
        result["status"] = "degraded"
        result["warning"] = "No active super admin; run 'flask system init'"
    return result


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200
    return {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    return {
        "api_version": "1.0.0",
        "environment": "production" if not current_app.debug else "development",
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
