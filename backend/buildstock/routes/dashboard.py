# Overview: Flask API routes for dashboard statistics.

from flask import Blueprint, g, jsonify

from ..decorators import require_auth
from ..extensions import db
from ..services import dashboard_service


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
@require_auth
def stats_route():
    return jsonify(dashboard_service.dashboard_stats(db.session, g.caller)), 200
