# Overview: Flask API routes for reviewing security violations (super admin only).

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_roles
from ..errors import ValidationError
from ..extensions import db
from ..models.auth import ROLE_SUPER_ADMIN
from ..services import audit_service
from ..time_utils import parse_iso_datetime
from ..validation import optional_positive_int


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("/violations")
@require_auth
@require_roles(ROLE_SUPER_ADMIN)
def violations_route():
    """
    Query params:
    - user_id: violations of one user (latest ``limit``, default 10)
    - start / end: ISO-8601 range (inclusive), otherwise
    """
    user_id = optional_positive_int(request.args, "user_id")
    if user_id is not None:
        limit = optional_positive_int(request.args, "limit", default=10)
        items = audit_service.user_violations(db.session, user_id, limit=limit)
    else:
        try:
            start = parse_iso_datetime(request.args.get("start"))
            end = parse_iso_datetime(request.args.get("end"))
        except ValueError:
            raise ValidationError("start and end must be ISO-8601 datetimes")
        limit = optional_positive_int(request.args, "limit", default=100)
        items = audit_service.violations_in_range(db.session, start, end, limit=limit)
    return jsonify({"items": [item.to_dict() for item in items]}), 200
