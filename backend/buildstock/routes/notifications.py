# Overview: Flask API routes for the caller's notifications.

from flask import Blueprint, g, jsonify

from ..decorators import require_auth
from ..extensions import db
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    items = notification_service.list_notifications(db.session, g.caller.id)
    return jsonify({
        "items": [item.to_dict() for item in items],
        "unread": notification_service.unread_count(db.session, g.caller.id),
    }), 200


@notifications_bp.put("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    notification = notification_service.mark_as_read(db.session, notification_id, g.caller.id)
    return jsonify(notification.to_dict()), 200
