# Overview: Flask API routes for inventory requests; create, review, and approve/reject.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..extensions import db
from ..services import request_service
from ..validation import CreateRequestCommand, parse_page, parse_request_status


requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")


@requests_bp.post("")
@require_auth
def create_request_route():
    """Request body: {"product_id": int, "quantity": int > 0, "location_id": int, "notes": str}"""
    command = CreateRequestCommand.from_payload(request.get_json(silent=True) or {})
    inventory_request = request_service.create_request(db.session, g.caller, command)
    return jsonify(inventory_request.to_dict()), 201


@requests_bp.get("")
@require_auth
def list_requests_route():
    page = parse_page(request.args)
    items, total = request_service.list_requests(
        db.session, g.caller,
        status=parse_request_status(request.args),
        page=page,
    )
    return jsonify(page.envelope([item.to_dict() for item in items], total)), 200


@requests_bp.get("/pending")
@require_auth
def pending_requests_route():
    items = request_service.pending_requests_for_caller(db.session, g.caller)
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@requests_bp.get("/<int:request_id>")
@require_auth
def get_request_route(request_id: int):
    return jsonify(request_service.get_request(db.session, g.caller, request_id).to_dict()), 200


@requests_bp.put("/<int:request_id>/approve")
@require_auth
def approve_request_route(request_id: int):
    inventory_request = request_service.approve_request(db.session, g.caller, request_id)
    return jsonify(inventory_request.to_dict()), 200


@requests_bp.put("/<int:request_id>/reject")
@require_auth
def reject_request_route(request_id: int):
    inventory_request = request_service.reject_request(db.session, g.caller, request_id)
    return jsonify(inventory_request.to_dict()), 200
