# Overview: Flask API routes for the inventory ledger; overview, adjust, and transfer.

"""
Inventory routes.

SECURITY: All routes require authentication. Record-level location checks
happen in the service, after the record's location is known.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_location_assignment
from ..extensions import db
from ..services import inventory_service
from ..validation import AdjustCommand, InventoryFilter, TransferCommand


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
def list_inventory_route():
    """Query params: store_id, site_id, product_id, category, search, page, limit (default 50)."""
    filters = InventoryFilter.from_args(request.args)
    records, total = inventory_service.list_inventory(db.session, g.caller, filters)
    return jsonify(filters.page.envelope([r.to_dict(include_product=True) for r in records], total)), 200


@inventory_bp.post("/adjust")
@require_auth
@require_location_assignment
def adjust_inventory_route():
    """
    Deduct stock (usage).

    Request body: {"inventory_id": int, "quantity": int > 0, "reason": str (optional)}
    """
    command = AdjustCommand.from_payload(request.get_json(silent=True) or {})
    record = inventory_service.adjust_quantity(db.session, g.caller, command)
    return jsonify(record.to_dict()), 200


@inventory_bp.post("/transfer")
@require_auth
@require_location_assignment
def transfer_inventory_route():
    """
    Move stock to another location.

    Request body: {"inventory_id": int, "target_location_id": int,
                   "quantity": int (default 1), "reason": str (optional)}
    """
    command = TransferCommand.from_payload(request.get_json(silent=True) or {})
    result = inventory_service.transfer_stock(db.session, g.caller, command)
    return jsonify({
        "source": result["source"].to_dict(),
        "target": result["target"].to_dict(),
    }), 200
