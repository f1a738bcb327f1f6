# Overview: Flask API routes for stores and sites; one blueprint factory per location type.

from flask import Blueprint, g, jsonify, request

from ..decorators import authorize_location_access, require_auth
from ..extensions import db
from ..models.locations import LOCATION_SITE, LOCATION_STORE
from ..services import inventory_service, location_service
from ..validation import CreateLocationCommand, UpdateLocationCommand, parse_page


def create_location_blueprint(location_type: str, name: str) -> Blueprint:
    bp = Blueprint(name, __name__, url_prefix=f"/api/{name}")

    @bp.get("")
    @require_auth
    def list_route():
        page = parse_page(request.args)
        items, total = location_service.list_locations(db.session, g.caller, location_type, page=page)
        return jsonify(page.envelope([item.to_dict() for item in items], total)), 200

    @bp.post("")
    @require_auth
    def create_route():
        command = CreateLocationCommand.from_payload(request.get_json(silent=True) or {})
        location = location_service.create_location(db.session, g.caller, location_type, command)
        return jsonify(location.to_dict()), 201

    @bp.get("/<int:location_id>")
    @require_auth
    @authorize_location_access
    def get_route(location_id: int):
        location = location_service.get_location(db.session, g.caller, location_type, location_id)
        return jsonify(location.to_dict()), 200

    @bp.put("/<int:location_id>")
    @require_auth
    def update_route(location_id: int):
        command = UpdateLocationCommand.from_payload(request.get_json(silent=True) or {})
        location = location_service.update_location(db.session, g.caller, location_type, location_id, command)
        return jsonify(location.to_dict()), 200

    @bp.delete("/<int:location_id>")
    @require_auth
    def delete_route(location_id: int):
        location_service.delete_location(db.session, g.caller, location_type, location_id)
        return jsonify({"message": f"{location_type.title()} deleted"}), 200

    @bp.get("/<int:location_id>/inventory")
    @require_auth
    @authorize_location_access
    def inventory_route(location_id: int):
        location_service.get_location(db.session, g.caller, location_type, location_id)
        records = inventory_service.get_location_inventory(db.session, g.caller, location_id)
        return jsonify({"items": [record.to_dict(include_product=True) for record in records]}), 200

    @bp.post("/<int:location_id>/finish")
    @require_auth
    def finish_route(location_id: int):
        location = location_service.finish_location(db.session, g.caller, location_type, location_id)
        return jsonify(location.to_dict()), 200

    return bp


stores_bp = create_location_blueprint(LOCATION_STORE, "stores")
sites_bp = create_location_blueprint(LOCATION_SITE, "sites")
