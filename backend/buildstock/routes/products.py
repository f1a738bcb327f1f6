# Overview: Flask API routes for the product catalog and its approval lifecycle.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..extensions import db
from ..services import product_service
from ..validation import CreateProductCommand, ProductFilter, UpdateProductCommand


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products.

    Query params: category, main_category, status, search, page, limit.
    Without status only ACTIVE and APPROVED products are returned.
    """
    filters = ProductFilter.from_args(request.args)
    items, total = product_service.list_products(db.session, filters)
    return jsonify(filters.page.envelope([p.to_dict() for p in items], total)), 200


@products_bp.post("")
@require_auth
def create_product_route():
    command = CreateProductCommand.from_payload(request.get_json(silent=True) or {})
    product = product_service.create_product(db.session, g.caller, command)
    return jsonify(product.to_dict()), 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    return jsonify(product_service.get_product(db.session, product_id).to_dict()), 200


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    command = UpdateProductCommand.from_payload(request.get_json(silent=True) or {})
    product = product_service.update_product(db.session, g.caller, product_id, command)
    return jsonify(product.to_dict()), 200


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    """Soft delete (status INACTIVE)."""
    product = product_service.delete_product(db.session, g.caller, product_id)
    return jsonify(product.to_dict()), 200


@products_bp.put("/<int:product_id>/approve")
@require_auth
def approve_product_route(product_id: int):
    product = product_service.approve_product(db.session, g.caller, product_id)
    return jsonify(product.to_dict()), 200


@products_bp.put("/<int:product_id>/reject")
@require_auth
def reject_product_route(product_id: int):
    product = product_service.reject_product(db.session, g.caller, product_id)
    return jsonify(product.to_dict()), 200
