# Overview: Service-layer operations for products; SKU generation and the catalog lifecycle.

"""
Product Lifecycle

    PENDING_APPROVAL -> APPROVED | REJECTED   (super admin only)
    <any>            -> INACTIVE              (soft delete, one way)

ACTIVE and APPROVED are both "visible" and are only ever set at creation
(by a super admin) or by approval. Products are never hard-deleted.

SKU FORMAT: PRD-<CODE>-<NNN>, where CODE comes from the category and NNN
is the highest numeric suffix already used with that prefix, plus one,
zero-padded to at least three digits.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import IllegalStateTransition, NotFound, ValidationError
from ..models import InventoryRecord, Location, Product, User
from ..models.auth import ROLE_SUPER_ADMIN
from ..models.communications import SEVERITY_INFO, SEVERITY_SUCCESS, SEVERITY_WARNING
from ..models.inventory import (
    PRODUCT_ACTIVE,
    PRODUCT_APPROVED,
    PRODUCT_INACTIVE,
    PRODUCT_PENDING_APPROVAL,
    PRODUCT_REJECTED,
)
from ..validation import CreateProductCommand, ProductFilter, UpdateProductCommand
from . import events
from .access_service import CallerContext, require_location_access, require_super_admin
from .concurrency import UPSERT_RETRYABLE_ERRORS, run_with_retry, transaction


CATEGORY_CODES = {
    "Building Materials": "BLD",
    "Equipment": "EQP",
    "Finishing": "FIN",
    "Tools": "TLS",
    "Safety": "SFT",
}
FALLBACK_CATEGORY_CODE = "GEN"

VISIBLE_STATUSES = (PRODUCT_ACTIVE, PRODUCT_APPROVED)

# Statuses a super admin may pick explicitly at creation
ADMIN_CREATE_STATUSES = {PRODUCT_ACTIVE, PRODUCT_APPROVED, PRODUCT_PENDING_APPROVAL}

PENDING_PRODUCTS_LINK = "/dashboard/superadmin/products?tab=pending"
STORE_PRODUCTS_LINK = "/dashboard/store/products"


def category_code(category: str | None) -> str:
    return CATEGORY_CODES.get((category or "").strip(), FALLBACK_CATEGORY_CODE)


def generate_sku(session, category: str | None) -> str:
    prefix = f"PRD-{category_code(category)}-"
    rows = session.query(Product.sku).filter(Product.sku.like(f"{prefix}%")).all()
    # Numeric max, not string max: PRD-BLD-1000 sorts before PRD-BLD-999
    numbers = [int(row.sku[len(prefix):]) for row in rows if row.sku[len(prefix):].isdigit()]
    next_number = max(numbers, default=0) + 1
    return f"{prefix}{next_number:03d}"


def get_product(session, product_id: int) -> Product:
    product = session.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found")
    return product


def _initial_status(caller: CallerContext, command: CreateProductCommand) -> str:
    if not caller.is_super_admin:
        return PRODUCT_PENDING_APPROVAL
    if command.status is not None:
        if command.status not in ADMIN_CREATE_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(sorted(ADMIN_CREATE_STATUSES))}"
            )
        return command.status
    return PRODUCT_APPROVED if command.location_id is not None else PRODUCT_ACTIVE


def create_product(session, caller: CallerContext, command: CreateProductCommand, *, publisher=None) -> Product:
    """
    Create a catalog entry; with a location, also a zero-quantity record there.

    Staff must name their own location and always produce PENDING_APPROVAL.
    """
    location = None
    if not caller.is_super_admin:
        if command.location_id is None:
            raise ValidationError("location_id is required")
        require_location_access(caller, command.location_id, resource="products:create", publisher=publisher)
    if command.location_id is not None:
        location = session.get(Location, command.location_id)
        if location is None:
            raise NotFound("Location not found")

    status = _initial_status(caller, command)

    def _op():
        with transaction(session):
            product = Product(
                sku=generate_sku(session, command.category),
                name=command.name,
                description=command.description,
                category=command.category,
                main_category=command.main_category,
                unit=command.unit,
                price_cents=command.price_cents,
                default_min_stock=command.default_min_stock,
                status=status,
                created_by_user_id=caller.id,
            )
            session.add(product)
            session.flush()
            if location is not None:
                session.add(InventoryRecord(location_id=location.id, product_id=product.id, quantity=0))
        return product

    # A concurrent create may take the same SKU; the retry picks the next one
    product = run_with_retry(session, _op, retry_on=UPSERT_RETRYABLE_ERRORS)
    current_app.logger.info("Product %s (%s) created with status %s by user=%s", product.id, product.sku, status, caller.id)

    if location is not None:
        if status == PRODUCT_PENDING_APPROVAL:
            admin_ids = [
                row.id for row in session.query(User.id)
                .filter(User.role == ROLE_SUPER_ADMIN, User.is_active.is_(True))
                .order_by(User.id.asc())
                .all()
            ]
            events.emit_all(publisher, [
                events.NotificationEvent(
                    recipient_user_id=admin_id,
                    message=(
                        f"New Product Pending Approval: {product.name} ({product.sku}) "
                        f"assigned to location {location.id}."
                    ),
                    severity=SEVERITY_INFO,
                    link=PENDING_PRODUCTS_LINK,
                )
                for admin_id in admin_ids
            ])
        elif location.assigned_user_id is not None:
            events.emit(publisher, events.NotificationEvent(
                recipient_user_id=location.assigned_user_id,
                message=f"New product {product.name} assigned to your location.",
                severity=SEVERITY_SUCCESS,
                link=STORE_PRODUCTS_LINK,
            ))
    return product


def _holder_user_ids(session, product_id: int) -> list[int]:
    """Distinct assigned users of every location holding a record of the product."""
    rows = (
        session.query(Location.assigned_user_id)
        .join(InventoryRecord, InventoryRecord.location_id == Location.id)
        .filter(InventoryRecord.product_id == product_id, Location.assigned_user_id.isnot(None))
        .distinct()
        .all()
    )
    return sorted({row.assigned_user_id for row in rows})


def _decide(session, caller: CallerContext, product_id: int, new_status: str, *, publisher=None) -> Product:
    require_super_admin(caller, resource=f"product:{product_id}", publisher=publisher)
    product = get_product(session, product_id)
    if product.status != PRODUCT_PENDING_APPROVAL:
        raise IllegalStateTransition(f"Product is not pending approval (status {product.status})")

    with transaction(session):
        updated = (
            session.query(Product)
            .filter(Product.id == product_id, Product.status == PRODUCT_PENDING_APPROVAL)
            .update({Product.status: new_status}, synchronize_session=False)
        )
        if updated != 1:
            raise IllegalStateTransition("Product has already been processed")

    session.refresh(product)
    current_app.logger.info("Product %s %s by user=%s", product.id, new_status, caller.id)

    if new_status == PRODUCT_APPROVED:
        message = f"Product Approved: {product.name} ({product.sku})."
        severity = SEVERITY_SUCCESS
        link = STORE_PRODUCTS_LINK
    else:
        message = f"Product Rejected: {product.name} ({product.sku})."
        severity = SEVERITY_WARNING
        link = f"{STORE_PRODUCTS_LINK}?tab=pending"

    events.emit_all(publisher, [
        events.NotificationEvent(recipient_user_id=user_id, message=message, severity=severity, link=link)
        for user_id in _holder_user_ids(session, product.id)
    ])
    return product


def approve_product(session, caller: CallerContext, product_id: int, *, publisher=None) -> Product:
    return _decide(session, caller, product_id, PRODUCT_APPROVED, publisher=publisher)


def reject_product(session, caller: CallerContext, product_id: int, *, publisher=None) -> Product:
    return _decide(session, caller, product_id, PRODUCT_REJECTED, publisher=publisher)


def delete_product(session, caller: CallerContext, product_id: int, *, publisher=None) -> Product:
    """Soft delete: status INACTIVE from any state. The row is kept."""
    require_super_admin(caller, resource=f"product:{product_id}", publisher=publisher)
    product = get_product(session, product_id)
    with transaction(session):
        product.status = PRODUCT_INACTIVE
    current_app.logger.info("Product %s deactivated by user=%s", product.id, caller.id)
    return product


def update_product(session, caller: CallerContext, product_id: int, command: UpdateProductCommand, *, publisher=None) -> Product:
    require_super_admin(caller, resource=f"product:{product_id}", publisher=publisher)
    product = get_product(session, product_id)
    with transaction(session):
        for key, value in command.changes.items():
            setattr(product, key, value)
    return product


def list_products(session, filters: ProductFilter) -> tuple[list[Product], int]:
    """Catalog listing; without a status filter only ACTIVE and APPROVED products appear."""
    query = session.query(Product)
    if filters.status:
        query = query.filter(Product.status == filters.status)
    else:
        query = query.filter(Product.status.in_(VISIBLE_STATUSES))
    if filters.category:
        query = query.filter(Product.category == filters.category)
    if filters.main_category:
        query = query.filter(Product.main_category == filters.main_category)
    if filters.search:
        pattern = f"%{filters.search}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.description.ilike(pattern),
        ))

    total = query.count()
    items = (
        query.order_by(Product.created_at.desc(), Product.id.desc())
        .offset(filters.page.offset)
        .limit(filters.page.limit)
        .all()
    )
    return items, total
