# Overview: Service-layer operations for the inventory ledger; adjust, transfer, and approval upserts.

"""
Inventory Ledger

InventoryRecord is the single source of truth for quantities. Three
mutations touch it:

- adjust:   quantity -= q            (usage/consumption)
- transfer: source -= q, target += q (increment-or-create)
- approval: target += q              (increment-or-create, inside the
                                      request workflow's transaction)

CONCURRENCY:
The insufficient-stock check and the decrement are ONE statement:

    UPDATE inventory_records SET quantity = quantity - :q
    WHERE id = :id AND quantity >= :q

so two simultaneous deductions can never both succeed when their sum
exceeds what is on hand. Increment-or-create retries on IntegrityError:
if a concurrent caller created the (location, product) row first, the
retry increments it instead.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..errors import InsufficientStock, NotFound, ValidationError
from ..models import InventoryRecord, Location, Product
from ..models.locations import LOCATION_SITE, LOCATION_STORE
from ..validation import AdjustCommand, InventoryFilter, TransferCommand
from . import events
from .access_service import CallerContext, require_location_access, scoped_filter
from .concurrency import UPSERT_RETRYABLE_ERRORS, lock_for_update, run_with_retry, transaction


def get_record(session, inventory_id: int) -> InventoryRecord:
    record = session.get(InventoryRecord, inventory_id)
    if record is None:
        raise NotFound("Inventory item not found")
    return record


def _guarded_decrement(session, inventory_id: int, quantity: int) -> None:
    """Atomically subtract ``quantity``; raises if the row is gone or short."""
    updated = (
        session.query(InventoryRecord)
        .filter(InventoryRecord.id == inventory_id, InventoryRecord.quantity >= quantity)
        .update(
            {InventoryRecord.quantity: InventoryRecord.quantity - quantity},
            synchronize_session=False,
        )
    )
    if updated == 1:
        return

    current = session.query(InventoryRecord.quantity).filter(InventoryRecord.id == inventory_id).scalar()
    if current is None:
        raise NotFound("Inventory item not found")
    raise InsufficientStock(
        "Insufficient stock",
        details={"available": current, "requested": quantity},
    )


def increment_or_create(session, *, location_id: int, product_id: int, quantity: int) -> None:
    """
    Add ``quantity`` to the (location, product) record, creating it if absent.

    Flushes but never commits; runs inside the caller's transaction.
    """
    updated = (
        session.query(InventoryRecord)
        .filter(InventoryRecord.location_id == location_id, InventoryRecord.product_id == product_id)
        .update(
            {InventoryRecord.quantity: InventoryRecord.quantity + quantity},
            synchronize_session=False,
        )
    )
    if updated == 0:
        session.add(InventoryRecord(location_id=location_id, product_id=product_id, quantity=quantity))
        session.flush()


def _require_positive_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")


def apply_approval(session, *, location_id: int, product_id: int, quantity: int) -> None:
    """Inventory effect of an approved request; same atomic unit as the status change."""
    _require_positive_quantity(quantity)
    increment_or_create(session, location_id=location_id, product_id=product_id, quantity=quantity)


def adjust_quantity(session, caller: CallerContext, command: AdjustCommand, *, publisher=None) -> InventoryRecord:
    """
    Deduct stock from one record (usage).

    Raises ValidationError, NotFound, AuthorizationDenied (audited),
    InsufficientStock.
    On success an INVENTORY_ADJUSTMENT audit event is published after commit.
    """
    _require_positive_quantity(command.quantity)
    record = get_record(session, command.inventory_id)
    require_location_access(
        caller, record.location_id,
        resource=f"inventory:{record.id}",
        publisher=publisher,
    )
    product = record.product

    def _op():
        with transaction(session):
            _guarded_decrement(session, command.inventory_id, command.quantity)

    run_with_retry(session, _op)

    session.refresh(record)
    current_app.logger.info(
        "Inventory adjusted: record=%s qty=-%s by user=%s", record.id, command.quantity, caller.id,
    )
    events.emit(publisher, events.audit_event(
        user_id=caller.id,
        action=events.AUDIT_INVENTORY_ADJUSTMENT,
        resource=f"inventory:{record.id}",
        details=(
            f"Deducted {command.quantity} {product.unit} of {product.name}. "
            f"Reason: {command.reason or 'Usage'}"
        ),
    ))
    return record


def transfer_stock(session, caller: CallerContext, command: TransferCommand, *, publisher=None) -> dict:
    """
    Move ``quantity`` from a source record to the target location.

    Decrement and increment-or-create commit together or not at all, so
    the combined quantity of source and target is conserved.
    """
    _require_positive_quantity(command.quantity)
    source = get_record(session, command.inventory_id)
    require_location_access(
        caller, source.location_id,
        resource=f"inventory:{source.id}",
        publisher=publisher,
    )
    if session.get(Location, command.target_location_id) is None:
        raise NotFound("Target location not found")
    if command.target_location_id == source.location_id:
        raise ValidationError("Target location must differ from the source location")

    source_location_id = source.location_id
    product = source.product

    def _op():
        with transaction(session):
            # Serialize concurrent first-arrival inserts at the target on engines that lock
            target_location = lock_for_update(
                session.query(Location).filter(Location.id == command.target_location_id)
            ).one_or_none()
            if target_location is None:
                raise NotFound("Target location not found")
            _guarded_decrement(session, command.inventory_id, command.quantity)
            increment_or_create(
                session,
                location_id=command.target_location_id,
                product_id=product.id,
                quantity=command.quantity,
            )

    run_with_retry(session, _op, retry_on=UPSERT_RETRYABLE_ERRORS)

    session.refresh(source)
    target = (
        session.query(InventoryRecord)
        .filter_by(location_id=command.target_location_id, product_id=product.id)
        .one()
    )
    current_app.logger.info(
        "Inventory transferred: product=%s qty=%s from=%s to=%s by user=%s",
        product.id, command.quantity, source_location_id, command.target_location_id, caller.id,
    )
    events.emit(publisher, events.audit_event(
        user_id=caller.id,
        action=events.AUDIT_ASSET_TRANSFER,
        resource=f"inventory:{source.id}",
        details=(
            f"Transferred {command.quantity} {product.unit} of {product.name} "
            f"from Loc:{source_location_id} to Loc:{command.target_location_id}. "
            f"Reason: {command.reason or 'Transfer'}"
        ),
    ))
    return {"source": source, "target": target}


def list_inventory(session, caller: CallerContext, filters: InventoryFilter) -> tuple[list[InventoryRecord], int]:
    """Scoped inventory overview with optional location/product/category/search filters."""
    query = (
        session.query(InventoryRecord)
        .join(Location, InventoryRecord.location_id == Location.id)
        .join(Product, InventoryRecord.product_id == Product.id)
    )
    query = scoped_filter(caller, query, InventoryRecord.location_id)

    if filters.store_id is not None:
        query = query.filter(InventoryRecord.location_id == filters.store_id, Location.type == LOCATION_STORE)
    if filters.site_id is not None:
        query = query.filter(InventoryRecord.location_id == filters.site_id, Location.type == LOCATION_SITE)
    if filters.product_id is not None:
        query = query.filter(InventoryRecord.product_id == filters.product_id)
    if filters.category:
        query = query.filter(Product.category == filters.category)
    if filters.search:
        pattern = f"%{filters.search}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))

    total = query.count()
    records = (
        query.order_by(Location.name.asc(), Product.name.asc(), InventoryRecord.id.asc())
        .offset(filters.page.offset)
        .limit(filters.page.limit)
        .all()
    )
    return records, total


def get_location_inventory(session, caller: CallerContext, location_id: int, *, publisher=None) -> list[InventoryRecord]:
    require_location_access(caller, location_id, resource=f"location:{location_id}:inventory", publisher=publisher)
    if session.get(Location, location_id) is None:
        raise NotFound("Location not found")
    return (
        session.query(InventoryRecord)
        .join(Product, InventoryRecord.product_id == Product.id)
        .filter(InventoryRecord.location_id == location_id)
        .order_by(Product.name.asc())
        .all()
    )


def location_quantity_total(session, location_id: int) -> int:
    return int(
        session.query(func.coalesce(func.sum(InventoryRecord.quantity), 0))
        .filter(InventoryRecord.location_id == location_id)
        .scalar()
    )
