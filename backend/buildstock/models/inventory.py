from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


MAIN_CATEGORY_CONSUMABLE = "CONSUMABLE_GOODS"
MAIN_CATEGORY_FIXED_ASSET = "FIXED_ASSET"
VALID_MAIN_CATEGORIES = {MAIN_CATEGORY_CONSUMABLE, MAIN_CATEGORY_FIXED_ASSET}

PRODUCT_PENDING_APPROVAL = "PENDING_APPROVAL"
PRODUCT_APPROVED = "APPROVED"
PRODUCT_ACTIVE = "ACTIVE"
PRODUCT_REJECTED = "REJECTED"
PRODUCT_INACTIVE = "INACTIVE"
VALID_PRODUCT_STATUSES = {
    PRODUCT_PENDING_APPROVAL,
    PRODUCT_APPROVED,
    PRODUCT_ACTIVE,
    PRODUCT_REJECTED,
    PRODUCT_INACTIVE,
}

REQUEST_PENDING = "PENDING"
REQUEST_APPROVED = "APPROVED"
REQUEST_REJECTED = "REJECTED"
VALID_REQUEST_STATUSES = {REQUEST_PENDING, REQUEST_APPROVED, REQUEST_REJECTED}


class Product(db.Model):
    """
    Product catalog entry.

    SKU DESIGN: PRD-<CODE>-<NNN>, globally unique, sequence per category code.

    LIFECYCLE: never hard-deleted. Soft delete sets status INACTIVE so that
    inventory records and request history keep a valid product reference.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_status_category", "status", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    category = db.Column(db.String(64), nullable=False, index=True)
    main_category = db.Column(db.String(32), nullable=False, default=MAIN_CATEGORY_CONSUMABLE)
    unit = db.Column(db.String(32), nullable=False)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    default_min_stock = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(32), nullable=False, default=PRODUCT_ACTIVE, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "main_category": self.main_category,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "default_min_stock": self.default_min_stock,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryRecord(db.Model):
    """
    Authoritative quantity of one product at one location.

    INVARIANTS:
    - One row per (location_id, product_id)
    - quantity never negative (CHECK constraint backs the guarded updates)
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("location_id", "product_id", name="uq_inventory_location_product"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    location = db.relationship("Location", backref=db.backref("inventory_records", lazy=True))
    product = db.relationship("Product", backref=db.backref("inventory_records", lazy=True))

    def to_dict(self, include_product: bool = False) -> dict:
        data = {
            "id": self.id,
            "location_id": self.location_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_product:
            data["product"] = self.product.to_dict() if self.product else None
            data["location"] = (
                {"id": self.location.id, "name": self.location.name, "type": self.location.type}
                if self.location else None
            )
        return data


class InventoryRequest(db.Model):
    """
    Request for stock at a location.

    STATE MACHINE: PENDING -> APPROVED | REJECTED, exactly once.
    Approval upserts the matching InventoryRecord in the same transaction.
    Nothing is reserved while the request is pending.
    """
    __tablename__ = "inventory_requests"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_inventory_requests_quantity_positive"),
        db.Index("ix_inventory_requests_location_status", "location_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=REQUEST_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # Decider (set on approve and on reject)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product", backref=db.backref("requests", lazy=True))
    location = db.relationship("Location", backref=db.backref("requests", lazy=True))
    requested_by = db.relationship("User", foreign_keys=[requested_by_user_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "location_id": self.location_id,
            "location_name": self.location.name if self.location else None,
            "quantity": self.quantity,
            "status": self.status,
            "notes": self.notes,
            "requested_by_user_id": self.requested_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "decided_at": to_utc_z(self.decided_at) if self.decided_at else None,
        }
