from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


LOCATION_STORE = "STORE"
LOCATION_SITE = "SITE"
VALID_LOCATION_TYPES = {LOCATION_STORE, LOCATION_SITE}

LOCATION_ACTIVE = "ACTIVE"
LOCATION_COMPLETED = "COMPLETED"
LOCATION_ARCHIVED = "ARCHIVED"
VALID_LOCATION_STATUSES = {LOCATION_ACTIVE, LOCATION_COMPLETED, LOCATION_ARCHIVED}


class Location(db.Model):
    """
    A store (warehouse) or site (construction project).

    The location is the unit of inventory custody and of access scoping.
    Names are unique within a type, so a store and a site may share one.

    COMPLETED is reached only through finish, which requires the aggregate
    inventory at the location to be zero.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("type", "name", name="uq_locations_type_name"),
        db.Index("ix_locations_type_status", "type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    type = db.Column(db.String(16), nullable=False)  # STORE, SITE
    status = db.Column(db.String(16), nullable=False, default=LOCATION_ACTIVE)  # ACTIVE, COMPLETED, ARCHIVED

    region = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)
    address = db.Column(db.String(255), nullable=True)

    # Manager (store) or engineer (site)
    assigned_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", use_alter=True, name="fk_locations_assigned_user"),
        nullable=True,
        index=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    assigned_user = db.relationship("User", foreign_keys=[assigned_user_id], post_update=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "region": self.region,
            "description": self.description,
            "address": self.address,
            "assigned_user_id": self.assigned_user_id,
            "assigned_user": (
                {"id": self.assigned_user.id, "name": self.assigned_user.name, "email": self.assigned_user.email}
                if self.assigned_user else None
            ),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
