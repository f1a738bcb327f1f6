from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class AuditLog(db.Model):
    """
    Security and activity audit trail.

    Records access violations (LOCATION_VIOLATION, PERMISSION_VIOLATION, ...)
    and business activity (INVENTORY_ADJUSTMENT, ASSET_TRANSFER).

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_user_action", "user_id", "action"),
        db.Index("ix_audit_logs_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)  # Nullable for anonymous

    action = db.Column(db.String(64), nullable=False, index=True)
    resource = db.Column(db.String(255), nullable=False)  # e.g., "/api/stores/3" or "inventory:12"
    details = db.Column(db.Text, nullable=True)

    # Client context
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User", backref=db.backref("audit_logs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "resource": self.resource,
            "details": self.details,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "occurred_at": to_utc_z(self.occurred_at),
        }
