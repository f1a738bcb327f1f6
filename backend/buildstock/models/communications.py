from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


SEVERITY_INFO = "INFO"
SEVERITY_SUCCESS = "SUCCESS"
SEVERITY_WARNING = "WARNING"
SEVERITY_ERROR = "ERROR"
VALID_SEVERITIES = {SEVERITY_INFO, SEVERITY_SUCCESS, SEVERITY_WARNING, SEVERITY_ERROR}


class Notification(db.Model):
    """User-facing notification written by the event publisher."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    message = db.Column(db.Text, nullable=False)
    severity = db.Column(db.String(16), nullable=False, default=SEVERITY_INFO)  # INFO, SUCCESS, WARNING, ERROR
    link = db.Column(db.String(255), nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User", backref=db.backref("notifications", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "message": self.message,
            "severity": self.severity,
            "link": self.link,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }
