# Overview: Read-side queries over the audit trail for security review.

from __future__ import annotations

from datetime import datetime

from ..models import AuditLog
from .events import VIOLATION_ACTIONS


def user_violations(session, user_id: int, limit: int = 10) -> list[AuditLog]:
    """Most recent violations recorded against one user."""
    return (
        session.query(AuditLog)
        .filter(AuditLog.user_id == user_id, AuditLog.action.in_(VIOLATION_ACTIONS))
        .order_by(AuditLog.occurred_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )


def violations_in_range(session, start: datetime | None = None, end: datetime | None = None, limit: int = 100) -> list[AuditLog]:
    """Violations between ``start`` and ``end`` (inclusive), newest first."""
    query = session.query(AuditLog).filter(AuditLog.action.in_(VIOLATION_ACTIONS))
    if start is not None:
        query = query.filter(AuditLog.occurred_at >= start)
    if end is not None:
        query = query.filter(AuditLog.occurred_at <= end)
    return query.order_by(AuditLog.occurred_at.desc(), AuditLog.id.desc()).limit(limit).all()
