# Overview: Read and acknowledge notifications delivered by the event publisher.

from __future__ import annotations

from ..errors import NotFound
from ..models import Notification
from .concurrency import transaction


def list_notifications(session, user_id: int, limit: int = 20) -> list[Notification]:
    return (
        session.query(Notification)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


def unread_count(session, user_id: int) -> int:
    return session.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    ).count()


def mark_as_read(session, notification_id: int, user_id: int) -> Notification:
    """Only the recipient may acknowledge; anyone else gets NotFound."""
    notification = session.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()
    if notification is None:
        raise NotFound("Notification not found")
    with transaction(session):
        notification.is_read = True
    return notification
