# Overview: Outbound audit/notification events and the publisher that delivers them.

"""
Audit and notification delivery.

Services never write AuditLog or Notification rows inline with their
business transaction. They build an event and hand it to a publisher
AFTER their own commit (or, for denials, before touching any state).

Delivery is fire-and-forget: ``emit`` swallows publisher failures and
reports them to the operational log, so a broken sink can never fail or
roll back the operation that triggered it.

The default publisher writes rows through the SQLAlchemy session and is
registered on the app as ``app.extensions["event_publisher"]``. Tests pass
their own publisher (anything with ``publish(event)``).
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app, has_request_context, request

from ..models import AuditLog, Notification


# Audit actions
AUDIT_LOCATION_VIOLATION = "LOCATION_VIOLATION"
AUDIT_PARAMETER_TAMPERING = "PARAMETER_TAMPERING"
AUDIT_PERMISSION_VIOLATION = "PERMISSION_VIOLATION"
AUDIT_INVENTORY_ADJUSTMENT = "INVENTORY_ADJUSTMENT"
AUDIT_ASSET_TRANSFER = "ASSET_TRANSFER"

VIOLATION_ACTIONS = (
    AUDIT_LOCATION_VIOLATION,
    AUDIT_PARAMETER_TAMPERING,
    AUDIT_PERMISSION_VIOLATION,
)


@dataclass(frozen=True)
class AuditEvent:
    user_id: int | None
    action: str
    resource: str
    details: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class NotificationEvent:
    recipient_user_id: int
    message: str
    severity: str
    link: str | None = None


class EventPublisher:
    """Sink interface: a single ``publish(event)`` method."""

    def publish(self, event) -> None:
        raise NotImplementedError


class SqlEventPublisher(EventPublisher):
    """Persist events as AuditLog / Notification rows."""

    def __init__(self, session):
        self.session = session

    def publish(self, event) -> None:
        if isinstance(event, AuditEvent):
            row = AuditLog(
                user_id=event.user_id,
                action=event.action,
                resource=event.resource,
                details=event.details,
                ip_address=event.ip_address,
                user_agent=event.user_agent,
            )
        elif isinstance(event, NotificationEvent):
            row = Notification(
                user_id=event.recipient_user_id,
                message=event.message,
                severity=event.severity,
                link=event.link,
            )
        else:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")

        try:
            self.session.add(row)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise


def get_publisher() -> EventPublisher:
    return current_app.extensions["event_publisher"]


def emit(publisher: EventPublisher | None, event) -> None:
    """Deliver one event; failures are logged, never raised."""
    publisher = publisher or get_publisher()
    try:
        publisher.publish(event)
    except Exception:
        current_app.logger.exception("Failed to publish %s", type(event).__name__)


def emit_all(publisher: EventPublisher | None, events) -> None:
    for event in events:
        emit(publisher, event)


def request_metadata() -> tuple[str | None, str | None]:
    """Client IP and User-Agent of the current HTTP request, if any."""
    if not has_request_context():
        return None, None
    return request.remote_addr, request.headers.get("User-Agent")


def audit_event(user_id: int | None, action: str, resource: str, details: str | None = None) -> AuditEvent:
    ip_address, user_agent = request_metadata()
    return AuditEvent(
        user_id=user_id,
        action=action,
        resource=resource,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
    )
