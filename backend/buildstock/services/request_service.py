# Overview: Service-layer operations for inventory requests; the PENDING -> APPROVED/REJECTED workflow.

"""
Request Workflow

STATE MACHINE:
    PENDING -> APPROVED   (applies +quantity to the ledger, same transaction)
    PENDING -> REJECTED   (no inventory effect)
Terminal states are never left.

RACES: the transition is a single conditional UPDATE

    UPDATE inventory_requests SET status = :new ...
    WHERE id = :id AND status = 'PENDING'

and only the caller that changes exactly one row goes on to apply the
inventory effect. A loser sees "already processed" and nothing is
double-applied.

Nothing is reserved at creation time; an approval may exceed global stock.
"""

from __future__ import annotations

from flask import current_app

from ..errors import AuthorizationDenied, IllegalStateTransition, NotFound, ValidationError
from ..models import InventoryRequest, Location, Product, User
from ..models.auth import ROLE_SUPER_ADMIN
from ..models.communications import SEVERITY_ERROR, SEVERITY_INFO, SEVERITY_SUCCESS
from ..models.inventory import REQUEST_APPROVED, REQUEST_PENDING, REQUEST_REJECTED
from ..models.locations import LOCATION_SITE
from ..time_utils import utcnow
from ..validation import CreateRequestCommand, Page
from . import events
from .access_service import CallerContext, require_location_access, scoped_filter
from .concurrency import UPSERT_RETRYABLE_ERRORS, run_with_retry, transaction
from .inventory_service import apply_approval
from .product_service import VISIBLE_STATUSES


ALREADY_PROCESSED = "Request has already been processed"
PRODUCT_UNAVAILABLE = "Product is not available for requests"


def _dashboard_link(location: Location | None) -> str:
    if location is not None and location.type == LOCATION_SITE:
        return "/dashboard/site"
    return "/dashboard/store"


def _active_super_admin_ids(session) -> list[int]:
    rows = (
        session.query(User.id)
        .filter(User.role == ROLE_SUPER_ADMIN, User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )
    return [row.id for row in rows]


def get_request(session, caller: CallerContext, request_id: int, *, publisher=None) -> InventoryRequest:
    inventory_request = session.get(InventoryRequest, request_id)
    if inventory_request is None:
        raise NotFound("Request not found")
    require_location_access(
        caller, inventory_request.location_id,
        resource=f"request:{request_id}",
        publisher=publisher,
    )
    return inventory_request


def create_request(session, caller: CallerContext, command: CreateRequestCommand, *, publisher=None) -> InventoryRequest:
    """
    Open a PENDING request for stock at a location.

    Staff request for their own location (location_id defaults to it);
    a super admin assigns stock to any location and must name it.
    """
    if caller.is_super_admin:
        if command.location_id is None:
            raise ValidationError("location_id is required")
        location_id = command.location_id
    else:
        if caller.assigned_location_id is None:
            raise AuthorizationDenied("You are not assigned to a location")
        location_id = command.location_id or caller.assigned_location_id
        require_location_access(caller, location_id, resource="requests:create", publisher=publisher)

    product = session.get(Product, command.product_id)
    if product is None:
        raise NotFound("Product not found")
    if product.status not in VISIBLE_STATUSES:
        raise ValidationError(PRODUCT_UNAVAILABLE, details={"status": product.status})
    location = session.get(Location, location_id)
    if location is None:
        raise NotFound("Location not found")

    with transaction(session):
        inventory_request = InventoryRequest(
            product_id=product.id,
            location_id=location.id,
            quantity=command.quantity,
            notes=command.notes,
            status=REQUEST_PENDING,
            requested_by_user_id=caller.id,
        )
        session.add(inventory_request)

    current_app.logger.info(
        "Inventory request %s created: product=%s location=%s qty=%s by user=%s",
        inventory_request.id, product.id, location.id, command.quantity, caller.id,
    )

    requester = session.get(User, caller.id)
    requester_name = requester.name if requester else f"user {caller.id}"
    if caller.is_super_admin:
        recipients = [location.assigned_user_id] if location.assigned_user_id else []
        message = f"{command.quantity} x {product.name} has been assigned to {location.name} and awaits approval."
        link = _dashboard_link(location)
    else:
        recipients = _active_super_admin_ids(session)
        message = f"New product assignment request: {product.name} for {location.name} by {requester_name}"
        link = "/dashboard/superadmin/assignments"

    events.emit_all(publisher, [
        events.NotificationEvent(recipient_user_id=user_id, message=message, severity=SEVERITY_INFO, link=link)
        for user_id in recipients
        if user_id != caller.id
    ])
    return inventory_request


def _decide(session, caller: CallerContext, request_id: int, new_status: str, *, publisher=None) -> InventoryRequest:
    inventory_request = session.get(InventoryRequest, request_id)
    if inventory_request is None:
        raise NotFound("Request not found")
    if inventory_request.status != REQUEST_PENDING:
        raise IllegalStateTransition(ALREADY_PROCESSED)
    if not caller.is_super_admin:
        require_location_access(
            caller, inventory_request.location_id,
            resource=f"request:{request_id}",
            publisher=publisher,
        )

    # The product may have been retired while the request was pending
    if new_status == REQUEST_APPROVED and inventory_request.product.status not in VISIBLE_STATUSES:
        raise IllegalStateTransition(PRODUCT_UNAVAILABLE, details={"status": inventory_request.product.status})

    location_id = inventory_request.location_id
    product_id = inventory_request.product_id
    quantity = inventory_request.quantity

    def _op():
        with transaction(session):
            updated = (
                session.query(InventoryRequest)
                .filter(InventoryRequest.id == request_id, InventoryRequest.status == REQUEST_PENDING)
                .update(
                    {
                        InventoryRequest.status: new_status,
                        InventoryRequest.approved_by_user_id: caller.id,
                        InventoryRequest.decided_at: utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            if updated != 1:
                raise IllegalStateTransition(ALREADY_PROCESSED)
            if new_status == REQUEST_APPROVED:
                apply_approval(session, location_id=location_id, product_id=product_id, quantity=quantity)

    run_with_retry(session, _op, retry_on=UPSERT_RETRYABLE_ERRORS)

    session.refresh(inventory_request)
    current_app.logger.info("Inventory request %s %s by user=%s", request_id, new_status, caller.id)

    product = inventory_request.product
    if new_status == REQUEST_APPROVED:
        notification = events.NotificationEvent(
            recipient_user_id=inventory_request.requested_by_user_id,
            message=f"Your request for {product.name} has been approved.",
            severity=SEVERITY_SUCCESS,
            link=_dashboard_link(inventory_request.location),
        )
    else:
        notification = events.NotificationEvent(
            recipient_user_id=inventory_request.requested_by_user_id,
            message=f"Your request for {product.name} has been rejected.",
            severity=SEVERITY_ERROR,
            link="#",
        )
    events.emit(publisher, notification)
    return inventory_request


def approve_request(session, caller: CallerContext, request_id: int, *, publisher=None) -> InventoryRequest:
    """PENDING -> APPROVED and +quantity at the request's location, atomically."""
    return _decide(session, caller, request_id, REQUEST_APPROVED, publisher=publisher)


def reject_request(session, caller: CallerContext, request_id: int, *, publisher=None) -> InventoryRequest:
    return _decide(session, caller, request_id, REQUEST_REJECTED, publisher=publisher)


def list_requests(
    session,
    caller: CallerContext,
    *,
    status: str | None = None,
    page: Page | None = None,
) -> tuple[list[InventoryRequest], int]:
    page = page or Page()
    query = scoped_filter(caller, session.query(InventoryRequest), InventoryRequest.location_id)
    if status:
        query = query.filter(InventoryRequest.status == status)

    total = query.count()
    items = (
        query.order_by(InventoryRequest.created_at.desc(), InventoryRequest.id.desc())
        .offset(page.offset)
        .limit(page.limit)
        .all()
    )
    return items, total


def pending_requests_for_caller(session, caller: CallerContext) -> list[InventoryRequest]:
    """PENDING requests awaiting the caller's location (all of them for a super admin)."""
    query = scoped_filter(caller, session.query(InventoryRequest), InventoryRequest.location_id)
    return (
        query.filter(InventoryRequest.status == REQUEST_PENDING)
        .order_by(InventoryRequest.created_at.desc(), InventoryRequest.id.desc())
        .all()
    )
