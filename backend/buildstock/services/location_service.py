# Overview: Service-layer operations for stores and sites; creation, assignment, finish, and delete guards.

"""
Location Management

Stores and sites share one table and one set of operations; the route
layer fixes the type. All writes are super-admin only.

ATOMIC UNITS:
- create: location + optional new manager/engineer + assignment
- finish: zero-inventory check + COMPLETED + engineer deactivation
- delete: inventory/request guard + unassignment + row removal
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import AuthorizationDenied, Conflict, IllegalStateTransition, NotFound, ValidationError
from ..models import InventoryRecord, InventoryRequest, Location, User
from ..models.auth import ROLE_SITE_ENGINEER
from ..models.locations import LOCATION_ACTIVE, LOCATION_COMPLETED, VALID_LOCATION_TYPES
from ..validation import CreateLocationCommand, Page, UpdateLocationCommand
from .access_service import CallerContext, require_location_access, require_super_admin, scoped_filter
from .auth_service import ROLE_FOR_LOCATION_TYPE, assign_user_to_location, build_user
from .concurrency import lock_for_update, transaction
from .session_service import revoke_all_user_sessions


def _check_type(location_type: str) -> None:
    if location_type not in VALID_LOCATION_TYPES:
        raise ValidationError(f"Unknown location type: {location_type}")


def _ensure_name_available(session, location_type: str, name: str, exclude_id: int | None = None) -> None:
    query = session.query(Location.id).filter(
        Location.type == location_type,
        func.lower(Location.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.filter(Location.id != exclude_id)
    if query.first() is not None:
        raise Conflict(f"A {location_type.lower()} named '{name}' already exists")


def _get(session, location_type: str, location_id: int) -> Location:
    location = session.get(Location, location_id)
    if location is None or location.type != location_type:
        raise NotFound(f"{location_type.title()} not found")
    return location


def create_location(
    session,
    caller: CallerContext,
    location_type: str,
    command: CreateLocationCommand,
    *,
    publisher=None,
) -> Location:
    """
    Create a store or site, optionally with its manager/engineer.

    ``command.new_user`` creates the user in the same transaction;
    ``command.assigned_user_id`` assigns an existing one. Either way the
    user's previous location (if any) loses them.
    """
    _check_type(location_type)
    require_super_admin(caller, resource=f"{location_type.lower()}s:create", publisher=publisher)
    _ensure_name_available(session, location_type, command.name)

    try:
        with transaction(session):
            location = Location(
                name=command.name,
                type=location_type,
                status=LOCATION_ACTIVE,
                region=command.region,
                description=command.description,
                address=command.address,
            )
            session.add(location)
            session.flush()

            user = None
            if command.new_user is not None:
                user = build_user(
                    session,
                    email=command.new_user.email,
                    password=command.new_user.password,
                    name=command.new_user.name,
                    role=ROLE_FOR_LOCATION_TYPE[location_type],
                )
            elif command.assigned_user_id is not None:
                user = session.get(User, command.assigned_user_id)
                if user is None:
                    raise NotFound("Assigned user not found")
            if user is not None:
                assign_user_to_location(session, user, location)
    except IntegrityError:
        raise Conflict(f"A {location_type.lower()} with this name or user email already exists")

    current_app.logger.info("%s %s created by user=%s", location_type.title(), location.id, caller.id)
    return location


def list_locations(
    session,
    caller: CallerContext,
    location_type: str,
    *,
    page: Page | None = None,
) -> tuple[list[Location], int]:
    """Locations of one type visible to the caller; staff see only their own."""
    _check_type(location_type)
    page = page or Page()
    query = scoped_filter(caller, session.query(Location).filter(Location.type == location_type), Location.id)
    if not caller.is_super_admin:
        query = query.filter(Location.status != LOCATION_COMPLETED)

    total = query.count()
    items = query.order_by(Location.name.asc()).offset(page.offset).limit(page.limit).all()
    return items, total


def get_location(session, caller: CallerContext, location_type: str, location_id: int, *, publisher=None) -> Location:
    """Access-checked read; a COMPLETED location is visible only to a super admin."""
    _check_type(location_type)
    require_location_access(caller, location_id, resource=f"{location_type.lower()}:{location_id}", publisher=publisher)
    location = _get(session, location_type, location_id)
    if location.status == LOCATION_COMPLETED and not caller.is_super_admin:
        raise AuthorizationDenied(f"This {location_type.lower()} has been completed")
    return location


def update_location(
    session,
    caller: CallerContext,
    location_type: str,
    location_id: int,
    command: UpdateLocationCommand,
    *,
    publisher=None,
) -> Location:
    _check_type(location_type)
    require_super_admin(caller, resource=f"{location_type.lower()}:{location_id}", publisher=publisher)
    location = _get(session, location_type, location_id)

    changes = dict(command.changes)
    if changes.get("status") == LOCATION_COMPLETED and location.status != LOCATION_COMPLETED:
        raise IllegalStateTransition("Use finish to complete a location")
    if "name" in changes:
        _ensure_name_available(session, location_type, changes["name"], exclude_id=location.id)

    with transaction(session):
        if "assigned_user_id" in changes:
            user_id = changes.pop("assigned_user_id")
            if user_id is None:
                if location.assigned_user_id is not None:
                    previous = session.get(User, location.assigned_user_id)
                    if previous is not None and previous.location_id == location.id:
                        previous.location_id = None
                    location.assigned_user_id = None
            else:
                user = session.get(User, user_id)
                if user is None:
                    raise NotFound("Assigned user not found")
                assign_user_to_location(session, user, location)
        for key, value in changes.items():
            setattr(location, key, value)

    return location


def finish_location(session, caller: CallerContext, location_type: str, location_id: int, *, publisher=None) -> Location:
    """
    Mark a location COMPLETED.

    Fails while any stock remains (status unchanged). On success every
    SITE_ENGINEER assigned there is deactivated and their sessions revoked,
    all in one transaction.
    """
    _check_type(location_type)
    require_super_admin(caller, resource=f"{location_type.lower()}:{location_id}:finish", publisher=publisher)
    _get(session, location_type, location_id)

    with transaction(session):
        location = lock_for_update(session.query(Location).filter(Location.id == location_id)).one()
        if location.status == LOCATION_COMPLETED:
            raise IllegalStateTransition(f"{location_type.title()} is already completed")

        remaining = (
            session.query(func.coalesce(func.sum(InventoryRecord.quantity), 0))
            .filter(InventoryRecord.location_id == location_id)
            .scalar()
        )
        if remaining > 0:
            raise IllegalStateTransition(
                f"Cannot finish {location_type.lower()}. Inventory is not empty.",
                details={"remaining_stock": int(remaining)},
            )

        location.status = LOCATION_COMPLETED
        engineers = session.query(User).filter(
            User.location_id == location_id,
            User.role == ROLE_SITE_ENGINEER,
        ).all()
        for engineer in engineers:
            engineer.is_active = False
            revoke_all_user_sessions(session, engineer.id, reason="Site completed", commit=False)

    current_app.logger.info(
        "%s %s completed by user=%s; %s engineer(s) deactivated",
        location_type.title(), location_id, caller.id, len(engineers),
    )
    return location


def delete_location(session, caller: CallerContext, location_type: str, location_id: int, *, publisher=None) -> None:
    """Hard delete, refused while inventory records or request history reference the location."""
    _check_type(location_type)
    require_super_admin(caller, resource=f"{location_type.lower()}:{location_id}:delete", publisher=publisher)
    location = _get(session, location_type, location_id)

    with transaction(session):
        record_count = session.query(InventoryRecord).filter(InventoryRecord.location_id == location_id).count()
        if record_count > 0:
            raise IllegalStateTransition(
                f"Cannot delete {location_type.lower()} with existing inventory",
                details={"inventory_records": record_count},
            )
        if session.query(InventoryRequest.id).filter(InventoryRequest.location_id == location_id).first() is not None:
            raise IllegalStateTransition(f"Cannot delete {location_type.lower()} with request history")

        session.query(User).filter(User.location_id == location_id).update(
            {User.location_id: None}, synchronize_session=False,
        )
        location.assigned_user_id = None
        session.flush()
        session.delete(location)

    current_app.logger.info("%s %s deleted by user=%s", location_type.title(), location_id, caller.id)
