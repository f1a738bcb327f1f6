# Overview: Location-scoped access control; permit/deny decisions and query scoping.

"""
Access Scoping Engine

Three hard-coded roles and a single-level scoping relation:

- SUPER_ADMIN sees and touches every location.
- STORE_MANAGER / SITE_ENGINEER see only their one assigned location.
- Anything else is denied.

SECURITY INVARIANTS:
1. Scoped list queries fail CLOSED: staff without an assigned location get
   a filter that matches nothing, never the unscoped query.
2. Every denied location access by an authenticated non-admin is recorded
   as a LOCATION_VIOLATION audit event (fire-and-forget).
3. A missing caller is AuthenticationRequired, never AuthorizationDenied.

USAGE:
    caller = CallerContext.from_user(user)
    query = scoped_filter(caller, session.query(InventoryRecord), InventoryRecord.location_id)
    require_location_access(caller, location_id, resource="/api/stores/3")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from flask import current_app
from sqlalchemy import false

from ..errors import AuthenticationRequired, AuthorizationDenied
from ..models.auth import ROLE_SITE_ENGINEER, ROLE_STORE_MANAGER, ROLE_SUPER_ADMIN
from ..validation import coerce_positive_int
from . import events


SCOPED_ROLES = {ROLE_STORE_MANAGER, ROLE_SITE_ENGINEER}


@dataclass(frozen=True)
class CallerContext:
    """The only caller shape the services accept: {id, role, assigned location}."""
    id: int
    role: str
    assigned_location_id: int | None = None

    @classmethod
    def from_user(cls, user) -> "CallerContext":
        return cls(id=user.id, role=user.role, assigned_location_id=user.location_id)

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN


def can_access_location(caller: CallerContext, target_location_id: int | None) -> bool:
    """Deny-by-default permit check for one location."""
    if caller.role == ROLE_SUPER_ADMIN:
        return True
    if caller.role in SCOPED_ROLES:
        return caller.assigned_location_id is not None and caller.assigned_location_id == target_location_id
    return False


def accessible_location_ids(caller: CallerContext) -> set[int] | None:
    """
    Location ids the caller may see.

    Returns None for unrestricted callers; an empty set means nothing.
    """
    if caller.role == ROLE_SUPER_ADMIN:
        return None
    if caller.role in SCOPED_ROLES and caller.assigned_location_id is not None:
        return {caller.assigned_location_id}
    return set()


def scoped_filter(caller: CallerContext, query, column):
    """
    Restrict ``query`` to rows whose ``column`` is visible to the caller.

    Staff with no assigned location (and unknown roles) get ``false()``,
    so the query returns zero rows instead of everything.
    """
    location_ids = accessible_location_ids(caller)
    if location_ids is None:
        return query
    if not location_ids:
        return query.filter(false())
    return query.filter(column.in_(sorted(location_ids)))


# Checked in order; first present value wins.
TARGET_LOCATION_SOURCES = (
    ("view_args", "location_id"),
    ("args", "location_id"),
    ("body", "location_id"),
    ("body", "store_id"),
    ("body", "site_id"),
    ("args", "store_id"),
    ("args", "site_id"),
)


def extract_target_location_id(
    view_args: Mapping[str, Any] | None,
    args: Mapping[str, Any] | None,
    body: Mapping[str, Any] | None,
) -> int | None:
    """
    Resolve the single location id a request targets, or None.

    A present but malformed or non-positive value raises ValidationError;
    it never falls through to a later source.
    """
    sources = {"view_args": view_args or {}, "args": args or {}, "body": body or {}}
    for source, key in TARGET_LOCATION_SOURCES:
        value = sources[source].get(key)
        if value is None or value == "":
            continue
        return coerce_positive_int(value, key)
    return None


def location_violation_event(caller: CallerContext, location_id: int, resource: str) -> events.AuditEvent:
    assigned = caller.assigned_location_id if caller.assigned_location_id is not None else "none"
    return events.audit_event(
        user_id=caller.id,
        action=events.AUDIT_LOCATION_VIOLATION,
        resource=resource,
        details=(
            f"User ({caller.role}) attempted to access location {location_id} "
            f"but is assigned to location {assigned}"
        ),
    )


def require_location_access(
    caller: CallerContext | None,
    location_id: Any,
    *,
    resource: str,
    publisher=None,
) -> int:
    """
    Gate access to one location; returns the validated location id.

    Raises:
        AuthenticationRequired: no caller context
        ValidationError: location id malformed or non-positive (checked first)
        AuthorizationDenied: caller may not access the location (audited)
    """
    if caller is None:
        raise AuthenticationRequired("Authentication required")

    location_id = coerce_positive_int(location_id, "location_id")

    if can_access_location(caller, location_id):
        return location_id

    current_app.logger.warning(
        "Location access denied: user=%s role=%s location=%s resource=%s",
        caller.id, caller.role, location_id, resource,
    )
    events.emit(publisher, location_violation_event(caller, location_id, resource))
    raise AuthorizationDenied("Access denied. You can only access your assigned location.")


def require_super_admin(caller: CallerContext | None, *, resource: str, publisher=None) -> None:
    """Role gate for admin-only operations; denials are audited as PERMISSION_VIOLATION."""
    if caller is None:
        raise AuthenticationRequired("Authentication required")
    if caller.is_super_admin:
        return

    current_app.logger.warning(
        "Super admin required: user=%s role=%s resource=%s", caller.id, caller.role, resource,
    )
    events.emit(publisher, events.audit_event(
        user_id=caller.id,
        action=events.AUDIT_PERMISSION_VIOLATION,
        resource=resource,
        details=f"User ({caller.role}) attempted a super admin operation",
    ))
    raise AuthorizationDenied("Super admin access required")
