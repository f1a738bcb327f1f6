# Overview: Service-layer operations for auth; password hashing, user creation, and login checks.

"""
Authentication Service

WHY: Every stock movement and approval must be attributable to one user.
Uses bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters; upper, lower, digit, and special character required
- Session tokens managed separately (see session_service.py)
- Deactivated users cannot authenticate
"""

import re

import bcrypt
from flask import current_app

from ..errors import Conflict, NotFound, ValidationError
from ..models import Location, User
from ..models.auth import ROLE_SITE_ENGINEER, ROLE_STORE_MANAGER, ROLE_SUPER_ADMIN
from ..models.locations import LOCATION_SITE, LOCATION_STORE
from ..time_utils import utcnow
from .concurrency import transaction


# Which staff role may hold which location type
ROLE_FOR_LOCATION_TYPE = {
    LOCATION_STORE: ROLE_STORE_MANAGER,
    LOCATION_SITE: ROLE_SITE_ENGINEER,
}


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def ensure_email_available(session, email: str) -> None:
    if session.query(User.id).filter(User.email == email.lower()).first() is not None:
        raise Conflict("A user with this email already exists")


def build_user(session, *, email: str, password: str, name: str, role: str) -> User:
    """
    Create a User row in the current transaction (flushed, not committed).

    Raises Conflict on a duplicate email and PasswordValidationError on a
    weak password. Used inside larger units of work such as location creation.
    """
    email = email.strip().lower()
    ensure_email_available(session, email)
    user = User(
        email=email,
        name=name,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    session.add(user)
    session.flush()
    return user


def assign_user_to_location(session, user: User, location: Location) -> None:
    """
    Make ``user`` the one assigned user of ``location``.

    Keeps both sides consistent: the previous holder of the location is
    unassigned, and the user is removed from any location they held before.
    """
    expected_role = ROLE_FOR_LOCATION_TYPE[location.type]
    if user.role != expected_role:
        raise ValidationError(f"A {location.type.lower()} must be assigned a {expected_role} user")

    if location.assigned_user_id is not None and location.assigned_user_id != user.id:
        previous = session.get(User, location.assigned_user_id)
        if previous is not None and previous.location_id == location.id:
            previous.location_id = None

    if user.location_id is not None and user.location_id != location.id:
        old_location = session.get(Location, user.location_id)
        if old_location is not None and old_location.assigned_user_id == user.id:
            old_location.assigned_user_id = None

    location.assigned_user_id = user.id
    user.location_id = location.id
    session.flush()


def create_user(session, *, email: str, password: str, name: str, role: str, location_id: int | None = None) -> User:
    """
    Create and commit a user, optionally assigned to an existing location.

    Super admins never carry a location.
    """
    if role == ROLE_SUPER_ADMIN and location_id is not None:
        raise ValidationError("A super admin cannot be assigned to a location")

    with transaction(session):
        user = build_user(session, email=email, password=password, name=name, role=role)
        if location_id is not None:
            location = session.get(Location, location_id)
            if location is None:
                raise NotFound("Location not found")
            assign_user_to_location(session, user, location)
    return user


def authenticate(session, email: str, password: str) -> User | None:
    """
    Check credentials.

    Returns the User if the password matches, None otherwise. Inactive users
    are returned too so the caller can distinguish "deactivated" (403) from
    bad credentials (401). Updates last_login_at on success.
    """
    user = session.query(User).filter(User.email == (email or "").strip().lower()).first()
    if user is None or not verify_password(password or "", user.password_hash):
        return None
    if user.is_active:
        user.last_login_at = utcnow()
        session.commit()
    return user


def change_password(session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password or "", user.password_hash):
        raise ValidationError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    session.commit()
