# Overview: Typed service-layer failures with stable codes for the HTTP layer.

"""
Error taxonomy shared by every service.

Each failure carries a stable ``code`` so API clients can branch on it
instead of matching message text, and a ``status_code`` used by the
Flask error handler registered in ``create_app``.

Services raise these; ``transaction()`` rolls back whatever was pending,
so no partial side effects survive a raised error.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base for all expected, caller-visible failures."""

    code = "SERVICE_ERROR"
    status_code = 400

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class AuthenticationRequired(ServiceError):
    """No caller context, or the bearer credential is invalid."""

    code = "AUTHENTICATION_REQUIRED"
    status_code = 401


class AuthorizationDenied(ServiceError):
    """Authenticated, but not allowed to touch the target."""

    code = "AUTHORIZATION_DENIED"
    status_code = 403


class ValidationError(ServiceError, ValueError):
    """Missing or malformed input; raised before any state is touched."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFound(ServiceError):
    code = "NOT_FOUND"
    status_code = 404


class IllegalStateTransition(ServiceError):
    """The entity is not in a state that allows the requested transition."""

    code = "ILLEGAL_STATE_TRANSITION"
    status_code = 409


class InsufficientStock(ServiceError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409


class Conflict(ServiceError):
    """Uniqueness violation (duplicate location name, duplicate email, ...)."""

    code = "CONFLICT"
    status_code = 409
