# Overview: Request decorators for API routes; authentication, role gates, and location gates.

from functools import wraps

from flask import g, jsonify, request

from .errors import AuthenticationRequired, AuthorizationDenied, ServiceError, ValidationError
from .extensions import db
from .services import access_service, events, session_service


def error_response(exc: ServiceError):
    return jsonify(exc.to_dict()), exc.status_code


def _is_authenticated() -> bool:
    return getattr(g, "caller", None) is not None


def require_auth(f):
    """
    Require a valid bearer token and establish the caller context.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.caller: CallerContext {id, role, assigned_location_id}
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if the header is missing, the token is invalid or
    expired, or the user account is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return error_response(AuthenticationRequired("Authentication required"))

        token = auth_header.split(" ", 1)[1].strip()
        context = session_service.validate_session(db.session, token)
        if not context:
            return error_response(AuthenticationRequired("Invalid or expired token"))

        g.current_user = context.user
        g.caller = context.caller
        g.session_context = context
        g.auth_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_roles(*roles: str):
    """
    Require the caller to hold one of ``roles``.

    Denials are audited as PERMISSION_VIOLATION and return 403.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return error_response(AuthenticationRequired("Authentication required"))

            caller = g.caller
            if caller.role not in roles:
                events.emit(None, events.audit_event(
                    user_id=caller.id,
                    action=events.AUDIT_PERMISSION_VIOLATION,
                    resource=request.path,
                    details=f"Role {caller.role} attempted {request.method} requiring one of: {', '.join(roles)}",
                ))
                return error_response(AuthorizationDenied("Insufficient permissions"))

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def authorize_location_access(f):
    """
    Gate a route on the location it targets.

    Resolves the target from the path, query string, or JSON body (see
    access_service.extract_target_location_id). Routes that target no
    location pass through; malformed ids are audited as PARAMETER_TAMPERING
    and return 400; denials are audited and return 403.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return error_response(AuthenticationRequired("Authentication required"))

        caller = g.caller
        body = request.get_json(silent=True) if request.is_json else None
        try:
            target = access_service.extract_target_location_id(
                request.view_args,
                request.args,
                body if isinstance(body, dict) else None,
            )
        except ValidationError as exc:
            events.emit(None, events.audit_event(
                user_id=caller.id,
                action=events.AUDIT_PARAMETER_TAMPERING,
                resource=request.path,
                details=f"Malformed location parameter: {exc.message}",
            ))
            return error_response(exc)

        try:
            if target is not None:
                access_service.require_location_access(caller, target, resource=request.path)
        except ServiceError as exc:
            return error_response(exc)

        return f(*args, **kwargs)

    return decorated_function


def require_location_assignment(f):
    """Staff without an assigned location cannot use location-bound routes."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return error_response(AuthenticationRequired("Authentication required"))

        caller = g.caller
        if not caller.is_super_admin and caller.assigned_location_id is None:
            events.emit(None, events.audit_event(
                user_id=caller.id,
                action=events.AUDIT_PERMISSION_VIOLATION,
                resource=request.path,
                details=f"User ({caller.role}) has no location assignment",
            ))
            return error_response(AuthorizationDenied("No location assigned. Contact an administrator."))

        return f(*args, **kwargs)

    return decorated_function
