# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on user creation and password change
- Session management with token-based auth
- Deactivated accounts rejected at login (403) and on every request (401)
- Self-registration disabled; users are created by a super admin
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_roles
from ..errors import AuthenticationRequired, AuthorizationDenied, ValidationError
from ..extensions import db
from ..models.auth import ROLE_SUPER_ADMIN
from ..services import auth_service, session_service
from ..validation import CreateUserCommand


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")
    if not email or not password:
        raise ValidationError("email and password required")

    user = auth_service.authenticate(db.session, email, password)
    if user is None:
        current_app.logger.info("Failed login for %s", email)
        raise AuthenticationRequired("Invalid credentials")
    if not user.is_active:
        raise AuthorizationDenied("Account is deactivated. Please contact administrator.")

    _, token = session_service.create_session(
        db.session,
        user,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify({"user": user.to_dict(), "token": token}), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(db.session, g.auth_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    data = user.to_dict()
    data["location"] = (
        {"id": user.location.id, "name": user.location.name, "type": user.location.type}
        if user.location else None
    )
    return jsonify({"user": data}), 200


@auth_bp.put("/password")
@require_auth
def change_password_route():
    """Change own password; every other session of the user is revoked."""
    data = request.get_json(silent=True) or {}
    new_password = data.get("new_password")
    if not new_password:
        raise ValidationError("new_password required")

    auth_service.change_password(db.session, g.current_user, data.get("current_password"), new_password)
    session_service.revoke_all_user_sessions(db.session, g.current_user.id, reason="Password changed")
    return jsonify({"message": "Password updated. Please log in again."}), 200


@auth_bp.post("/register")
@require_auth
@require_roles(ROLE_SUPER_ADMIN)
def register_route():
    """Create a user (super admin only)."""
    command = CreateUserCommand.from_payload(request.get_json(silent=True) or {})
    user = auth_service.create_user(
        db.session,
        email=command.email,
        password=command.password,
        name=command.name,
        role=command.role,
        location_id=command.location_id,
    )
    current_app.logger.info("User %s created by user=%s", user.id, g.caller.id)
    return jsonify({"user": user.to_dict()}), 201
