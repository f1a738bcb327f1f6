# Overview: Service-layer operations for session; bearer tokens and caller resolution.

"""
Session Token Management Service

WHY: Secure session management with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

SCOPING: validate_session resolves the caller's role and assigned location
from the CURRENT user row on every call, so a reassignment or a site
finish (which deactivates its engineers) takes effect on the next request.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_MINUTES, default 24h)
- Idle timeout (SESSION_IDLE_TIMEOUT_MINUTES, default 2h)
- Revocable on logout, password change, or deactivation
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..models import SessionToken, User
from ..time_utils import utcnow
from .access_service import CallerContext


@dataclass
class SessionContext:
    """Authenticated user plus the caller context derived from it."""
    user: User
    session: SessionToken
    caller: CallerContext


def _absolute_timeout() -> timedelta:
    return timedelta(minutes=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_MINUTES", 24 * 60))


def _idle_timeout() -> timedelta:
    return timedelta(minutes=current_app.config.get("SESSION_IDLE_TIMEOUT_MINUTES", 120))


def generate_token() -> str:
    """64-character hex token; the plaintext is never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _revoke(record: SessionToken, reason: str) -> None:
    record.is_revoked = True
    record.revoked_at = utcnow()
    record.revoked_reason = reason


def create_session(
    session,
    user: User,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create a session token for an active user.

    Returns (session_record, plaintext_token).
    """
    if not user.is_active:
        raise ValueError("User account is deactivated")

    plaintext_token = generate_token()
    now = utcnow()

    record = SessionToken(
        user_id=user.id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    session.add(record)
    session.commit()
    return record, plaintext_token


def validate_session(session, token: str) -> SessionContext | None:
    """
    Validate a bearer token.

    Returns None if the token is unknown, revoked, expired, idle too long,
    or belongs to a deactivated user. Idle and deactivated sessions are
    revoked on the way out. Updates last_used_at on success.
    """
    now = utcnow()
    record = session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if record is None:
        return None

    if record.expires_at < now:
        return None

    if now - record.last_used_at > _idle_timeout():
        _revoke(record, "Idle timeout")
        session.commit()
        return None

    user = record.user
    if user is None or not user.is_active:
        _revoke(record, "User account deactivated")
        session.commit()
        return None

    record.last_used_at = now
    session.commit()

    return SessionContext(user=user, session=record, caller=CallerContext.from_user(user))


def revoke_session(session, token: str, reason: str = "User logout") -> bool:
    """Revoke one token. Returns False if it was not an active session."""
    record = session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if record is None:
        return False

    _revoke(record, reason)
    session.commit()
    return True


def revoke_all_user_sessions(session, user_id: int, reason: str = "Revoke all sessions", *, commit: bool = True) -> int:
    """
    Revoke every active session of a user; returns the count.

    Pass ``commit=False`` to include the revocation in a larger transaction.
    """
    records = session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for record in records:
        _revoke(record, reason)
    if commit:
        session.commit()
    return len(records)


def cleanup_expired_sessions(session, retention_days: int = 30) -> int:
    """Delete sessions older than the retention window that are expired or revoked."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = session.query(SessionToken).filter(
        (SessionToken.expires_at < utcnow()) | SessionToken.is_revoked.is_(True),
        SessionToken.created_at < cutoff,
    ).delete(synchronize_session=False)
    session.commit()
    return deleted
