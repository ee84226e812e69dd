# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service with Multi-Tenant Support

WHY: Secure session management with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

MULTI-TENANT: Sessions capture org_id at creation time. This establishes
the tenant context (and the claims bag: role, provider, customer, store
slug) for every authenticated request.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS, default 24h)
- Idle timeout (SESSION_IDLE_TIMEOUT_HOURS, default 2h)
- Revocable on logout or security events
- Tenant context (org_id) is immutable for the session lifetime
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User, Organization
from ..models.auth import ROLE_SHOPPER
from consignment.time_utils import utcnow


@dataclass
class SessionContext:
    """
    Complete session context returned by validate_session.

    This is the claims bag the rest of the application consumes:
    identity, tenant and role. It is never computed from client input.
    """
    user: User
    session: SessionToken
    org_id: int
    role: str
    provider_id: int | None
    customer_id: int | None
    store_slug: str


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_TIMEOUT_HOURS", 2))


def generate_token() -> str:
    """Plaintext bearer token handed to the client; only its hash is stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # High-entropy tokens need no salt or stretching
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Open a session bound to the user's organization.

    Returns (session_record, plaintext_token). Raises ValueError for a
    missing user or an inactive organization.
    """
    user = db.session.get(User, user_id)
    if user is None or not user.org_id:
        raise ValueError("User not found or not attached to an organization")

    org = db.session.get(Organization, user.org_id)
    if org is None or not org.is_active:
        raise ValueError("Organization is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        org_id=user.org_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _live_session(token: str) -> SessionToken | None:
    return db.session.query(SessionToken).filter(
        SessionToken.token_hash == hash_token(token),
        SessionToken.is_revoked.is_(False),
    ).first()


def _revoke(session: SessionToken, reason: str, now) -> None:
    session.is_revoked = True
    session.revoked_at = now
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if:
    - Token is invalid, expired, or revoked
    - User account is deactivated
    - Organization is deactivated

    Updates last_used_at on successful validation (activity tracking).
    """
    now = utcnow()
    session = _live_session(token)
    if not session or session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout", now)
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated", now)
        return None

    org = session.organization
    if not org or not org.is_active:
        _revoke(session, "Organization deactivated", now)
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(
        user=user,
        session=session,
        org_id=session.org_id,
        role=user.role,
        provider_id=user.provider_id,
        customer_id=user.id if user.role == ROLE_SHOPPER else None,
        store_slug=org.slug,
    )


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """False when the token is unknown or already revoked."""
    session = _live_session(token)
    if not session:
        return False

    _revoke(session, reason, utcnow())
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    """Used on deactivation and password change. Returns the number revoked."""
    revoked = db.session.query(SessionToken).filter(
        SessionToken.user_id == user_id,
        SessionToken.is_revoked.is_(False),
    ).update(
        {"is_revoked": True, "revoked_at": utcnow(), "revoked_reason": reason},
        synchronize_session="fetch",
    )
    db.session.commit()
    return revoked


def cleanup_expired_sessions(older_than_days: int = 30) -> int:
    """
    Delete expired and revoked sessions older than the cutoff.

    Returns count of sessions deleted. Run periodically (flask sessions cleanup).
    """
    now = utcnow()
    cutoff = now - timedelta(days=older_than_days)

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < now,
            SessionToken.is_revoked.is_(True)
        ),
        SessionToken.created_at < cutoff
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
