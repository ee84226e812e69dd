# Overview: Service-layer operations for consignor invitations; tokenized sign-up links sent by staff.

"""
Invitation Service

Staff invite a consignor by email. The invitee follows the emailed link,
which carries a random token, and registers: that creates an ACTIVE
provider and its CONSIGNOR portal login in one transaction.

Tokens are handled like session tokens: the plaintext goes out once in the
email and only its SHA-256 hash is stored, so resending an invitation
issues a fresh token and the old link stops working.

Lifecycle:
    PENDING -> ACCEPTED | CANCELLED
A PENDING invitation past expires_at reads as EXPIRED and cannot be
accepted; resending it extends the expiry.
"""

from datetime import timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Provider, ProviderInvitation, User
from ..models.auth import ROLE_CONSIGNOR
from ..models.consignors import (
    INVITATION_ACCEPTED, INVITATION_CANCELLED, INVITATION_PENDING, INVITATION_STATUSES,
)
from ..validation import ConflictError, NotFoundError, ValidationError, parse_percentage
from consignment.time_utils import utcnow
from . import auth_service
from .concurrency import transition_status
from .email_service import EmailDeliveryError, send_email
from .provider_service import create_provider
from .session_service import generate_token, hash_token
from .tenant_service import TenantScope, validate_org_active


def _ttl() -> timedelta:
    return timedelta(days=current_app.config.get("INVITATION_TTL_DAYS", 7))


def invitation_link(invitation: ProviderInvitation, token: str) -> str:
    base = current_app.config.get("CLIENT_URL", "http://localhost:4200").rstrip("/")
    return f"{base}/signup/consignor?token={token}&shop={invitation.organization.slug}"


def _send(invitation: ProviderInvitation, token: str) -> bool:
    """Email the sign-up link. Failures are logged; the invitation stands."""
    shop = invitation.organization.name
    body = (
        f"Hi {invitation.name},\n\n"
        f"{shop} has invited you to consign with them. Create your consignor account here:\n\n"
        f"{invitation_link(invitation, token)}\n\n"
        f"This link expires on {invitation.expires_at:%B %d, %Y}."
    )
    try:
        send_email(invitation.email, f"You're invited to consign with {shop}", body, tags=["PROVIDER_INVITATION"])
        return True
    except EmailDeliveryError:
        current_app.logger.warning("Invitation email to %s failed", invitation.email, exc_info=True)
        return False


def _pending_for_email(scope: TenantScope, email: str, now) -> ProviderInvitation | None:
    return scope.query(
        ProviderInvitation,
        func.lower(ProviderInvitation.email) == email,
        ProviderInvitation.status == INVITATION_PENDING,
        ProviderInvitation.expires_at > now,
    ).first()


def create_invitation(
    scope: TenantScope,
    *,
    email: str,
    name: str,
    invited_by_user_id: int | None = None,
    commission_rate=None,
) -> tuple[ProviderInvitation, str]:
    """
    Invite a consignor. Returns (invitation, plaintext_token).

    Raises ConflictError when the email already belongs to a provider or a
    user of this shop, or already has a live invitation.
    """
    email = auth_service.normalize_email(email)
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if len(name) > 200:
        raise ValidationError("name exceeds max length 200")
    rate = parse_percentage(commission_rate, "commission_rate") if commission_rate not in (None, "") else None

    if scope.query(Provider, func.lower(Provider.email) == email).first():
        raise ConflictError(f"A provider with email {email} already exists")
    if scope.query(User, User.email == email).first():
        raise ConflictError("A user with this email already exists in this shop")

    now = utcnow()
    if _pending_for_email(scope, email, now):
        raise ConflictError("A pending invitation already exists for this email address")

    token = generate_token()
    invitation = ProviderInvitation(
        invited_by_user_id=invited_by_user_id,
        email=email,
        name=name,
        commission_rate=rate,
        token_hash=hash_token(token),
        status=INVITATION_PENDING,
        expires_at=now + _ttl(),
        sent_count=1,
    )
    scope.add(invitation)
    db.session.commit()

    current_app.logger.info("Invited %s to org %s (invitation %s)", email, scope.org_id, invitation.id)
    _send(invitation, token)
    return invitation, token


def list_invitations(
    scope: TenantScope,
    *,
    status: str | None = INVITATION_PENDING,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[ProviderInvitation], int]:
    """Newest first. status=None lists every invitation."""
    query = scope.query(ProviderInvitation)
    if status:
        status = status.upper()
        if status not in INVITATION_STATUSES:
            raise ValidationError("status must be one of: " + ", ".join(sorted(INVITATION_STATUSES)))
        query = query.filter(ProviderInvitation.status == status)
    total = query.count()
    rows = (
        query.order_by(ProviderInvitation.created_at.desc(), ProviderInvitation.id.desc())
        .offset(offset).limit(limit).all()
    )
    return rows, total


def get_invitation_by_token(token: str) -> ProviderInvitation:
    """Public lookup. Unknown tokens and inactive shops are both 404."""
    if not token:
        raise NotFoundError("Invitation not found")
    invitation = (
        db.session.query(ProviderInvitation)
        .filter(ProviderInvitation.token_hash == hash_token(token))
        .first()
    )
    if invitation is None or not invitation.organization.is_active:
        raise NotFoundError("Invitation not found")
    return invitation


def cancel_invitation(scope: TenantScope, invitation_id: int) -> ProviderInvitation:
    invitation = scope.get(ProviderInvitation, invitation_id, label="Invitation")
    moved = transition_status(
        ProviderInvitation,
        org_id=scope.org_id,
        row_id=invitation.id,
        from_status=INVITATION_PENDING,
        to_status=INVITATION_CANCELLED,
        extra={"cancelled_at": utcnow()},
    )
    if not moved:
        db.session.rollback()
        raise ConflictError(f"Invitation is {invitation.status}, only pending invitations can be cancelled")
    db.session.commit()
    db.session.refresh(invitation)
    current_app.logger.info("Cancelled invitation %s in org %s", invitation.id, scope.org_id)
    return invitation


def resend_invitation(scope: TenantScope, invitation_id: int) -> tuple[ProviderInvitation, str]:
    """New token, fresh expiry, email again. Returns (invitation, plaintext_token)."""
    invitation = scope.get(ProviderInvitation, invitation_id, label="Invitation")
    if invitation.status != INVITATION_PENDING:
        raise ConflictError(f"Invitation is {invitation.status}, only pending invitations can be resent")

    token = generate_token()
    invitation.token_hash = hash_token(token)
    invitation.expires_at = utcnow() + _ttl()
    invitation.sent_count = (invitation.sent_count or 0) + 1
    db.session.commit()

    current_app.logger.info("Resent invitation %s (send #%s)", invitation.id, invitation.sent_count)
    _send(invitation, token)
    return invitation, token


def register_from_invitation(
    token: str,
    *,
    email: str,
    password: str,
    display_name: str | None = None,
    phone: str | None = None,
) -> tuple[Provider, User]:
    """
    Accept an invitation: create the ACTIVE provider and its portal login,
    and mark the invitation ACCEPTED, all in one transaction.

    The email must match the invitation. An invitation can be used once;
    a concurrent second acceptance gets ConflictError.
    """
    invitation = get_invitation_by_token(token)
    now = utcnow()
    if invitation.status != INVITATION_PENDING:
        raise ConflictError(f"Invitation is {invitation.status.lower()}")
    if invitation.is_expired(now):
        raise ConflictError("Invitation has expired")
    if auth_service.normalize_email(email) != invitation.email:
        raise ValidationError("Email address does not match invitation")
    if not password:
        raise ValidationError("password required")

    org = validate_org_active(invitation.org_id)
    scope = TenantScope(org.id)
    payload = {
        "display_name": (display_name or "").strip() or invitation.name,
        "email": invitation.email,
    }
    if phone:
        payload["phone"] = phone
    if invitation.commission_rate is not None:
        payload["commission_rate"] = str(invitation.commission_rate)

    try:
        provider = create_provider(scope, payload, commit=False)
        first, _, last = provider.display_name.partition(" ")
        user = auth_service.create_user(
            org_id=org.id,
            email=invitation.email,
            password=password,
            role=ROLE_CONSIGNOR,
            first_name=first or None,
            last_name=last or None,
            phone=provider.phone,
            provider_id=provider.id,
            commit=False,
        )
        moved = transition_status(
            ProviderInvitation,
            org_id=org.id,
            row_id=invitation.id,
            from_status=INVITATION_PENDING,
            to_status=INVITATION_ACCEPTED,
            extra={"accepted_at": now, "provider_id": provider.id},
        )
        if not moved:
            raise ConflictError("Invitation was already used")
        db.session.commit()
    except (ValidationError, ConflictError, NotFoundError):
        db.session.rollback()
        raise
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A provider or user with this email already exists")

    current_app.logger.info(
        "Invitation %s accepted: provider %s in org %s", invitation.id, provider.provider_number, org.id
    )
    return provider, user
