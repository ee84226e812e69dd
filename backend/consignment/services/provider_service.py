# Overview: Service-layer operations for providers (consignors); encapsulates business logic and database work.

"""
Provider Service

Providers supply consigned goods and earn commission_rate percent of each
sale. They are scoped to organizations via org_id, identified by a
per-organization provider_number, and never hard-deleted: deactivation
keeps historic transactions, payouts and statements attached.

Lifecycle:
    PENDING -> ACTIVE | REJECTED   (application review)
    ACTIVE <-> DEACTIVATED
"""

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Provider, Item, Transaction, User
from ..models.auth import ROLE_CONSIGNOR
from ..models.consignors import (
    PROVIDER_ACTIVE, PROVIDER_DEACTIVATED, PROVIDER_PENDING, PROVIDER_REJECTED,
    PROVIDER_STATUSES, PAYOUT_METHODS,
)
from ..models.inventory import ITEM_AVAILABLE, ITEM_SOLD
from ..validation import (
    ConflictError, ModelValidationPolicy, ValidationError,
    enforce_rules_provider, validate_payload,
)
from consignment.time_utils import utcnow
from . import auth_service, notification_service
from .payout_service import get_pending_amount
from .tenant_service import TenantScope


PROVIDER_POLICY = ModelValidationPolicy(
    writable_fields={
        "display_name", "email", "phone",
        "address_line1", "address_line2", "city", "state", "postal_code",
        "commission_rate", "payment_method", "payment_details", "notes",
    },
    required_on_create={"display_name", "email"},
)


def _normalize(patch: dict) -> dict:
    enforce_rules_provider(patch)
    if patch.get("email"):
        patch["email"] = patch["email"].lower()
    method = patch.get("payment_method")
    if method is not None:
        method = method.upper()
        if method not in PAYOUT_METHODS:
            raise ValidationError("payment_method must be one of: " + ", ".join(sorted(PAYOUT_METHODS)))
        patch["payment_method"] = method
    return patch


def _ensure_email_free(scope: TenantScope, email: str, exclude_id: int | None = None) -> None:
    query = scope.query(Provider, Provider.email == email)
    if exclude_id is not None:
        query = query.filter(Provider.id != exclude_id)
    if query.first():
        raise ConflictError(f"A provider with email {email} already exists")


def _next_provider_number(scope: TenantScope) -> str:
    count = scope.query(Provider).count()
    n = count + 1
    while scope.query(Provider, Provider.provider_number == f"PRV-{n:05d}").first():
        n += 1
    return f"PRV-{n:05d}"


def create_provider(
    scope: TenantScope,
    payload: dict,
    *,
    status: str = PROVIDER_ACTIVE,
    commit: bool = True,
) -> Provider:
    """
    Create a provider.

    commission_rate defaults to the organization's default split.
    Raises ValidationError for bad input and ConflictError for a duplicate email.
    With commit=False the row is only flushed; the caller owns the transaction.
    """
    patch = _normalize(validate_payload(model=Provider, payload=payload, policy=PROVIDER_POLICY, partial=False))
    _ensure_email_free(scope, patch["email"])

    if patch.get("commission_rate") is None:
        patch["commission_rate"] = scope.organization().default_split_percentage

    provider = Provider(
        provider_number=_next_provider_number(scope),
        status=status,
        approved_at=utcnow() if status == PROVIDER_ACTIVE else None,
        **patch,
    )
    scope.add(provider)

    if not commit:
        db.session.flush()
        return provider
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Provider email or number already exists")

    current_app.logger.info(
        "Created provider %s (%s) in org %s", provider.provider_number, provider.status, scope.org_id
    )
    return provider


def update_provider(scope: TenantScope, provider_id: int, payload: dict) -> Provider:
    provider = scope.get(Provider, provider_id, label="Provider")
    patch = _normalize(validate_payload(model=Provider, payload=payload, policy=PROVIDER_POLICY, partial=True))
    if "email" in patch:
        _ensure_email_free(scope, patch["email"], exclude_id=provider.id)

    for key, value in patch.items():
        setattr(provider, key, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Provider email already exists")
    return provider


def list_providers(
    scope: TenantScope,
    *,
    status: str | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Provider], int]:
    query = scope.query(Provider)
    if status:
        status = status.upper()
        if status not in PROVIDER_STATUSES:
            raise ValidationError("Unknown provider status")
        query = query.filter(Provider.status == status)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            Provider.display_name.ilike(term),
            Provider.email.ilike(term),
            Provider.provider_number.ilike(term),
        ))

    total = query.count()
    rows = query.order_by(Provider.display_name, Provider.id).offset(offset).limit(limit).all()
    return rows, total


def get_provider_summary(scope: TenantScope, provider_id: int) -> dict:
    """Provider plus balance and inventory counts."""
    provider = scope.get(Provider, provider_id, label="Provider")

    item_counts = dict(
        scope.query(Item, Item.provider_id == provider.id)
        .with_entities(Item.status, func.count(Item.id))
        .group_by(Item.status)
        .all()
    )
    lifetime_earnings = (
        scope.query(Transaction, Transaction.provider_id == provider.id, Transaction.status == "COMPLETED")
        .with_entities(func.coalesce(func.sum(Transaction.provider_amount_cents), 0))
        .scalar()
    )

    data = provider.to_dict()
    data.update({
        "pending_balance_cents": get_pending_amount(scope, provider.id),
        "lifetime_earnings_cents": int(lifetime_earnings or 0),
        "available_items": item_counts.get(ITEM_AVAILABLE, 0),
        "sold_items": item_counts.get(ITEM_SOLD, 0),
        "has_portal_access": any(u.is_active for u in provider.portal_users),
    })
    return data


def _set_status(scope: TenantScope, provider_id: int, allowed_from: set[str], to_status: str) -> Provider:
    provider = scope.get(Provider, provider_id, label="Provider")
    if provider.status == to_status:
        return provider
    if provider.status not in allowed_from:
        raise ConflictError(f"Cannot change provider from {provider.status} to {to_status}")

    now = utcnow()
    provider.status = to_status
    if to_status == PROVIDER_ACTIVE:
        provider.approved_at = provider.approved_at or now
        provider.deactivated_at = None
    elif to_status == PROVIDER_DEACTIVATED:
        provider.deactivated_at = now
    db.session.commit()
    current_app.logger.info("Provider %s -> %s", provider.provider_number, to_status)
    return provider


def deactivate_provider(scope: TenantScope, provider_id: int) -> Provider:
    """Soft delete. Items stay in inventory; new sales are blocked."""
    return _set_status(scope, provider_id, {PROVIDER_ACTIVE}, PROVIDER_DEACTIVATED)


def reactivate_provider(scope: TenantScope, provider_id: int) -> Provider:
    return _set_status(scope, provider_id, {PROVIDER_DEACTIVATED}, PROVIDER_ACTIVE)


def approve_provider(scope: TenantScope, provider_id: int) -> Provider:
    """Accept a consignor application and welcome them by email."""
    was_pending = scope.get(Provider, provider_id, label="Provider").status == PROVIDER_PENDING
    provider = _set_status(scope, provider_id, {PROVIDER_PENDING}, PROVIDER_ACTIVE)
    if not was_pending:
        return provider
    notification_service.notify_provider(provider, notification_service.PROVIDER_APPROVED, {
        "shop_name": scope.organization().name,
        "provider_number": provider.provider_number,
    })
    return provider


def reject_provider(scope: TenantScope, provider_id: int) -> Provider:
    return _set_status(scope, provider_id, {PROVIDER_PENDING}, PROVIDER_REJECTED)


def grant_portal_access(scope: TenantScope, provider_id: int, password: str) -> User:
    """Create the CONSIGNOR login for a provider, using the provider's email."""
    provider = scope.get(Provider, provider_id, label="Provider")
    if provider.status != PROVIDER_ACTIVE:
        raise ConflictError("Portal access requires an active provider")

    first, _, last = provider.display_name.partition(" ")
    return auth_service.create_user(
        org_id=scope.org_id,
        email=provider.email,
        password=password,
        role=ROLE_CONSIGNOR,
        first_name=first or None,
        last_name=last or None,
        phone=provider.phone,
        provider_id=provider.id,
    )
