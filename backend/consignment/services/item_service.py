# Overview: Service-layer operations for consigned items; encapsulates business logic and database work.

"""
Item Service

Each Item is a single consigned good owned by one provider. Status moves
AVAILABLE -> SOLD (sale or checkout) or AVAILABLE <-> REMOVED, always via
transition_status so concurrent writers cannot both win.
"""

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Item, Provider, CartItem
from ..models.consignors import PROVIDER_ACTIVE
from ..models.inventory import ITEM_AVAILABLE, ITEM_REMOVED, ITEM_SOLD, ITEM_CONDITIONS
from ..validation import (
    ConflictError, ModelValidationPolicy, ValidationError,
    enforce_rules_item, validate_payload,
)
from consignment.time_utils import utcnow
from .concurrency import transition_status
from .tenant_service import TenantScope


ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "provider_id", "sku", "title", "description", "category", "brand",
        "size", "color", "condition", "price_cents", "override_split_percentage",
        "notes", "listed_at",
    },
    required_on_create={"provider_id", "title", "price_cents"},
)

ITEM_STATUSES = {ITEM_AVAILABLE, ITEM_SOLD, ITEM_REMOVED}


def _normalize(patch: dict) -> dict:
    enforce_rules_item(patch)
    if patch.get("sku"):
        patch["sku"] = patch["sku"].upper()
    elif "sku" in patch:
        patch.pop("sku")
    condition = patch.get("condition")
    if condition:
        condition = condition.upper().replace(" ", "_")
        if condition not in ITEM_CONDITIONS:
            raise ValidationError("condition must be one of: " + ", ".join(sorted(ITEM_CONDITIONS)))
        patch["condition"] = condition
    return patch


def _active_provider(scope: TenantScope, provider_id: int) -> Provider:
    provider = scope.get(Provider, provider_id, label="Provider")
    if provider.status != PROVIDER_ACTIVE:
        raise ConflictError("Items can only be added for active providers")
    return provider


def _ensure_sku_free(scope: TenantScope, sku: str, exclude_id: int | None = None) -> None:
    query = scope.query(Item, Item.sku == sku)
    if exclude_id is not None:
        query = query.filter(Item.id != exclude_id)
    if query.first():
        raise ConflictError(f"SKU {sku} already exists")


def _generate_sku(scope: TenantScope, provider: Provider) -> str:
    n = scope.query(Item, Item.provider_id == provider.id).count() + 1
    while True:
        sku = f"{provider.provider_number}-{n:04d}"
        if not scope.query(Item, Item.sku == sku).first():
            return sku
        n += 1


def create_item(scope: TenantScope, payload: dict) -> Item:
    """
    Intake a consigned item.

    The provider must be ACTIVE and the SKU unique in the organization.
    A SKU is generated from the provider number when omitted.
    """
    patch = _normalize(validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=False))
    provider = _active_provider(scope, patch["provider_id"])

    if patch.get("sku"):
        _ensure_sku_free(scope, patch["sku"])
    else:
        patch["sku"] = _generate_sku(scope, provider)

    if not patch.get("listed_at"):
        patch["listed_at"] = utcnow()

    item = Item(status=ITEM_AVAILABLE, **patch)
    scope.add(item)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"SKU {patch['sku']} already exists")
    return item


def update_item(scope: TenantScope, item_id: int, payload: dict) -> Item:
    item = scope.get(Item, item_id, label="Item")
    if item.status == ITEM_SOLD:
        raise ConflictError("Sold items cannot be edited")

    patch = _normalize(validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=True))
    if "provider_id" in patch and patch["provider_id"] != item.provider_id:
        _active_provider(scope, patch["provider_id"])
    if "sku" in patch:
        _ensure_sku_free(scope, patch["sku"], exclude_id=item.id)

    for key, value in patch.items():
        setattr(item, key, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists")
    return item


def list_items(
    scope: TenantScope,
    *,
    status: str | None = None,
    provider_id: int | None = None,
    category: str | None = None,
    search: str | None = None,
    min_price_cents: int | None = None,
    max_price_cents: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Item], int]:
    query = scope.query(Item)
    if status:
        status = status.upper()
        if status not in ITEM_STATUSES:
            raise ValidationError("Unknown item status")
        query = query.filter(Item.status == status)
    if provider_id is not None:
        query = query.filter(Item.provider_id == provider_id)
    if category:
        query = query.filter(Item.category == category)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            Item.title.ilike(term),
            Item.sku.ilike(term),
            Item.brand.ilike(term),
            Item.description.ilike(term),
        ))
    if min_price_cents is not None:
        query = query.filter(Item.price_cents >= min_price_cents)
    if max_price_cents is not None:
        query = query.filter(Item.price_cents <= max_price_cents)

    total = query.count()
    rows = query.order_by(Item.listed_at.desc(), Item.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def get_item(scope: TenantScope, item_id: int) -> Item:
    return scope.get(Item, item_id, label="Item")


def list_categories(scope: TenantScope, *, available_only: bool = False) -> list[str]:
    query = scope.query(Item, Item.category.isnot(None)).with_entities(Item.category).distinct()
    if available_only:
        query = query.filter(Item.status == ITEM_AVAILABLE)
    return sorted(row[0] for row in query.all() if row[0])


def remove_item(scope: TenantScope, item_id: int, reason: str | None = None) -> Item:
    """
    Take an available item off the floor (returned to provider, damaged, ...).

    Any cart reservation for the item is released.
    """
    item = scope.get(Item, item_id, label="Item")
    moved = transition_status(
        Item,
        org_id=scope.org_id,
        row_id=item.id,
        from_status=ITEM_AVAILABLE,
        to_status=ITEM_REMOVED,
        extra={"removed_at": utcnow(), "removed_reason": (reason or "").strip() or None},
    )
    if not moved:
        db.session.rollback()
        raise ConflictError(f"Only available items can be removed (item is {item.status})")

    scope.query(CartItem, CartItem.item_id == item.id).delete(synchronize_session=False)
    db.session.commit()
    db.session.refresh(item)
    current_app.logger.info("Item %s removed from inventory", item.sku)
    return item


def restore_item(scope: TenantScope, item_id: int) -> Item:
    item = scope.get(Item, item_id, label="Item")
    moved = transition_status(
        Item,
        org_id=scope.org_id,
        row_id=item.id,
        from_status=ITEM_REMOVED,
        to_status=ITEM_AVAILABLE,
        extra={"removed_at": None, "removed_reason": None},
    )
    if not moved:
        db.session.rollback()
        raise ConflictError(f"Only removed items can be restored (item is {item.status})")
    db.session.commit()
    db.session.refresh(item)
    return item
