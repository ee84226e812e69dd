# Overview: Storefront shopping carts and item reservations.

"""
Cart Service

A cart is keyed by (org, customer_id) for signed-in shoppers or
(org, session_id) for anonymous visitors. Anonymous carts expire after
CART_TTL_DAYS of inactivity; authenticated carts never expire.

Putting an item in a cart reserves it: an item can be in at most one cart
per shop. The unique (org_id, item_id) constraint on cart_items is what
makes that hold under concurrent adds; the pre-check only produces a
friendlier error. Expired carts are purged before the reservation check
so abandoned carts do not hold items forever.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal, ROUND_HALF_EVEN

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CartItem, Item, ShoppingCart
from ..models.inventory import ITEM_AVAILABLE
from ..validation import ConflictError, NotFoundError, ValidationError
from consignment.time_utils import utcnow
from .tenant_service import TenantScope


def calculate_tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    """Half-even rounding of subtotal * rate, rate in basis points (850 = 8.5%)."""
    tax = (Decimal(subtotal_cents) * Decimal(tax_rate_bps) / Decimal(10000)).quantize(
        Decimal("1"), rounding=ROUND_HALF_EVEN
    )
    return int(tax)


def _ttl() -> timedelta:
    return timedelta(days=current_app.config.get("CART_TTL_DAYS", 7))


def check_cart_key(session_id: str | None, customer_id: int | None) -> None:
    if customer_id is None and not session_id:
        raise ValidationError("A session id or a signed-in customer is required")
    if session_id is not None and len(session_id) > 128:
        raise ValidationError("session id is too long")


def find_cart(scope: TenantScope, session_id: str | None, customer_id: int | None) -> ShoppingCart | None:
    if customer_id is not None:
        return scope.query(ShoppingCart, ShoppingCart.customer_id == customer_id).first()
    cart = scope.query(ShoppingCart, ShoppingCart.session_id == session_id).first()
    if cart is not None and cart.expires_at is not None and cart.expires_at < utcnow():
        _delete_carts(scope.query(ShoppingCart, ShoppingCart.id == cart.id))
        db.session.commit()
        return None
    return cart


def get_or_create_cart(scope: TenantScope, *, session_id: str | None = None, customer_id: int | None = None) -> ShoppingCart:
    check_cart_key(session_id, customer_id)
    cart = find_cart(scope, session_id, customer_id)
    if cart is not None:
        if cart.customer_id is None:
            cart.expires_at = utcnow() + _ttl()
            db.session.commit()
        return cart

    cart = ShoppingCart(
        session_id=None if customer_id is not None else session_id,
        customer_id=customer_id,
        expires_at=None if customer_id is not None else utcnow() + _ttl(),
    )
    scope.add(cart)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        cart = find_cart(scope, session_id, customer_id)
        if cart is None:
            raise
    return cart


def _delete_carts(cart_query) -> int:
    """Delete carts (and their reservations) matched by a ShoppingCart query."""
    ids = [cid for (cid,) in cart_query.with_entities(ShoppingCart.id).all()]
    if not ids:
        return 0
    db.session.query(CartItem).filter(CartItem.cart_id.in_(ids)).delete(synchronize_session="fetch")
    db.session.query(ShoppingCart).filter(ShoppingCart.id.in_(ids)).delete(synchronize_session="fetch")
    return len(ids)


def purge_expired_carts(scope: TenantScope) -> int:
    """Drop this shop's expired anonymous carts. Does not commit."""
    return _delete_carts(scope.query(
        ShoppingCart,
        ShoppingCart.expires_at.isnot(None),
        ShoppingCart.expires_at < utcnow(),
    ))


def cleanup_expired_carts() -> int:
    """Scheduled cleanup across all shops (flask carts cleanup-expired)."""
    removed = _delete_carts(db.session.query(ShoppingCart).filter(
        ShoppingCart.expires_at.isnot(None),
        ShoppingCart.expires_at < utcnow(),
    ))
    db.session.commit()
    current_app.logger.info("Purged %s expired carts", removed)
    return removed


def is_item_reserved(scope: TenantScope, item_id: int, *, exclude_cart_id: int | None = None) -> bool:
    query = (
        scope.query(CartItem, CartItem.item_id == item_id)
        .join(ShoppingCart, ShoppingCart.id == CartItem.cart_id)
        .filter(db.or_(ShoppingCart.expires_at.is_(None), ShoppingCart.expires_at >= utcnow()))
    )
    if exclude_cart_id is not None:
        query = query.filter(CartItem.cart_id != exclude_cart_id)
    return db.session.query(query.exists()).scalar()


def add_item_to_cart(scope: TenantScope, item_id: int, *, session_id: str | None = None,
                     customer_id: int | None = None) -> ShoppingCart:
    """
    Reserve an item in the caller's cart.

    Re-adding an item already in this cart is a no-op. An item that is not
    AVAILABLE, or sits in another cart, is a ConflictError.
    """
    check_cart_key(session_id, customer_id)
    item = scope.get(Item, item_id, label="Item")
    if item.status != ITEM_AVAILABLE:
        raise ConflictError("Item is no longer available", {"item_ids": [item.id]})

    cart = get_or_create_cart(scope, session_id=session_id, customer_id=customer_id)
    if any(line.item_id == item.id for line in cart.items):
        db.session.commit()
        return cart

    purge_expired_carts(scope)
    if is_item_reserved(scope, item.id, exclude_cart_id=cart.id):
        db.session.rollback()
        raise ConflictError("Item is in another shopper's cart", {"item_ids": [item.id]})

    scope.add(CartItem(cart_id=cart.id, item_id=item.id, price_cents_at_add=item.price_cents))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Item is in another shopper's cart", {"item_ids": [item.id]})

    db.session.refresh(cart)
    return cart


def remove_item_from_cart(scope: TenantScope, item_id: int, *, session_id: str | None = None,
                          customer_id: int | None = None) -> ShoppingCart:
    check_cart_key(session_id, customer_id)
    cart = find_cart(scope, session_id, customer_id)
    line = None
    if cart is not None:
        line = next((line for line in cart.items if line.item_id == item_id), None)
    if line is None:
        raise NotFoundError("Item is not in the cart")
    cart.items.remove(line)
    db.session.commit()
    return cart


def clear_cart(scope: TenantScope, *, session_id: str | None = None, customer_id: int | None = None) -> None:
    check_cart_key(session_id, customer_id)
    cart = find_cart(scope, session_id, customer_id)
    if cart is not None:
        cart.items.clear()
        db.session.commit()


def merge_cart(scope: TenantScope, *, session_id: str, customer_id: int) -> ShoppingCart:
    """
    On sign-in: move the anonymous cart's items into the shopper's cart.

    Items already in the shopper's cart are skipped; the anonymous cart is
    deleted afterwards. Moving a row keeps its reservation.
    """
    if customer_id is None:
        raise ValidationError("customer is required to merge carts")
    customer_cart = get_or_create_cart(scope, customer_id=customer_id)
    if not session_id:
        return customer_cart

    anon = find_cart(scope, session_id, None)
    if anon is None or anon.id == customer_cart.id:
        return customer_cart

    present = {line.item_id for line in customer_cart.items}
    for line in list(anon.items):
        if line.item_id in present:
            continue
        anon.items.remove(line)
        customer_cart.items.append(line)
        present.add(line.item_id)

    db.session.delete(anon)
    db.session.commit()
    db.session.refresh(customer_cart)
    return customer_cart


def summarize_cart(scope: TenantScope, cart: ShoppingCart | None) -> dict:
    """Cart lines with availability flags and estimated totals (available lines only)."""
    org = scope.organization()
    lines = []
    subtotal = 0
    for line in (cart.items if cart is not None else []):
        item = line.item
        available = item.status == ITEM_AVAILABLE
        if available:
            subtotal += item.price_cents
        lines.append({
            "item": item.to_public_dict(),
            "price_cents": item.price_cents,
            "price_at_add_cents": line.price_cents_at_add,
            "price_changed": item.price_cents != line.price_cents_at_add,
            "is_available": available,
            "added_at": line.added_at.isoformat() if line.added_at else None,
        })

    tax = calculate_tax_cents(subtotal, org.tax_rate_bps)
    return {
        "cart_id": cart.id if cart is not None else None,
        "items": lines,
        "item_count": len(lines),
        "subtotal_cents": subtotal,
        "estimated_tax_cents": tax,
        "estimated_total_cents": subtotal + tax,
        "has_unavailable_items": any(not line["is_available"] for line in lines),
        "expires_at": cart.expires_at.isoformat() if cart is not None and cart.expires_at else None,
    }


def get_cart(scope: TenantScope, *, session_id: str | None = None, customer_id: int | None = None) -> dict:
    check_cart_key(session_id, customer_id)
    return summarize_cart(scope, find_cart(scope, session_id, customer_id))
