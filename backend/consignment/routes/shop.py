# Overview: Public storefront API routes (catalog, cart, shopper accounts, checkout).

"""
Storefront Routes: /api/shop/<slug>/...

The slug selects the shop; every query runs through the TenantScope built
from it, so one shop's catalog, carts and orders are never visible from
another shop's storefront.

Carts:
- Anonymous shoppers send a client-generated id in the X-Cart-Session header.
  Their carts expire after CART_TTL_DAYS.
- Signed-in shoppers (SHOPPER bearer token for this shop) use their
  customer cart, which does not expire. Signing in merges the anonymous
  cart named by X-Cart-Session into the customer cart.

Checkout:
1. POST /checkout/validate          availability + totals
2. POST /checkout/payment-intent    open a payment intent for the total
3. POST /checkout                   atomically sell every item and create the order
4. POST /orders/<id>/confirm-payment
"""

from flask import Blueprint, request, g

from ..decorators import storefront, require_shopper
from ..models import Item
from ..models.auth import ROLE_SHOPPER
from ..models.consignors import PROVIDER_PENDING
from ..models.inventory import ITEM_AVAILABLE
from ..responses import api_ok, api_error, paged
from ..services import auth_service, cart_service, item_service, order_service, provider_service, session_service
from ..validation import NotFoundError, ValidationError
from .params import json_body, page_args


shop_bp = Blueprint("shop", __name__, url_prefix="/api/shop/<slug>")

APPLICATION_FIELDS = {
    "display_name", "email", "phone",
    "address_line1", "address_line2", "city", "state", "postal_code", "notes",
}


def _cart_key() -> dict:
    """Customer cart when signed in, otherwise the anonymous session cart."""
    if g.customer_id:
        return {"session_id": None, "customer_id": g.customer_id}
    return {"session_id": g.cart_session_id, "customer_id": None}


def _shopper_session(user, token: str) -> dict:
    cart = cart_service.merge_cart(g.tenant, session_id=g.cart_session_id, customer_id=user.id)
    return {
        "token": token,
        "user": user.to_dict(),
        "cart": cart_service.summarize_cart(g.tenant, cart),
    }


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

@shop_bp.get("")
@storefront
def store_info_route():
    return api_ok(g.store.to_public_dict())


@shop_bp.get("/items")
@storefront
def catalog_route():
    """
    Available items only. Query parameters: category, search,
    min_price_cents, max_price_cents, limit, offset.
    """
    limit, offset = page_args(default_limit=48)
    rows, total = item_service.list_items(
        g.tenant,
        status=ITEM_AVAILABLE,
        category=request.args.get("category"),
        search=request.args.get("search"),
        min_price_cents=request.args.get("min_price_cents", type=int),
        max_price_cents=request.args.get("max_price_cents", type=int),
        limit=limit,
        offset=offset,
    )
    items = []
    for item in rows:
        data = item.to_public_dict()
        data["is_reserved"] = cart_service.is_item_reserved(g.tenant, item.id)
        items.append(data)
    return api_ok(paged(items, total, limit, offset))


@shop_bp.get("/items/<int:item_id>")
@storefront
def catalog_item_route(item_id: int):
    item = g.tenant.get(Item, item_id, label="Item")
    if item.status != ITEM_AVAILABLE:
        raise NotFoundError("Item not found")
    data = item.to_public_dict()
    data["is_reserved"] = cart_service.is_item_reserved(g.tenant, item.id)
    return api_ok(data)


@shop_bp.get("/categories")
@storefront
def categories_route():
    return api_ok(item_service.list_categories(g.tenant, available_only=True))


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------

@shop_bp.get("/cart")
@storefront
def get_cart_route():
    return api_ok(cart_service.get_cart(g.tenant, **_cart_key()))


@shop_bp.post("/cart/items")
@storefront
def add_to_cart_route():
    """Request body: {"item_id": 42}. 409 when the item is sold or in another cart."""
    item_id = json_body().get("item_id")
    if not isinstance(item_id, int) or isinstance(item_id, bool):
        return api_error("item_id is required", 400)
    cart = cart_service.add_item_to_cart(g.tenant, item_id, **_cart_key())
    return api_ok(cart_service.summarize_cart(g.tenant, cart), "Item added to cart", 201)


@shop_bp.delete("/cart/items/<int:item_id>")
@storefront
def remove_from_cart_route(item_id: int):
    cart = cart_service.remove_item_from_cart(g.tenant, item_id, **_cart_key())
    return api_ok(cart_service.summarize_cart(g.tenant, cart), "Item removed from cart")


@shop_bp.delete("/cart")
@storefront
def clear_cart_route():
    cart_service.clear_cart(g.tenant, **_cart_key())
    return api_ok(cart_service.get_cart(g.tenant, **_cart_key()), "Cart cleared")


# ---------------------------------------------------------------------------
# Shopper accounts
# ---------------------------------------------------------------------------

@shop_bp.post("/register")
@storefront
def register_shopper_route():
    """
    Request body: {"email", "password", "first_name", "last_name", "phone"}

    Signs the shopper in and merges the X-Cart-Session cart.
    """
    data = json_body()
    user = auth_service.register_shopper(
        org_id=g.store.id,
        email=data.get("email"),
        password=data.get("password"),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        phone=data.get("phone"),
    )
    _, token = session_service.create_session(
        user.id, user_agent=request.headers.get("User-Agent"), ip_address=request.remote_addr,
    )
    return api_ok(_shopper_session(user, token), "Account created", 201)


@shop_bp.post("/login")
@storefront
def login_shopper_route():
    data = json_body()
    if not data.get("email") or not data.get("password"):
        return api_error("email and password required", 400)

    result = auth_service.login(
        org_slug=g.store.slug,
        email=data["email"],
        password=data["password"],
        allowed_roles={ROLE_SHOPPER},
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    if not result:
        return api_error("Invalid credentials", 401)
    user, token = result
    return api_ok(_shopper_session(user, token), "Login successful")


@shop_bp.post("/logout")
@storefront
@require_shopper
def logout_shopper_route():
    token = request.headers["Authorization"].split(" ", 1)[1].strip()
    session_service.revoke_session(token, reason="Shopper logout")
    return api_ok(None, "Logged out")


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

@shop_bp.post("/checkout/validate")
@storefront
def validate_checkout_route():
    data = json_body()
    return api_ok(order_service.validate_cart_for_checkout(
        g.tenant, fulfillment_type=data.get("fulfillment_type"), **_cart_key(),
    ))


@shop_bp.post("/checkout/payment-intent")
@storefront
def payment_intent_route():
    data = json_body()
    intent = order_service.create_payment_intent(
        g.tenant, fulfillment_type=data.get("fulfillment_type"), **_cart_key(),
    )
    return api_ok(intent.to_dict(), "Payment intent created", 201)


@shop_bp.post("/checkout")
@storefront
def checkout_route():
    """
    Request body:
    {
        "customer_email": "...", "customer_name": "...", "customer_phone": "...",
        "fulfillment_type": "PICKUP" | "SHIPPING",
        "shipping_address": {"line1", "line2", "city", "state", "postal_code"},  // SHIPPING only
        "payment_intent_id": "pi_...",
        "notes": "..."
    }

    409 with data.item_ids when any item was sold first; nothing is changed then.
    """
    data = json_body()
    user = getattr(g, "current_user", None) if g.customer_id else None
    order = order_service.create_order(
        g.tenant,
        customer_email=data.get("customer_email") or (user.email if user else None),
        customer_name=data.get("customer_name") or (user.full_name if user else None),
        customer_phone=data.get("customer_phone"),
        fulfillment_type=data.get("fulfillment_type"),
        shipping_address=data.get("shipping_address"),
        payment_intent_id=data.get("payment_intent_id"),
        notes=data.get("notes"),
        **_cart_key(),
    )
    return api_ok(order.to_dict(), "Order placed", 201)


@shop_bp.post("/orders/<int:order_id>/confirm-payment")
@storefront
def confirm_order_payment_route(order_id: int):
    """
    Signed-in shoppers confirm their own orders. Guests prove ownership with
    the order's payment_intent_id.
    """
    intent_id = json_body().get("payment_intent_id")
    order = order_service.get_order(g.tenant, order_id)
    owns = g.customer_id is not None and order.customer_id == g.customer_id
    if not owns and (not intent_id or intent_id != order.payment_intent_id):
        raise NotFoundError("Order not found")
    order = order_service.confirm_payment(g.tenant, order.id, payment_intent_id=intent_id)
    return api_ok(order.to_dict(), "Payment confirmed")


@shop_bp.get("/orders")
@storefront
@require_shopper
def my_orders_route():
    limit, offset = page_args(default_limit=20)
    rows, total = order_service.list_orders(
        g.tenant, customer_id=g.customer_id, status=request.args.get("status"), limit=limit, offset=offset,
    )
    return api_ok(paged([o.to_dict() for o in rows], total, limit, offset))


@shop_bp.get("/orders/<int:order_id>")
@storefront
@require_shopper
def my_order_route(order_id: int):
    return api_ok(order_service.get_order(g.tenant, order_id, customer_id=g.customer_id).to_dict())


@shop_bp.post("/orders/<int:order_id>/cancel")
@storefront
@require_shopper
def cancel_my_order_route(order_id: int):
    order = order_service.cancel_order(
        g.tenant, order_id, reason=json_body().get("reason") or "Cancelled by customer",
        customer_id=g.customer_id,
    )
    return api_ok(order.to_dict(), "Order cancelled")


# ---------------------------------------------------------------------------
# Consignor applications
# ---------------------------------------------------------------------------

@shop_bp.post("/consignor-applications")
@storefront
def apply_as_consignor_route():
    """Creates a PENDING provider for staff to approve or reject."""
    data = json_body()
    blocked = sorted(set(data) - APPLICATION_FIELDS)
    if blocked:
        raise ValidationError(f"Field not allowed: {', '.join(blocked)}")
    provider = provider_service.create_provider(g.tenant, data, status=PROVIDER_PENDING)
    return api_ok(
        {"provider_number": provider.provider_number, "status": provider.status},
        "Application received",
        201,
    )
