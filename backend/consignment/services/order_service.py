# Overview: Storefront checkout and online order lifecycle.

"""
Order Service

create_order turns a cart into an order atomically. Every cart item is
moved AVAILABLE -> SOLD with a conditional update; if any item was sold or
removed in the meantime the whole checkout is rolled back and the caller
gets a ConflictError listing the unavailable item ids. On success the
order lines snapshot title/sku/price, one ONLINE consignment Transaction
per item records the provider split, and the cart is emptied.

    total = subtotal + tax + shipping
    tax   = half-even(subtotal * tax_rate_bps / 10000)
    shipping = org.shipping_flat_cents for SHIPPING orders, 0 for PICKUP

Order status: PENDING -> CONFIRMED -> SHIPPED -> DELIVERED -> COMPLETED,
CONFIRMED -> COMPLETED for pickups, PENDING -> CANCELLED.
"""

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order, OrderItem, Transaction
from ..models.inventory import ITEM_AVAILABLE
from ..models.sales import SOURCE_ONLINE, TRANSACTION_COMPLETED
from ..models.storefront import (
    FULFILLMENT_PICKUP, FULFILLMENT_SHIPPING,
    ORDER_CANCELLED, ORDER_COMPLETED, ORDER_CONFIRMED, ORDER_DELIVERED, ORDER_PENDING, ORDER_SHIPPED,
    ORDER_STATUSES, PAYMENT_CANCELLED, PAYMENT_FAILED, PAYMENT_PAID, PAYMENT_PENDING,
)
from ..validation import ConflictError, NotFoundError, ValidationError, require_fields
from consignment.time_utils import end_of_day, start_of_day, utcnow
from . import notification_service
from .auth_service import EMAIL_RE
from .cart_service import check_cart_key, find_cart, calculate_tax_cents, summarize_cart
from .concurrency import transition_status
from .email_service import EmailDeliveryError, send_email
from .numbering import next_daily_number
from .payment_gateway import get_payment_gateway
from .tenant_service import TenantScope
from .transaction_service import build_transaction, claim_item_for_sale, void_transaction


STATUS_TRANSITIONS = {
    ORDER_PENDING: {ORDER_CONFIRMED},
    ORDER_CONFIRMED: {ORDER_SHIPPED, ORDER_COMPLETED},
    ORDER_SHIPPED: {ORDER_DELIVERED},
    ORDER_DELIVERED: {ORDER_COMPLETED},
}

STATUS_TIMESTAMPS = {
    ORDER_CONFIRMED: "confirmed_at",
    ORDER_SHIPPED: "shipped_at",
    ORDER_DELIVERED: "delivered_at",
    ORDER_COMPLETED: "completed_at",
}


def _fulfillment(value: str | None) -> str:
    fulfillment = (value or FULFILLMENT_PICKUP).upper()
    if fulfillment not in (FULFILLMENT_PICKUP, FULFILLMENT_SHIPPING):
        raise ValidationError("fulfillment_type must be PICKUP or SHIPPING")
    return fulfillment


def calculate_order_totals(org, prices: list[int], fulfillment_type: str) -> dict:
    subtotal = sum(prices)
    tax = calculate_tax_cents(subtotal, org.tax_rate_bps)
    shipping = org.shipping_flat_cents if fulfillment_type == FULFILLMENT_SHIPPING and prices else 0
    return {
        "subtotal_cents": subtotal,
        "tax_cents": tax,
        "shipping_cents": shipping,
        "total_cents": subtotal + tax + shipping,
    }


def _allocate_tax(prices: list[int], tax_rate_bps: int, total_tax: int) -> list[int]:
    """Per-line tax whose sum equals the order tax; the last line absorbs rounding."""
    shares = [calculate_tax_cents(p, tax_rate_bps) for p in prices]
    if shares:
        shares[-1] += total_tax - sum(shares)
    return shares


def validate_cart_for_checkout(scope: TenantScope, *, session_id: str | None = None,
                               customer_id: int | None = None, fulfillment_type: str | None = None) -> dict:
    check_cart_key(session_id, customer_id)
    cart = find_cart(scope, session_id, customer_id)
    summary = summarize_cart(scope, cart)
    errors = []
    unavailable = [line["item"]["id"] for line in summary["items"] if not line["is_available"]]

    if not summary["items"]:
        errors.append("Cart is empty")
    if unavailable:
        errors.append("Some items are no longer available")

    prices = [line["price_cents"] for line in summary["items"] if line["is_available"]]
    totals = calculate_order_totals(scope.organization(), prices, _fulfillment(fulfillment_type))
    return {
        "valid": not errors,
        "errors": errors,
        "unavailable_item_ids": unavailable,
        "cart": summary,
        "totals": totals,
    }


def create_payment_intent(scope: TenantScope, *, session_id: str | None = None, customer_id: int | None = None,
                          fulfillment_type: str | None = None):
    """Price the cart and open a payment intent with the gateway."""
    check = validate_cart_for_checkout(
        scope, session_id=session_id, customer_id=customer_id, fulfillment_type=fulfillment_type
    )
    if not check["valid"]:
        raise ConflictError("; ".join(check["errors"]), {"item_ids": check["unavailable_item_ids"]})

    return get_payment_gateway().create_payment_intent(
        check["totals"]["total_cents"],
        metadata={"org_id": scope.org_id, "cart_id": check["cart"]["cart_id"]},
    )


def create_order(
    scope: TenantScope,
    *,
    session_id: str | None = None,
    customer_id: int | None = None,
    customer_email: str | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    fulfillment_type: str | None = None,
    shipping_address: dict | None = None,
    payment_intent_id: str | None = None,
    notes: str | None = None,
) -> Order:
    """
    Check out the cart. All items become SOLD and the order is created, or
    nothing changes.
    """
    check_cart_key(session_id, customer_id)
    fulfillment = _fulfillment(fulfillment_type)
    contact = {"customer_email": (customer_email or "").strip().lower(), "customer_name": (customer_name or "").strip()}
    require_fields(contact, "customer_email", "customer_name")
    if not EMAIL_RE.match(contact["customer_email"]):
        raise ValidationError("customer_email must be a valid email address")

    address = {k: (v or "").strip() for k, v in (shipping_address or {}).items()}
    if fulfillment == FULFILLMENT_SHIPPING:
        require_fields(address, "line1", "city", "state", "postal_code")

    cart = find_cart(scope, session_id, customer_id)
    if cart is None or not cart.items:
        raise ValidationError("Cart is empty")

    items = [line.item for line in cart.items]
    unavailable = [item.id for item in items if item.status != ITEM_AVAILABLE]
    if unavailable:
        raise ConflictError("Some items are no longer available", {"item_ids": unavailable})

    org = scope.organization()
    now = utcnow()
    prices = [item.price_cents for item in items]
    totals = calculate_order_totals(org, prices, fulfillment)

    try:
        order = Order(
            order_number=next_daily_number(scope, Order, Order.order_number, "", now.date()),
            customer_id=customer_id,
            customer_phone=(customer_phone or "").strip() or None,
            fulfillment_type=fulfillment,
            shipping_address_line1=address.get("line1") or None,
            shipping_address_line2=address.get("line2") or None,
            shipping_city=address.get("city") or None,
            shipping_state=address.get("state") or None,
            shipping_postal_code=address.get("postal_code") or None,
            payment_intent_id=payment_intent_id,
            payment_status=PAYMENT_PENDING,
            status=ORDER_PENDING,
            notes=(notes or "").strip() or None,
            created_at=now,
            **contact,
            **totals,
        )
        scope.add(order)
        db.session.flush()

        lost = []
        for item in items:
            try:
                claim_item_for_sale(scope, item, now)
            except ConflictError:
                lost.append(item.id)
        if lost:
            raise ConflictError("Some items are no longer available", {"item_ids": lost})

        taxes = _allocate_tax(prices, org.tax_rate_bps, totals["tax_cents"])
        for item, tax in zip(items, taxes):
            scope.add(OrderItem(
                order_id=order.id,
                item_id=item.id,
                provider_id=item.provider_id,
                item_title=item.title,
                item_sku=item.sku,
                price_cents=item.price_cents,
            ))
            build_transaction(
                scope,
                item,
                sale_price_cents=item.price_cents,
                sale_date=now,
                payment_method="ONLINE",
                source=SOURCE_ONLINE,
                sales_tax_cents=tax,
                order_id=order.id,
            )
        db.session.commit()
    except (ConflictError, ValidationError):
        db.session.rollback()
        raise
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Checkout collided with another order; please try again")

    db.session.refresh(order)
    current_app.logger.info(
        "Order %s placed in org %s: %s items, total %s cents",
        order.order_number, scope.org_id, len(items), order.total_cents,
    )
    _notify_customer(order, notification_service.ORDER_PLACED, {
        "order_number": order.order_number,
        "shop_name": org.name,
        "total_cents": order.total_cents,
        "item_count": len(items),
    })
    return order


def _notify_customer(order: Order, notification_type: str, data: dict) -> None:
    data = dict(data, order_id=order.id)
    if order.customer_id is not None:
        notification_service.notify(order.customer_id, notification_type, data)
        return
    title, message = notification_service.render(notification_type, data)
    try:
        send_email(order.customer_email, title, message, tags=[notification_type])
    except EmailDeliveryError:
        current_app.logger.warning("Order email to %s failed", order.customer_email, exc_info=True)


def confirm_payment(scope: TenantScope, order_id: int, *, payment_intent_id: str | None = None) -> Order:
    """Confirm the order's payment intent; the order becomes CONFIRMED and PAID."""
    order = scope.get(Order, order_id, label="Order")
    intent_id = payment_intent_id or order.payment_intent_id
    if not intent_id:
        raise ValidationError("payment_intent_id is required")
    if order.payment_intent_id and payment_intent_id and payment_intent_id != order.payment_intent_id:
        raise ValidationError("payment_intent_id does not match the order")
    if order.status != ORDER_PENDING or order.payment_status != PAYMENT_PENDING:
        raise ConflictError(f"Order is {order.status}; payment cannot be confirmed")

    intent = get_payment_gateway().confirm_payment(intent_id, amount_cents=order.total_cents)
    if intent.status != "succeeded":
        order.payment_status = PAYMENT_FAILED
        order.payment_intent_id = intent_id
        db.session.commit()
        raise ConflictError("Payment was not successful")

    moved = transition_status(
        Order,
        org_id=scope.org_id,
        row_id=order.id,
        from_status=ORDER_PENDING,
        to_status=ORDER_CONFIRMED,
        extra={"payment_status": PAYMENT_PAID, "payment_intent_id": intent_id, "confirmed_at": utcnow()},
    )
    if not moved:
        db.session.rollback()
        raise ConflictError("Order changed while confirming payment")
    db.session.commit()
    db.session.refresh(order)
    current_app.logger.info("Payment confirmed for order %s", order.order_number)
    return order


def cancel_order(scope: TenantScope, order_id: int, *, reason: str | None = None,
                 cancelled_by_user_id: int | None = None, customer_id: int | None = None) -> Order:
    """
    Cancel a PENDING order: items go back on sale, the order's consignment
    transactions are voided and the payment intent is cancelled.
    """
    order = get_order(scope, order_id, customer_id=customer_id)
    moved = transition_status(
        Order,
        org_id=scope.org_id,
        row_id=order.id,
        from_status=ORDER_PENDING,
        to_status=ORDER_CANCELLED,
        extra={"cancelled_at": utcnow(), "payment_status": PAYMENT_CANCELLED},
    )
    if not moved:
        db.session.rollback()
        raise ConflictError(f"Order is {order.status}; only pending orders can be cancelled")

    transactions = scope.query(
        Transaction, Transaction.order_id == order.id, Transaction.status == TRANSACTION_COMPLETED
    ).all()
    try:
        for transaction in transactions:
            void_transaction(
                scope,
                transaction.id,
                reason=reason or f"Order {order.order_number} cancelled",
                voided_by_user_id=cancelled_by_user_id,
                commit=False,
            )
    except ConflictError:
        db.session.rollback()
        raise
    db.session.commit()
    db.session.refresh(order)

    if order.payment_intent_id:
        get_payment_gateway().cancel_payment(order.payment_intent_id, amount_cents=order.total_cents)

    current_app.logger.info("Order %s cancelled", order.order_number)
    _notify_customer(order, notification_service.ORDER_STATUS_CHANGED, {
        "order_number": order.order_number,
        "status": order.status,
    })
    return order


def update_order_status(scope: TenantScope, order_id: int, status: str, *, tracking_number: str | None = None) -> Order:
    order = scope.get(Order, order_id, label="Order")
    status = (status or "").upper()
    if status not in ORDER_STATUSES:
        raise ValidationError("Unknown order status")
    if status == ORDER_CANCELLED:
        raise ValidationError("Use the cancel endpoint to cancel orders")
    if status not in STATUS_TRANSITIONS.get(order.status, set()):
        raise ConflictError(f"Cannot move order from {order.status} to {status}")
    if status == ORDER_SHIPPED and order.fulfillment_type != FULFILLMENT_SHIPPING:
        raise ConflictError("Pickup orders cannot be shipped")

    extra = {STATUS_TIMESTAMPS[status]: utcnow()}
    if status == ORDER_CONFIRMED:
        # Manual confirmation means payment was taken outside the gateway
        extra["payment_status"] = PAYMENT_PAID
    if tracking_number:
        extra["tracking_number"] = tracking_number.strip()

    moved = transition_status(
        Order, org_id=scope.org_id, row_id=order.id, from_status=order.status, to_status=status, extra=extra
    )
    if not moved:
        db.session.rollback()
        raise ConflictError("Order changed concurrently; reload and try again")
    db.session.commit()
    db.session.refresh(order)

    _notify_customer(order, notification_service.ORDER_STATUS_CHANGED, {
        "order_number": order.order_number,
        "status": order.status,
        "tracking_number": order.tracking_number,
    })
    return order


def get_order(scope: TenantScope, order_id: int, *, customer_id: int | None = None) -> Order:
    """Fetch an order; when customer_id is given the order must belong to that shopper."""
    order = scope.get(Order, order_id, label="Order")
    if customer_id is not None and order.customer_id != customer_id:
        raise NotFoundError("Order not found")
    return order


def list_orders(
    scope: TenantScope,
    *,
    status: str | None = None,
    customer_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Order], int]:
    query = scope.query(Order)
    if status:
        query = query.filter(Order.status == status.upper())
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if start_date:
        query = query.filter(Order.created_at >= start_of_day(start_date))
    if end_date:
        query = query.filter(Order.created_at <= end_of_day(end_date))
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            Order.order_number.ilike(term),
            Order.customer_email.ilike(term),
            Order.customer_name.ilike(term),
        ))
    total = query.count()
    rows = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()
    return rows, total
