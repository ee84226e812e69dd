from __future__ import annotations

from ..extensions import db
from consignment.time_utils import to_utc_z


ORDER_PENDING = "PENDING"
ORDER_CONFIRMED = "CONFIRMED"
ORDER_SHIPPED = "SHIPPED"
ORDER_DELIVERED = "DELIVERED"
ORDER_COMPLETED = "COMPLETED"
ORDER_CANCELLED = "CANCELLED"

ORDER_STATUSES = {
    ORDER_PENDING, ORDER_CONFIRMED, ORDER_SHIPPED,
    ORDER_DELIVERED, ORDER_COMPLETED, ORDER_CANCELLED,
}

PAYMENT_PENDING = "PENDING"
PAYMENT_PAID = "PAID"
PAYMENT_FAILED = "FAILED"
PAYMENT_CANCELLED = "CANCELLED"

FULFILLMENT_PICKUP = "PICKUP"
FULFILLMENT_SHIPPING = "SHIPPING"


class ShoppingCart(db.Model):
    """
    Storefront cart.

    Keyed by (org_id, session_id) for anonymous visitors or
    (org_id, customer_id) for signed-in shoppers. Only anonymous carts
    carry expires_at.
    """
    __tablename__ = "shopping_carts"
    __table_args__ = (
        db.UniqueConstraint("org_id", "session_id", name="uq_carts_org_session"),
        db.UniqueConstraint("org_id", "customer_id", name="uq_carts_org_customer"),
        db.Index("ix_carts_expires_at", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    session_id = db.Column(db.String(128), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "CartItem",
        backref="cart",
        lazy=True,
        order_by="CartItem.added_at",
        cascade="all, delete-orphan",
    )


class CartItem(db.Model):
    """
    Reservation of one item in one cart.

    UNIQUE (org_id, item_id): an item can sit in at most one cart of the
    shop, so concurrent adds from two carts cannot both succeed.
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("org_id", "item_id", name="uq_cart_items_org_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    cart_id = db.Column(db.Integer, db.ForeignKey("shopping_carts.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)

    price_cents_at_add = db.Column(db.Integer, nullable=False)
    added_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item")


class Order(db.Model):
    """Online storefront order created from a cart."""
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "order_number", name="uq_orders_org_number"),
        db.Index("ix_orders_org_status_created", "org_id", "status", "created_at"),
        db.Index("ix_orders_org_customer", "org_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    # YYYYMMDD-NNN, per organization per day
    order_number = db.Column(db.String(32), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    customer_email = db.Column(db.String(255), nullable=False)
    customer_name = db.Column(db.String(200), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=True)

    fulfillment_type = db.Column(db.String(16), nullable=False, default=FULFILLMENT_PICKUP)
    shipping_address_line1 = db.Column(db.String(255), nullable=True)
    shipping_address_line2 = db.Column(db.String(255), nullable=True)
    shipping_city = db.Column(db.String(100), nullable=True)
    shipping_state = db.Column(db.String(64), nullable=True)
    shipping_postal_code = db.Column(db.String(20), nullable=True)
    tracking_number = db.Column(db.String(100), nullable=True)

    # Money (cents)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_intent_id = db.Column(db.String(128), nullable=True, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING)

    status = db.Column(db.String(16), nullable=False, default=ORDER_PENDING)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship("OrderItem", backref="order", lazy=True, cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer_email": self.customer_email,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "fulfillment_type": self.fulfillment_type,
            "shipping_address": {
                "line1": self.shipping_address_line1,
                "line2": self.shipping_address_line2,
                "city": self.shipping_city,
                "state": self.shipping_state,
                "postal_code": self.shipping_postal_code,
            } if self.fulfillment_type == FULFILLMENT_SHIPPING else None,
            "tracking_number": self.tracking_number,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "shipping_cents": self.shipping_cents,
            "total_cents": self.total_cents,
            "payment_intent_id": self.payment_intent_id,
            "payment_status": self.payment_status,
            "status": self.status,
            "notes": self.notes,
            "items": [line.to_dict() for line in self.lines],
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "shipped_at": to_utc_z(self.shipped_at) if self.shipped_at else None,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
        }


class OrderItem(db.Model):
    """Order line: snapshot of the item as it was sold."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False)

    item_title = db.Column(db.String(255), nullable=False)
    item_sku = db.Column(db.String(64), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_title": self.item_title,
            "item_sku": self.item_sku,
            "price_cents": self.price_cents,
        }
