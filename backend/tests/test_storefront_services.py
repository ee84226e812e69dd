# Overview: Pytest coverage for carts, reservations and checkout.

from datetime import timedelta

import pytest

from consignment.models import Item, Order, OrderItem, ShoppingCart, Transaction
from consignment.services import cart_service, item_service, order_service
from consignment.time_utils import utcnow
from consignment.validation import ConflictError, NotFoundError, ValidationError


GUEST = "guest-session-1"
OTHER_GUEST = "guest-session-2"


def _checkout(scope, session_id=GUEST, **overrides):
    params = {
        "session_id": session_id,
        "customer_email": "guest@example.com",
        "customer_name": "Guest Buyer",
    }
    params.update(overrides)
    return order_service.create_order(scope, **params)


class TestTax:

    @pytest.mark.parametrize("subtotal,bps,expected", [
        (10000, 850, 850),
        (1, 850, 0),
        (100, 850, 8),    # 8.5 -> 8 (half-even)
        (300, 850, 26),   # 25.5 -> 26
        (0, 850, 0),
    ])
    def test_half_even(self, subtotal, bps, expected):
        assert cart_service.calculate_tax_cents(subtotal, bps) == expected


class TestCart:

    def test_add_reserves_item(self, scope_a, item_a):
        cart = cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        assert [line.item_id for line in cart.items] == [item_a.id]
        assert cart.expires_at is not None
        assert cart_service.is_item_reserved(scope_a, item_a.id)

    def test_re_adding_is_a_no_op(self, scope_a, item_a):
        cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        cart = cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        assert len(cart.items) == 1

    def test_item_in_another_cart_conflicts(self, scope_a, item_a):
        cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        with pytest.raises(ConflictError):
            cart_service.add_item_to_cart(scope_a, item_a.id, session_id=OTHER_GUEST)

    def test_expired_cart_releases_reservation(self, scope_a, item_a, db_session):
        cart = cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        cart.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        other = cart_service.add_item_to_cart(scope_a, item_a.id, session_id=OTHER_GUEST)
        assert [line.item_id for line in other.items] == [item_a.id]
        assert scope_a.query(ShoppingCart, ShoppingCart.session_id == GUEST).first() is None

    def test_removed_item_cannot_be_added(self, scope_a, item_a):
        item_service.remove_item(scope_a, item_a.id, reason="Damaged")
        with pytest.raises(ConflictError):
            cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)

    def test_customer_cart_does_not_expire(self, scope_a, item_a, shopper_a):
        cart = cart_service.add_item_to_cart(scope_a, item_a.id, customer_id=shopper_a.id)
        assert cart.expires_at is None
        assert cart.session_id is None

    def test_remove_and_clear(self, scope_a, make_item):
        first, second = make_item(title="One"), make_item(title="Two")
        cart_service.add_item_to_cart(scope_a, first.id, session_id=GUEST)
        cart_service.add_item_to_cart(scope_a, second.id, session_id=GUEST)

        cart = cart_service.remove_item_from_cart(scope_a, first.id, session_id=GUEST)
        assert [line.item_id for line in cart.items] == [second.id]
        with pytest.raises(NotFoundError):
            cart_service.remove_item_from_cart(scope_a, first.id, session_id=GUEST)

        cart_service.clear_cart(scope_a, session_id=GUEST)
        assert cart_service.get_cart(scope_a, session_id=GUEST)["item_count"] == 0
        assert not cart_service.is_item_reserved(scope_a, second.id)

    def test_cart_key_required(self, scope_a, item_a):
        with pytest.raises(ValidationError):
            cart_service.add_item_to_cart(scope_a, item_a.id)

    def test_merge_on_sign_in(self, scope_a, make_item, shopper_a):
        mine, theirs = make_item(title="Mine"), make_item(title="Theirs")
        cart_service.add_item_to_cart(scope_a, mine.id, customer_id=shopper_a.id)
        cart_service.add_item_to_cart(scope_a, theirs.id, session_id=GUEST)

        merged = cart_service.merge_cart(scope_a, session_id=GUEST, customer_id=shopper_a.id)
        assert sorted(line.item_id for line in merged.items) == sorted([mine.id, theirs.id])
        assert cart_service.find_cart(scope_a, GUEST, None) is None

    def test_summary_flags_unavailable_items(self, scope_a, item_a):
        cart = cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        item_a.price_cents = 12000
        item_a.status = "SOLD"
        summary = cart_service.summarize_cart(scope_a, cart)
        line = summary["items"][0]
        assert line["is_available"] is False
        assert line["price_changed"] is True
        assert summary["subtotal_cents"] == 0
        assert summary["has_unavailable_items"] is True

    def test_cleanup_expired_carts(self, scope_a, item_a, db_session):
        cart = cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        cart.expires_at = utcnow() - timedelta(days=1)
        db_session.commit()
        assert cart_service.cleanup_expired_carts() == 1
        assert not cart_service.is_item_reserved(scope_a, item_a.id)


class TestCheckout:

    def test_checkout_sells_everything(self, scope_a, make_item, outbox):
        first = make_item(title="Coat", price_cents=10000)
        second = make_item(title="Scarf", price_cents=2000, override_split_percentage="50")
        cart_service.add_item_to_cart(scope_a, first.id, session_id=GUEST)
        cart_service.add_item_to_cart(scope_a, second.id, session_id=GUEST)

        order = _checkout(scope_a, fulfillment_type="SHIPPING", shipping_address={
            "line1": "1 Main St", "city": "Springfield", "state": "IL", "postal_code": "62701",
        })

        assert order.status == "PENDING"
        assert order.payment_status == "PENDING"
        assert order.subtotal_cents == 12000
        assert order.tax_cents == 1020
        assert order.shipping_cents == 1000
        assert order.total_cents == 12000 + 1020 + 1000
        assert sorted(line.price_cents for line in order.lines) == [2000, 10000]

        assert {scope_a.get(Item, i).status for i in (first.id, second.id)} == {"SOLD"}
        txns = scope_a.query(Transaction, Transaction.order_id == order.id).all()
        assert len(txns) == 2
        assert all(t.source == "ONLINE" and t.payment_method == "ONLINE" for t in txns)
        assert sum(t.sales_tax_cents for t in txns) == order.tax_cents
        assert sorted(t.provider_amount_cents for t in txns) == [1000, 6000]

        assert cart_service.get_cart(scope_a, session_id=GUEST)["item_count"] == 0
        assert any(m.to == "guest@example.com" for m in outbox)

    def test_pickup_has_no_shipping(self, scope_a, item_a):
        cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        order = _checkout(scope_a)
        assert order.fulfillment_type == "PICKUP"
        assert order.shipping_cents == 0
        assert order.total_cents == 10850

    def test_sold_item_fails_whole_checkout(self, scope_a, make_item, db_session):
        first, second = make_item(title="A"), make_item(title="B")
        cart_service.add_item_to_cart(scope_a, first.id, session_id=GUEST)
        cart_service.add_item_to_cart(scope_a, second.id, session_id=GUEST)
        second.status = "SOLD"  # sold at the counter while still in the cart
        db_session.commit()

        with pytest.raises(ConflictError) as exc_info:
            _checkout(scope_a)
        assert exc_info.value.details["item_ids"] == [second.id]
        assert scope_a.get(Item, first.id).status == "AVAILABLE"
        assert scope_a.query(Transaction, Transaction.order_id.isnot(None)).count() == 0

    def test_item_sold_mid_checkout_rolls_back(self, scope_a, make_item, db_session, monkeypatch):
        first, second = make_item(title="A"), make_item(title="B")
        cart_service.add_item_to_cart(scope_a, first.id, session_id=GUEST)
        cart_service.add_item_to_cart(scope_a, second.id, session_id=GUEST)

        real_claim = order_service.claim_item_for_sale
        claimed = []

        def claim_after_counter_sale(scope, item, sold_at):
            if item.id == second.id:
                # the counter sells it between the availability check and the claim
                db_session.query(Item).filter(Item.id == second.id).update(
                    {Item.status: "SOLD"}, synchronize_session="fetch"
                )
            real_claim(scope, item, sold_at)
            claimed.append(item.id)

        monkeypatch.setattr(order_service, "claim_item_for_sale", claim_after_counter_sale)

        with pytest.raises(ConflictError) as exc_info:
            _checkout(scope_a)

        assert exc_info.value.details["item_ids"] == [second.id]
        assert claimed == [first.id]
        assert scope_a.get(Item, first.id).status == "AVAILABLE"
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderItem).count() == 0
        assert scope_a.query(Transaction).count() == 0
        assert cart_service.get_cart(scope_a, session_id=GUEST)["item_count"] == 2

    def test_empty_cart(self, scope_a, org_a):
        with pytest.raises(ValidationError):
            _checkout(scope_a)

    def test_shipping_needs_address(self, scope_a, item_a):
        cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        with pytest.raises(ValidationError):
            _checkout(scope_a, fulfillment_type="SHIPPING")

    def test_validate_reports_totals(self, scope_a, item_a):
        cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        check = order_service.validate_cart_for_checkout(scope_a, session_id=GUEST, fulfillment_type="SHIPPING")
        assert check["valid"] is True
        assert check["totals"] == {
            "subtotal_cents": 10000, "tax_cents": 850, "shipping_cents": 1000, "total_cents": 11850,
        }

    def test_payment_intent_and_confirmation(self, scope_a, item_a):
        cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        intent = order_service.create_payment_intent(scope_a, session_id=GUEST)
        assert intent.amount_cents == 10850
        order = _checkout(scope_a, payment_intent_id=intent.id)

        confirmed = order_service.confirm_payment(scope_a, order.id)
        assert confirmed.status == "CONFIRMED"
        assert confirmed.payment_status == "PAID"
        with pytest.raises(ConflictError):
            order_service.confirm_payment(scope_a, order.id)

    def test_cancel_restores_items(self, scope_a, item_a):
        cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        order = _checkout(scope_a)
        cancelled = order_service.cancel_order(scope_a, order.id, reason="Changed mind")

        assert cancelled.status == "CANCELLED"
        assert scope_a.get(Item, item_a.id).status == "AVAILABLE"
        txn = scope_a.query(Transaction, Transaction.order_id == order.id).one()
        assert txn.status == "VOIDED"

    def test_status_flow(self, scope_a, item_a):
        cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        order = _checkout(scope_a)
        order_service.update_order_status(scope_a, order.id, "CONFIRMED")
        with pytest.raises(ConflictError):
            order_service.update_order_status(scope_a, order.id, "SHIPPED")  # pickup order
        done = order_service.update_order_status(scope_a, order.id, "COMPLETED")
        assert done.completed_at is not None
        with pytest.raises(ConflictError):
            order_service.cancel_order(scope_a, order.id)

    def test_shopper_cannot_see_other_orders(self, scope_a, item_a, shopper_a):
        cart_service.add_item_to_cart(scope_a, item_a.id, session_id=GUEST)
        order = _checkout(scope_a)
        with pytest.raises(NotFoundError):
            order_service.get_order(scope_a, order.id, customer_id=shopper_a.id)
