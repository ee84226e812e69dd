# Overview: Pytest coverage for in-store sales, voids and sales metrics.

from datetime import date, datetime
from decimal import Decimal

import pytest

from consignment.models import Item, Notification, Transaction
from consignment.services import payout_service, provider_service, transaction_service
from consignment.services.tenant_service import TenantAccessError
from consignment.validation import ConflictError, ValidationError


class TestRecordSale:

    def test_sale_snapshots_split(self, scope_a, item_a, provider_a):
        txn = transaction_service.record_sale(scope_a, item_id=item_a.id, payment_method="card")

        assert txn.sale_price_cents == 10000
        assert txn.split_percentage == Decimal("60.00")
        assert txn.provider_amount_cents == 6000
        assert txn.shop_amount_cents == 4000
        assert txn.payment_method == "CARD"
        assert txn.source == "IN_STORE"
        assert txn.status == "COMPLETED"
        assert txn.provider_paid_out is False
        assert item_a.status == "SOLD"
        assert item_a.sold_at is not None

    def test_override_split_and_custom_price(self, scope_a, make_item):
        item = make_item(price_cents=8000, override_split_percentage="70")
        txn = transaction_service.record_sale(scope_a, item_id=item.id, sale_price_cents=7000)
        assert txn.provider_amount_cents == 4900
        assert txn.shop_amount_cents == 2100

    def test_rate_change_does_not_touch_recorded_sale(self, scope_a, item_a, provider_a):
        txn = transaction_service.record_sale(scope_a, item_id=item_a.id)
        provider_service.update_provider(scope_a, provider_a.id, {"commission_rate": "40.00"})
        assert txn.split_percentage == Decimal("60.00")
        assert txn.provider_amount_cents == 6000

    def test_item_cannot_be_sold_twice(self, scope_a, item_a):
        transaction_service.record_sale(scope_a, item_id=item_a.id)
        with pytest.raises(ConflictError):
            transaction_service.record_sale(scope_a, item_id=item_a.id)
        assert transaction_service.list_transactions(scope_a)[1] == 1

    def test_inactive_provider_blocks_sale(self, scope_a, item_a, provider_a):
        provider_service.deactivate_provider(scope_a, provider_a.id)
        with pytest.raises(ConflictError):
            transaction_service.record_sale(scope_a, item_id=item_a.id)

    def test_rejects_negative_price(self, scope_a, item_a):
        with pytest.raises(ValidationError):
            transaction_service.record_sale(scope_a, item_id=item_a.id, sale_price_cents=-5)
        assert item_a.status == "AVAILABLE"

    def test_unknown_payment_method(self, scope_a, item_a):
        with pytest.raises(ValidationError):
            transaction_service.record_sale(scope_a, item_id=item_a.id, payment_method="BITCOIN")

    def test_cross_tenant_item_is_not_found(self, scope_b, item_a):
        with pytest.raises(TenantAccessError):
            transaction_service.record_sale(scope_b, item_id=item_a.id)

    def test_provider_is_emailed(self, scope_a, item_a, outbox):
        transaction_service.record_sale(scope_a, item_id=item_a.id)
        assert [m.to for m in outbox] == ["alice@example.com"]
        assert "Wool coat" in outbox[0].subject
        assert "$60.00" in outbox[0].body

    def test_notification_text_is_not_html_escaped(self, scope_a, provider_a, make_item, consignor_a, outbox):
        item = make_item(title="Salt & Pepper <set>", price_cents=1500)
        transaction_service.record_sale(scope_a, item_id=item.id)

        assert outbox[-1].subject == "Your item sold: Salt & Pepper <set>"
        assert "Salt & Pepper <set> (" in outbox[-1].body
        notification = scope_a.query(Notification, Notification.user_id == consignor_a.id).one()
        assert notification.title == "Your item sold: Salt & Pepper <set>"


class TestVoid:

    def test_void_returns_item_to_floor(self, scope_a, item_a, owner_a):
        txn = transaction_service.record_sale(scope_a, item_id=item_a.id)
        voided = transaction_service.void_transaction(
            scope_a, txn.id, reason="Customer changed mind", voided_by_user_id=owner_a.id
        )
        assert voided.status == "VOIDED"
        assert voided.void_reason == "Customer changed mind"
        assert scope_a.get(Item, item_a.id).status == "AVAILABLE"

    def test_void_twice_conflicts(self, scope_a, item_a):
        txn = transaction_service.record_sale(scope_a, item_id=item_a.id)
        transaction_service.void_transaction(scope_a, txn.id)
        with pytest.raises(ConflictError):
            transaction_service.void_transaction(scope_a, txn.id)

    def test_batched_sale_cannot_be_voided(self, scope_a, item_a, provider_a):
        txn = transaction_service.record_sale(scope_a, item_id=item_a.id)
        today = txn.sale_date.date()
        payout_service.create_payout(scope_a, provider_a.id, today, today)
        with pytest.raises(ConflictError):
            transaction_service.void_transaction(scope_a, txn.id)


class TestUpdateAndMetrics:

    def test_only_notes_and_method_editable(self, scope_a, item_a):
        txn = transaction_service.record_sale(scope_a, item_id=item_a.id)
        transaction_service.update_transaction(scope_a, txn.id, {"notes": "gift wrap", "payment_method": "check"})
        assert txn.notes == "gift wrap"
        assert txn.payment_method == "CHECK"
        with pytest.raises(ValidationError):
            transaction_service.update_transaction(scope_a, txn.id, {"sale_price_cents": 1})

    def test_metrics_exclude_voids(self, scope_a, make_item):
        first = make_item(price_cents=1000)
        second = make_item(price_cents=3000)
        transaction_service.record_sale(scope_a, item_id=first.id, payment_method="CASH")
        txn = transaction_service.record_sale(scope_a, item_id=second.id, payment_method="CARD")
        transaction_service.void_transaction(scope_a, txn.id)

        metrics = transaction_service.get_sales_metrics(scope_a)
        assert metrics["transaction_count"] == 1
        assert metrics["total_sales_cents"] == 1000
        assert metrics["provider_amount_cents"] == 600
        assert metrics["by_payment_method"] == {"CASH": 1000}

    def test_date_filter(self, scope_a, make_item):
        item = make_item()
        transaction_service.record_sale(scope_a, item_id=item.id, sale_date=datetime(2026, 3, 15, 14, 0))
        rows, total = transaction_service.list_transactions(
            scope_a, start_date=date(2026, 3, 15), end_date=date(2026, 3, 15)
        )
        assert total == 1
        _, total = transaction_service.list_transactions(scope_a, start_date=date(2026, 3, 16))
        assert total == 0
        with pytest.raises(ValidationError):
            transaction_service.list_transactions(scope_a, start_date=date(2026, 3, 2), end_date=date(2026, 3, 1))

    def test_listing_is_tenant_scoped(self, scope_a, scope_b, item_a, item_b):
        transaction_service.record_sale(scope_a, item_id=item_a.id)
        transaction_service.record_sale(scope_b, item_id=item_b.id)
        rows, total = transaction_service.list_transactions(scope_a)
        assert total == 1
        assert all(isinstance(t, Transaction) and t.org_id == scope_a.org_id for t in rows)
