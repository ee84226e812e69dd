# Overview: Pytest coverage for the explicit accounting sync.

import pytest

from consignment.services import accounting_service, payout_service, transaction_service
from consignment.validation import ConflictError


@pytest.fixture
def sale(scope_a, item_a):
    return transaction_service.record_sale(scope_a, item_id=item_a.id)


@pytest.fixture
def paid_payout(scope_a, provider_a, sale):
    day = sale.sale_date.date()
    payout = payout_service.create_payout(scope_a, provider_a.id, day, day)
    return payout_service.mark_payout_paid(scope_a, payout.id, payment_method="CASH")


class TestLocalBackend:

    def test_sync_transaction(self, app, scope_a, sale):
        synced = accounting_service.sync_transaction(scope_a, sale.id)
        assert synced.synced_to_accounting is True
        assert synced.accounting_sync_failed is False
        assert synced.accounting_reference == f"SR-{sale.org_id}-{sale.id}"
        assert app.extensions["accounting_journal"] == [("sales_receipt", synced.accounting_reference, 10000)]

    def test_payout_sync_creates_customer_first(self, app, scope_a, paid_payout):
        synced = accounting_service.sync_payout(scope_a, paid_payout.id)
        assert synced.synced_to_accounting is True
        assert synced.provider.accounting_customer_id is not None
        kinds = [entry[0] for entry in app.extensions["accounting_journal"]]
        assert kinds == ["customer", "payment"]

    def test_pending_payout_cannot_sync(self, scope_a, provider_a, sale):
        day = sale.sale_date.date()
        payout = payout_service.create_payout(scope_a, provider_a.id, day, day)
        with pytest.raises(ConflictError):
            accounting_service.sync_payout(scope_a, payout.id)

    def test_voided_sale_cannot_sync(self, scope_a, sale):
        transaction_service.void_transaction(scope_a, sale.id, reason="Mistake")
        with pytest.raises(ConflictError):
            accounting_service.sync_transaction(scope_a, sale.id)

    def test_create_customer_is_idempotent(self, app, scope_a, provider_a):
        first = accounting_service.create_customer(scope_a, provider_a.id).accounting_customer_id
        second = accounting_service.create_customer(scope_a, provider_a.id).accounting_customer_id
        assert first == second
        assert len(app.extensions["accounting_journal"]) == 1

    def test_sync_pending_and_status(self, scope_a, paid_payout):
        result = accounting_service.sync_pending(scope_a)
        assert result == {"synced": 2, "failed": 0}

        status = accounting_service.get_sync_status(scope_a)
        assert status["backend"] == "local"
        assert status["transactions"] == {"synced": 1, "failed": 0, "pending": 0}
        assert status["payouts"] == {"synced": 1, "failed": 0, "pending": 0}


class TestDisabledBackend:

    @pytest.fixture(autouse=True)
    def disabled(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "ACCOUNTING_BACKEND", "disabled")

    def test_failure_is_recorded_not_raised(self, scope_a, sale):
        result = accounting_service.sync_transaction(scope_a, sale.id)
        assert result.synced_to_accounting is False
        assert result.accounting_sync_failed is True
        assert "not configured" in result.accounting_sync_error

        status = accounting_service.get_sync_status(scope_a)
        assert status["transactions"]["failed"] == 1

    def test_create_customer_surfaces_error(self, client, owner_headers, provider_a):
        resp = client.post(f"/api/accounting/providers/{provider_a.id}/customer", headers=owner_headers)
        assert resp.status_code == 502
        assert resp.json["success"] is False


def test_accounting_routes_require_permission(client, clerk_headers, accountant_headers, sale):
    assert client.get("/api/accounting/status", headers=clerk_headers).status_code == 403

    resp = client.post(f"/api/accounting/transactions/{sale.id}/sync", headers=accountant_headers)
    assert resp.status_code == 200
    assert resp.json["data"]["synced_to_accounting"] is True
