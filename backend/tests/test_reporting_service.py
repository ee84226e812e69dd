# Overview: Pytest coverage for sales, inventory and payout reports.

from datetime import date, datetime

import pytest

from consignment.services import payout_service, reporting_service, transaction_service
from consignment.services.reporting_service import ReportError


@pytest.fixture
def sales(scope_a, provider_a, make_item):
    """
    Sept 1 (Tue): coat 10000 CASH +850 tax, shoes 4000 CARD
    Sept 8 (Tue): lamp 2000 CASH, then voided vase 3000 CASH
    """
    coat = make_item(title="Coat", price_cents=10000, category="Outerwear")
    shoes = make_item(title="Shoes", price_cents=4000, category="Footwear")
    lamp = make_item(title="Lamp", price_cents=2000, category="Home")
    vase = make_item(title="Vase", price_cents=3000, category="Home")

    day1 = datetime(2026, 9, 1, 11, 0)
    day8 = datetime(2026, 9, 8, 15, 30)
    transaction_service.record_sale(scope_a, item_id=coat.id, sale_date=day1, payment_method="CASH", sales_tax_cents=850)
    transaction_service.record_sale(scope_a, item_id=shoes.id, sale_date=day1, payment_method="CARD")
    transaction_service.record_sale(scope_a, item_id=lamp.id, sale_date=day8, payment_method="CASH")
    voided = transaction_service.record_sale(scope_a, item_id=vase.id, sale_date=day8, payment_method="CASH")
    transaction_service.void_transaction(scope_a, voided.id)


class TestSalesReport:

    def test_group_by_day(self, scope_a, sales):
        report = reporting_service.sales_report(scope_a, start_date=date(2026, 9, 1), end_date=date(2026, 9, 30))
        assert [r["period"] for r in report["rows"]] == ["2026-09-01", "2026-09-08"]
        assert report["rows"][0]["gross_sales_cents"] == 14000
        assert report["totals"]["transaction_count"] == 3
        assert report["totals"]["gross_sales_cents"] == 16000
        assert report["totals"]["provider_amount_cents"] == 9600
        assert report["totals"]["shop_amount_cents"] == 6400
        assert report["totals"]["sales_tax_cents"] == 850

    def test_group_by_week_and_month(self, scope_a, sales):
        weekly = reporting_service.sales_report(scope_a, group_by="week")
        assert [r["period"] for r in weekly["rows"]] == ["2026-W36", "2026-W37"]
        monthly = reporting_service.sales_report(scope_a, group_by="month")
        assert [r["period"] for r in monthly["rows"]] == ["2026-09"]

    def test_invalid_parameters(self, scope_a):
        with pytest.raises(ReportError):
            reporting_service.sales_report(scope_a, group_by="year")
        with pytest.raises(ReportError):
            reporting_service.sales_report(scope_a, start_date=date(2026, 9, 2), end_date=date(2026, 9, 1))

    def test_other_tenant_sees_nothing(self, scope_b, sales):
        assert reporting_service.sales_report(scope_b)["rows"] == []


class TestCategoryTrends:

    def test_rows_sorted_by_revenue(self, scope_a, sales):
        report = reporting_service.sales_trends_by_category(scope_a)
        assert [r["category"] for r in report["rows"]] == ["Outerwear", "Footwear", "Home"]
        assert report["total_revenue_cents"] == 16000
        assert report["rows"][0]["revenue_share_pct"] == 62.5


class TestInventoryAging:

    def test_buckets(self, scope_a, make_item):
        make_item(title="Fresh", price_cents=1000, listed_at="2026-09-20T10:00:00")
        make_item(title="Month", price_cents=2000, listed_at="2026-08-15T10:00:00")
        make_item(title="Stale", price_cents=3000, listed_at="2026-05-01T10:00:00")

        report = reporting_service.inventory_aging(scope_a, as_of=date(2026, 9, 30))
        counts = {b["bucket"]: b["item_count"] for b in report["buckets"]}
        assert counts == {"0-30": 1, "31-60": 1, "61-90": 0, "90+": 1}
        assert report["total_value_cents"] == 6000
        assert report["oldest_items"][0]["title"] == "Stale"


class TestDailyReconciliation:

    def test_cash_drawer(self, scope_a, provider_a, sales, db_session):
        payout = payout_service.create_payout(scope_a, provider_a.id, date(2026, 9, 1), date(2026, 9, 1))
        payout = payout_service.mark_payout_paid(scope_a, payout.id, payment_method="CASH")
        payout.paid_at = datetime(2026, 9, 1, 17, 0)
        db_session.commit()

        recon = reporting_service.daily_reconciliation(
            scope_a, day=date(2026, 9, 1), opening_cash_cents=20000, actual_cash_cents=22000
        )
        assert recon["cash_sales_cents"] == 10850
        assert recon["card_sales_cents"] == 4000
        assert recon["cash_payouts_cents"] == 6000 + 2400
        assert recon["expected_cash_cents"] == 20000 + 10850 - 8400
        assert recon["variance_cents"] == 22000 - recon["expected_cash_cents"]

    def test_no_count_no_variance(self, scope_a, sales):
        recon = reporting_service.daily_reconciliation(scope_a, day=date(2026, 9, 8))
        assert recon["cash_sales_cents"] == 2000
        assert recon["variance_cents"] is None


class TestPayoutAndProviderReports:

    def test_payout_summary(self, scope_a, provider_a, sales):
        payout_service.create_payout(scope_a, provider_a.id, date(2026, 9, 1), date(2026, 9, 1))
        summary = reporting_service.payout_summary(scope_a)
        assert summary["paid_count"] == 0
        assert summary["pending_batch_count"] == 1
        assert summary["pending_batch_total_cents"] == 8400
        assert summary["unpaid_total_cents"] == 9600
        assert summary["providers_with_balance"] == 1

    def test_provider_performance(self, scope_a, provider_a, sales, make_item):
        make_item(title="Still on the rack")
        report = reporting_service.provider_performance(scope_a)
        row = report["rows"][0]
        assert row["provider_id"] == provider_a.id
        assert row["items_sold"] == 3
        # the voided vase went back on the floor
        assert row["available_items"] == 2
        assert row["sell_through_pct"] == 60.0

    def test_transactions_csv(self, scope_a, sales):
        lines = reporting_service.export_transactions_csv(scope_a).strip().splitlines()
        assert len(lines) == 4
        assert lines[0].startswith("transaction_id,sale_date")
        assert "Coat" in lines[1]
