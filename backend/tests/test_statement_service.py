# Overview: Pytest coverage for monthly provider statements.

from datetime import date, datetime

import pytest

from consignment.services import payout_service, statement_service, transaction_service
from consignment.validation import ValidationError


@pytest.fixture
def history(db_session, scope_a, provider_a, make_item):
    """
    provider_a at 60%:
    - August sale 1000 -> 600 earned
    - September sale 5000 -> 3000 earned
    - August earnings paid out on 2026-09-10 (600)
    """
    aug = make_item(title="August lamp", price_cents=1000)
    sep = make_item(title="September chair", price_cents=5000)
    t_aug = transaction_service.record_sale(scope_a, item_id=aug.id, sale_date=datetime(2026, 8, 20, 10, 0))
    t_sep = transaction_service.record_sale(scope_a, item_id=sep.id, sale_date=datetime(2026, 9, 12, 10, 0))

    payout = payout_service.create_payout(scope_a, provider_a.id, date(2026, 8, 1), date(2026, 8, 31))
    payout = payout_service.mark_payout_paid(scope_a, payout.id, payment_method="CASH")
    payout.paid_at = datetime(2026, 9, 10, 9, 0)
    db_session.commit()
    return {"aug": t_aug, "sep": t_sep, "payout": payout}


class TestGenerateStatement:

    def test_balances_roll_forward(self, scope_a, provider_a, history):
        aug = statement_service.generate_statement(scope_a, provider_a.id, date(2026, 8, 1), date(2026, 8, 31))
        assert aug.opening_balance_cents == 0
        assert aug.total_earnings_cents == 600
        assert aug.total_payouts_cents == 0
        assert aug.closing_balance_cents == 600

        sep = statement_service.generate_statement(scope_a, provider_a.id, date(2026, 9, 1), date(2026, 9, 30))
        assert sep.opening_balance_cents == aug.closing_balance_cents
        assert sep.total_sales_cents == 5000
        assert sep.total_earnings_cents == 3000
        assert sep.total_payouts_cents == 600
        assert sep.payout_count == 1
        assert sep.items_sold == 1
        assert sep.closing_balance_cents == 600 + 3000 - 600

    def test_opening_balance_without_prior_statement(self, scope_a, provider_a, history):
        sep = statement_service.generate_statement(scope_a, provider_a.id, date(2026, 9, 1), date(2026, 9, 30))
        # Recomputed from history: 600 earned before September, nothing paid before September
        assert sep.opening_balance_cents == 600
        assert sep.closing_balance_cents == 3000

    def test_generation_is_idempotent(self, scope_a, provider_a, history, outbox):
        first = statement_service.generate_statement(scope_a, provider_a.id, date(2026, 9, 1), date(2026, 9, 30))
        sent = len(outbox)
        second = statement_service.generate_statement(scope_a, provider_a.id, date(2026, 9, 1), date(2026, 9, 30))
        assert first.id == second.id
        assert len(outbox) == sent
        assert first.statement_number == f"STMT-2026-09-{provider_a.provider_number.replace('-', '')}"

    def test_statement_ready_email(self, scope_a, provider_a, history, outbox):
        statement_service.generate_statement(scope_a, provider_a.id, date(2026, 9, 1), date(2026, 9, 30))
        assert outbox[-1].to == "alice@example.com"
        assert "September 2026" in outbox[-1].subject

    def test_regenerate_after_void(self, scope_a, provider_a, history):
        sep = statement_service.generate_statement(scope_a, provider_a.id, date(2026, 9, 1), date(2026, 9, 30))
        transaction_service.void_transaction(scope_a, history["sep"].id)
        sep = statement_service.regenerate_statement(scope_a, sep.id)
        assert sep.total_earnings_cents == 0
        assert sep.items_sold == 0

    def test_regenerate_rolls_forward_to_later_statements(self, scope_a, provider_a, make_item, history):
        aug = statement_service.generate_statement(scope_a, provider_a.id, date(2026, 8, 1), date(2026, 8, 31))
        sep = statement_service.generate_statement(scope_a, provider_a.id, date(2026, 9, 1), date(2026, 9, 30))
        oct_ = statement_service.generate_statement(scope_a, provider_a.id, date(2026, 10, 1), date(2026, 10, 31))
        statement_service.mark_viewed(scope_a, sep.id)

        late = make_item(title="Backdated vase", price_cents=10000)
        transaction_service.record_sale(scope_a, item_id=late.id, sale_date=datetime(2026, 8, 25, 12, 0))

        aug = statement_service.regenerate_statement(scope_a, aug.id)
        assert aug.closing_balance_cents == 600 + 6000
        sep = statement_service.get_statement(scope_a, sep.id)
        oct_ = statement_service.get_statement(scope_a, oct_.id)
        assert sep.opening_balance_cents == aug.closing_balance_cents
        assert sep.closing_balance_cents == 6600 + 3000 - 600
        assert sep.status == "GENERATED"
        assert oct_.opening_balance_cents == sep.closing_balance_cents
        assert oct_.closing_balance_cents == 9000

    def test_mark_viewed(self, scope_a, provider_a, history):
        sep = statement_service.generate_statement(scope_a, provider_a.id, date(2026, 9, 1), date(2026, 9, 30))
        viewed = statement_service.mark_viewed(scope_a, sep.id)
        assert viewed.status == "VIEWED"
        assert viewed.viewed_at is not None

    def test_bad_period(self, scope_a, provider_a):
        with pytest.raises(ValidationError):
            statement_service.generate_statement(scope_a, provider_a.id, date(2026, 9, 30), date(2026, 9, 1))


class TestMonthlyRun:

    def test_generates_for_every_active_provider_once(self, scope_a, scope_b, provider_a, provider_b, history):
        result = statement_service.generate_statements_for_month(2026, 9)
        assert {s.provider_id for s in result.generated} == {provider_a.id, provider_b.id}
        assert result.errors == []

        again = statement_service.generate_statements_for_month(2026, 9)
        assert again.generated == []
        assert set(again.existing) == {provider_a.id, provider_b.id}

    def test_single_org(self, scope_a, provider_a, provider_b, org_a):
        result = statement_service.generate_statements_for_month(2026, 9, org_id=org_a.id)
        assert [s.provider_id for s in result.generated] == [provider_a.id]

    def test_scheduler_entry_point_uses_previous_month(self, scope_a, provider_a):
        result = statement_service.run_monthly_statement_job(today=date(2026, 1, 5))
        assert (result.year, result.month) == (2025, 12)
        statement = result.generated[0]
        assert statement.period_start == date(2025, 12, 1)
        assert statement.period_end == date(2025, 12, 31)

    def test_invalid_month(self, db_session):
        with pytest.raises(ValidationError):
            statement_service.generate_statements_for_month(2026, 13)

    def test_failing_provider_does_not_block_others(self, scope_a, scope_b, provider_a, provider_b, monkeypatch):
        real_compute = statement_service._compute

        def compute(scope, provider, period_start, period_end):
            if provider.id == provider_a.id:
                raise RuntimeError("ledger unavailable")
            return real_compute(scope, provider, period_start, period_end)

        monkeypatch.setattr(statement_service, "_compute", compute)
        result = statement_service.generate_statements_for_month(2026, 9)

        assert [s.provider_id for s in result.generated] == [provider_b.id]
        assert result.errors == [
            {"org_id": provider_a.org_id, "provider_id": provider_a.id, "error": "ledger unavailable"}
        ]
        assert statement_service.list_statements(scope_a)[1] == 0
        assert statement_service.list_statements(scope_b)[1] == 1

    def test_failed_notification_still_counts_as_generated(self, scope_a, provider_a, monkeypatch):
        def broken_notice(statement):
            raise RuntimeError("template missing")

        monkeypatch.setattr(statement_service, "notify_statement_ready", broken_notice)
        result = statement_service.generate_statements_for_month(2026, 9, org_id=provider_a.org_id)

        assert [s.provider_id for s in result.generated] == [provider_a.id]
        assert result.errors == []
        assert statement_service.list_statements(scope_a, provider_id=provider_a.id)[1] == 1
