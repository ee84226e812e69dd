# Overview: Service-layer operations for provider statements, including the monthly batch job.

"""
Statement Service

A statement summarizes one provider's period:

    opening  = closing balance of the statement ending the day before, or
               (earnings before the period - paid payouts before the period)
    earnings = sum(provider_amount) of completed sales dated in the period
    payouts  = sum(total_amount) of payouts paid in the period
    closing  = opening + earnings - payouts

Generation is idempotent per (provider, period): asking again returns the
stored statement. The monthly job processes every active provider of every
active organization independently; one provider failing never blocks the
rest.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Organization, Payout, Provider, Statement, Transaction
from ..models.consignors import PROVIDER_ACTIVE
from ..models.payouts import PAYOUT_PAID
from ..models.sales import TRANSACTION_COMPLETED
from ..models.statements import STATEMENT_GENERATED, STATEMENT_VIEWED
from ..validation import ValidationError
from consignment.time_utils import end_of_day, month_bounds, previous_month, start_of_day, utcnow
from . import notification_service
from .tenant_service import TenantScope


@dataclass
class StatementRunResult:
    year: int
    month: int
    generated: list = field(default_factory=list)
    existing: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "month": self.month,
            "generated_count": len(self.generated),
            "existing_count": len(self.existing),
            "error_count": len(self.errors),
            "generated": [s.to_dict() for s in self.generated],
            "errors": self.errors,
        }


def _check_period(period_start: date, period_end: date) -> None:
    if period_start is None or period_end is None:
        raise ValidationError("period_start and period_end are required")
    if period_start > period_end:
        raise ValidationError("period_start must be on or before period_end")


def _statement_number(provider: Provider, period_start: date, period_end: date) -> str:
    provider_code = provider.provider_number.replace("-", "")
    first, last = month_bounds(period_start.year, period_start.month)
    if (period_start, period_end) == (first, last):
        return f"STMT-{period_start:%Y-%m}-{provider_code}"
    return f"STMT-{period_start:%Y%m%d}-{period_end:%Y%m%d}-{provider_code}"


def _earnings(scope: TenantScope, provider_id: int, *criteria):
    return (
        scope.query(
            Transaction,
            Transaction.provider_id == provider_id,
            Transaction.status == TRANSACTION_COMPLETED,
            *criteria,
        )
        .with_entities(
            func.count(Transaction.id),
            func.coalesce(func.sum(Transaction.sale_price_cents), 0),
            func.coalesce(func.sum(Transaction.provider_amount_cents), 0),
        )
        .one()
    )


def _payouts(scope: TenantScope, provider_id: int, *criteria):
    return (
        scope.query(
            Payout,
            Payout.provider_id == provider_id,
            Payout.status == PAYOUT_PAID,
            *criteria,
        )
        .with_entities(func.count(Payout.id), func.coalesce(func.sum(Payout.total_amount_cents), 0))
        .one()
    )


def compute_opening_balance(scope: TenantScope, provider_id: int, period_start: date) -> int:
    """Prior statement's closing balance, else recomputed from history."""
    prior = scope.query(
        Statement,
        Statement.provider_id == provider_id,
        Statement.period_end == period_start - timedelta(days=1),
    ).first()
    if prior is not None:
        return prior.closing_balance_cents

    cutoff = start_of_day(period_start)
    _, _, earned = _earnings(scope, provider_id, Transaction.sale_date < cutoff)
    _, paid = _payouts(scope, provider_id, Payout.paid_at < cutoff)
    return int(earned) - int(paid)


def _compute(scope: TenantScope, provider: Provider, period_start: date, period_end: date) -> dict:
    lo, hi = start_of_day(period_start), end_of_day(period_end)
    items_sold, sales, earnings = _earnings(
        scope, provider.id, Transaction.sale_date >= lo, Transaction.sale_date <= hi
    )
    payout_count, payouts = _payouts(scope, provider.id, Payout.paid_at >= lo, Payout.paid_at <= hi)
    opening = compute_opening_balance(scope, provider.id, period_start)

    return {
        "opening_balance_cents": opening,
        "total_sales_cents": int(sales),
        "total_earnings_cents": int(earnings),
        "total_payouts_cents": int(payouts),
        "closing_balance_cents": opening + int(earnings) - int(payouts),
        "items_sold": int(items_sold),
        "payout_count": int(payout_count),
    }


def _find(scope: TenantScope, provider_id: int, period_start: date, period_end: date) -> Statement | None:
    return scope.query(
        Statement,
        Statement.provider_id == provider_id,
        Statement.period_start == period_start,
        Statement.period_end == period_end,
    ).first()


def generate_statement(
    scope: TenantScope,
    provider_id: int,
    period_start: date,
    period_end: date,
    *,
    notify: bool = True,
) -> Statement:
    """Return the provider's statement for the period, creating it if needed."""
    _check_period(period_start, period_end)
    provider = scope.get(Provider, provider_id, label="Provider")

    existing = _find(scope, provider.id, period_start, period_end)
    if existing is not None:
        return existing

    statement = Statement(
        provider_id=provider.id,
        statement_number=_statement_number(provider, period_start, period_end),
        period_start=period_start,
        period_end=period_end,
        status=STATEMENT_GENERATED,
        generated_at=utcnow(),
        **_compute(scope, provider, period_start, period_end),
    )
    scope.add(statement)
    try:
        db.session.commit()
    except IntegrityError:
        # Another worker generated the same period first
        db.session.rollback()
        existing = _find(scope, provider.id, period_start, period_end)
        if existing is None:
            raise
        return existing

    current_app.logger.info(
        "Generated statement %s (closing %s cents)", statement.statement_number, statement.closing_balance_cents
    )
    if notify:
        try:
            notify_statement_ready(statement)
        except Exception:
            # statement is already committed
            db.session.rollback()
            current_app.logger.exception("Statement %s saved but notification failed", statement.statement_number)
    return statement


def notify_statement_ready(statement: Statement) -> None:
    notification_service.notify_provider(statement.provider, notification_service.STATEMENT_READY, {
        "statement_id": statement.id,
        "statement_number": statement.statement_number,
        "period_label": f"{statement.period_start:%B %Y}",
        "opening_balance_cents": statement.opening_balance_cents,
        "total_earnings_cents": statement.total_earnings_cents,
        "total_payouts_cents": statement.total_payouts_cents,
        "closing_balance_cents": statement.closing_balance_cents,
    })


def generate_statements_for_month(year: int, month: int, *, org_id: int | None = None) -> StatementRunResult:
    """
    Generate statements for every active provider of every active organization
    (or of one organization when org_id is given).

    Each provider is processed in isolation: failures are logged, rolled
    back and reported in the result.
    """
    try:
        period_start, period_end = month_bounds(int(year), int(month))
    except ValueError as exc:
        raise ValidationError(str(exc))

    result = StatementRunResult(year=int(year), month=int(month))

    orgs = db.session.query(Organization).filter(Organization.is_active.is_(True))
    if org_id is not None:
        orgs = orgs.filter(Organization.id == org_id)

    for org in orgs.order_by(Organization.id).all():
        scope = TenantScope(org.id)
        provider_ids = [
            pid for (pid,) in scope.query(Provider, Provider.status == PROVIDER_ACTIVE)
            .with_entities(Provider.id).order_by(Provider.id).all()
        ]
        for provider_id in provider_ids:
            try:
                if _find(scope, provider_id, period_start, period_end) is not None:
                    result.existing.append(provider_id)
                    continue
                result.generated.append(generate_statement(scope, provider_id, period_start, period_end))
            except Exception as exc:
                db.session.rollback()
                current_app.logger.exception(
                    "Statement generation failed for provider %s in org %s", provider_id, org.id
                )
                result.errors.append({"org_id": org.id, "provider_id": provider_id, "error": str(exc)})

    current_app.logger.info(
        "Statements for %04d-%02d: %s generated, %s existing, %s failed",
        result.year, result.month, len(result.generated), len(result.existing), len(result.errors),
    )
    return result


def run_monthly_statement_job(today: date | None = None) -> StatementRunResult:
    """Entry point for the external scheduler: statements for the previous month."""
    year, month = previous_month(today or utcnow().date())
    return generate_statements_for_month(year, month)


def list_statements(
    scope: TenantScope,
    *,
    provider_id: int | None = None,
    year: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Statement], int]:
    query = scope.query(Statement)
    if provider_id is not None:
        query = query.filter(Statement.provider_id == provider_id)
    if year is not None:
        query = query.filter(
            Statement.period_start >= date(year, 1, 1),
            Statement.period_start <= date(year, 12, 31),
        )
    total = query.count()
    rows = query.order_by(Statement.period_start.desc(), Statement.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def get_statement(scope: TenantScope, statement_id: int) -> Statement:
    return scope.get(Statement, statement_id, label="Statement")


def mark_viewed(scope: TenantScope, statement_id: int) -> Statement:
    statement = scope.get(Statement, statement_id, label="Statement")
    if statement.status != STATEMENT_VIEWED:
        statement.status = STATEMENT_VIEWED
        statement.viewed_at = utcnow()
        db.session.commit()
    return statement


def _recompute(scope: TenantScope, statement: Statement) -> None:
    values = _compute(scope, statement.provider, statement.period_start, statement.period_end)
    for key, value in values.items():
        setattr(statement, key, value)
    statement.status = STATEMENT_GENERATED
    statement.viewed_at = None
    statement.generated_at = utcnow()
    db.session.flush()


def regenerate_statement(scope: TenantScope, statement_id: int) -> Statement:
    """
    Recompute an existing statement in place (after corrections such as a void).

    The provider's later statements are recomputed too, oldest first, so each
    opening balance still equals the closing balance before it. All of them
    commit together.
    """
    statement = scope.get(Statement, statement_id, label="Statement")
    later = scope.query(
        Statement,
        Statement.provider_id == statement.provider_id,
        Statement.period_start > statement.period_end,
    ).order_by(Statement.period_start).all()

    try:
        _recompute(scope, statement)
        for following in later:
            _recompute(scope, following)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Regenerated statement %s and %s later statement(s)", statement.statement_number, len(later)
    )
    return statement
