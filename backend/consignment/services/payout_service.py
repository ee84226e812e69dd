# Overview: Service-layer operations for provider payouts; encapsulates business logic and database work.

"""
Payout Service

Reports are read-only views of a provider's unpaid sales in a date range
and are safe to call repeatedly. Settlement goes through persisted batches:

    create_payout    snapshot the unpaid, unbatched sales into a PENDING batch
    mark_payout_paid settle exactly that batch (PENDING -> PAID)
    cancel_payout    release the batch (PENDING -> CANCELLED)

A transaction can sit in at most one pending batch: claiming uses a
conditional update on payout_id IS NULL and fails the whole batch if any
row was claimed concurrently.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Payout, Provider, Transaction
from ..models.consignors import PROVIDER_ACTIVE, PAYOUT_METHODS
from ..models.payouts import PAYOUT_CANCELLED, PAYOUT_PAID, PAYOUT_PENDING
from ..models.sales import TRANSACTION_COMPLETED
from ..validation import ConflictError, ValidationError
from consignment.time_utils import end_of_day, start_of_day, to_iso_date, utcnow
from . import notification_service
from .concurrency import transition_status
from .numbering import next_daily_number
from .tenant_service import TenantScope


@dataclass
class PayoutReport:
    provider_id: int
    provider_name: str
    period_start: date
    period_end: date
    total_amount_cents: int = 0
    transaction_count: int = 0
    transactions: list = field(default_factory=list)

    def to_dict(self, include_transactions: bool = True) -> dict:
        data = {
            "provider_id": self.provider_id,
            "provider_name": self.provider_name,
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
            "total_amount_cents": self.total_amount_cents,
            "transaction_count": self.transaction_count,
        }
        if include_transactions:
            data["transactions"] = [t.to_dict() for t in self.transactions]
        return data


def _check_period(period_start: date, period_end: date) -> None:
    if period_start is None or period_end is None:
        raise ValidationError("period_start and period_end are required")
    if period_start > period_end:
        raise ValidationError("period_start must be on or before period_end")


def _unpaid_query(scope: TenantScope, provider_id: int, period_start: date | None = None, period_end: date | None = None):
    query = scope.query(
        Transaction,
        Transaction.provider_id == provider_id,
        Transaction.status == TRANSACTION_COMPLETED,
        Transaction.provider_paid_out.is_(False),
    )
    if period_start is not None:
        query = query.filter(Transaction.sale_date >= start_of_day(period_start))
    if period_end is not None:
        query = query.filter(Transaction.sale_date <= end_of_day(period_end))
    return query


def generate_payout_report(scope: TenantScope, provider_id: int, period_start: date, period_end: date) -> PayoutReport:
    """
    Unpaid completed sales of one provider with sale_date in the inclusive range.

    Read-only. Unknown provider -> NotFoundError.
    """
    _check_period(period_start, period_end)
    provider = scope.get(Provider, provider_id, label="Provider")

    transactions = (
        _unpaid_query(scope, provider.id, period_start, period_end)
        .order_by(Transaction.sale_date, Transaction.id)
        .all()
    )
    return PayoutReport(
        provider_id=provider.id,
        provider_name=provider.display_name,
        period_start=period_start,
        period_end=period_end,
        total_amount_cents=sum(t.provider_amount_cents for t in transactions),
        transaction_count=len(transactions),
        transactions=transactions,
    )


def generate_all_payout_reports(scope: TenantScope, period_start: date, period_end: date) -> list[PayoutReport]:
    """Reports for every active provider with something owed in the range."""
    _check_period(period_start, period_end)
    providers = (
        scope.query(Provider, Provider.status == PROVIDER_ACTIVE)
        .order_by(Provider.display_name, Provider.id)
        .all()
    )
    reports = []
    for provider in providers:
        report = generate_payout_report(scope, provider.id, period_start, period_end)
        if report.total_amount_cents > 0:
            reports.append(report)
    return reports


def create_payout(
    scope: TenantScope,
    provider_id: int,
    period_start: date,
    period_end: date,
    *,
    created_by_user_id: int | None = None,
    notes: str | None = None,
) -> Payout:
    """
    Persist a PENDING batch of the provider's unpaid, unbatched sales in range.

    Raises ConflictError when there is nothing to pay or another batch
    claimed some of the sales first.
    """
    _check_period(period_start, period_end)
    provider = scope.get(Provider, provider_id, label="Provider")

    candidates = (
        _unpaid_query(scope, provider.id, period_start, period_end)
        .filter(Transaction.payout_id.is_(None))
        .all()
    )
    if not candidates:
        raise ConflictError("No unpaid transactions in this period")

    ids = [t.id for t in candidates]
    payout = Payout(
        provider_id=provider.id,
        payout_number=next_daily_number(scope, Payout, Payout.payout_number, "PAY-", utcnow().date()),
        period_start=period_start,
        period_end=period_end,
        total_amount_cents=sum(t.provider_amount_cents for t in candidates),
        transaction_count=len(candidates),
        status=PAYOUT_PENDING,
        notes=(notes or "").strip() or None,
        created_by_user_id=created_by_user_id,
    )
    scope.add(payout)
    db.session.flush()

    claimed = (
        scope.query(
            Transaction,
            Transaction.id.in_(ids),
            Transaction.payout_id.is_(None),
            Transaction.provider_paid_out.is_(False),
            Transaction.status == TRANSACTION_COMPLETED,
        )
        .update({Transaction.payout_id: payout.id}, synchronize_session="fetch")
    )
    if claimed != len(ids):
        db.session.rollback()
        raise ConflictError("Transactions changed while the payout was being created; try again")

    db.session.commit()
    current_app.logger.info(
        "Created payout %s for provider %s: %s cents over %s transactions",
        payout.payout_number, provider.provider_number, payout.total_amount_cents, payout.transaction_count,
    )
    return payout


def mark_payout_paid(
    scope: TenantScope,
    payout_id: int,
    *,
    payment_method: str | None = None,
    notes: str | None = None,
    payment_reference: str | None = None,
    paid_by_user_id: int | None = None,
) -> Payout:
    """
    Settle one PENDING batch: every transaction in it becomes provider_paid_out.

    Paying a batch that is not PENDING is a ConflictError.
    """
    payout = scope.get(Payout, payout_id, label="Payout")

    method = (payment_method or payout.provider.payment_method or "CASH").upper()
    if method not in PAYOUT_METHODS:
        raise ValidationError("payment_method must be one of: " + ", ".join(sorted(PAYOUT_METHODS)))
    notes = (notes or "").strip() or None
    now = utcnow()

    moved = transition_status(
        Payout,
        org_id=scope.org_id,
        row_id=payout.id,
        from_status=PAYOUT_PENDING,
        to_status=PAYOUT_PAID,
        extra={
            "paid_at": now,
            "paid_by_user_id": paid_by_user_id,
            "payment_method": method,
            "payment_reference": (payment_reference or "").strip() or None,
            "notes": notes if notes is not None else payout.notes,
        },
    )
    if not moved:
        db.session.rollback()
        raise ConflictError(f"Payout is {payout.status}; only pending payouts can be paid")

    scope.query(Transaction, Transaction.payout_id == payout.id).update(
        {
            Transaction.provider_paid_out: True,
            Transaction.provider_paid_out_date: now,
            Transaction.payout_method: method,
            Transaction.payout_notes: notes,
        },
        synchronize_session="fetch",
    )
    db.session.commit()
    db.session.refresh(payout)

    current_app.logger.info(
        "Payout %s marked paid (%s cents, %s)", payout.payout_number, payout.total_amount_cents, method
    )
    notification_service.notify_provider(payout.provider, notification_service.PAYOUT_PROCESSED, {
        "payout_id": payout.id,
        "payout_number": payout.payout_number,
        "amount_cents": payout.total_amount_cents,
        "transaction_count": payout.transaction_count,
        "payment_method": method,
        "notes": notes,
    })
    return payout


def cancel_payout(scope: TenantScope, payout_id: int) -> Payout:
    """Release a PENDING batch so its sales can be batched again."""
    payout = scope.get(Payout, payout_id, label="Payout")
    moved = transition_status(
        Payout,
        org_id=scope.org_id,
        row_id=payout.id,
        from_status=PAYOUT_PENDING,
        to_status=PAYOUT_CANCELLED,
        extra={"cancelled_at": utcnow()},
    )
    if not moved:
        db.session.rollback()
        raise ConflictError(f"Payout is {payout.status}; only pending payouts can be cancelled")

    scope.query(Transaction, Transaction.payout_id == payout.id).update(
        {Transaction.payout_id: None}, synchronize_session="fetch"
    )
    db.session.commit()
    db.session.refresh(payout)
    current_app.logger.info("Payout %s cancelled", payout.payout_number)
    return payout


def get_pending_amount(scope: TenantScope, provider_id: int) -> int:
    """Total owed to a provider right now (all unpaid completed sales)."""
    total = (
        _unpaid_query(scope, provider_id)
        .with_entities(func.coalesce(func.sum(Transaction.provider_amount_cents), 0))
        .scalar()
    )
    return int(total or 0)


def get_pending_payouts(scope: TenantScope) -> list[dict]:
    """One row per provider with unpaid sales, largest balance first."""
    rows = (
        scope.query(
            Transaction,
            Transaction.status == TRANSACTION_COMPLETED,
            Transaction.provider_paid_out.is_(False),
        )
        .with_entities(
            Transaction.provider_id,
            func.sum(Transaction.provider_amount_cents),
            func.count(Transaction.id),
            func.min(Transaction.sale_date),
            func.max(Transaction.sale_date),
        )
        .group_by(Transaction.provider_id)
        .all()
    )
    if not rows:
        return []

    providers = {
        p.id: p for p in scope.query(Provider, Provider.id.in_([r[0] for r in rows])).all()
    }
    batched = {
        pid for (pid,) in scope.query(
            Payout, Payout.status == PAYOUT_PENDING
        ).with_entities(Payout.provider_id).distinct().all()
    }

    summary = []
    for provider_id, amount, count, oldest, newest in rows:
        provider = providers[provider_id]
        summary.append({
            "provider_id": provider_id,
            "provider_number": provider.provider_number,
            "provider_name": provider.display_name,
            "provider_status": provider.status,
            "payment_method": provider.payment_method,
            "pending_amount_cents": int(amount or 0),
            "transaction_count": int(count),
            "oldest_sale_date": oldest.date().isoformat() if oldest else None,
            "newest_sale_date": newest.date().isoformat() if newest else None,
            "has_pending_batch": provider_id in batched,
        })
    summary.sort(key=lambda row: (-row["pending_amount_cents"], row["provider_name"]))
    return summary


def list_payouts(
    scope: TenantScope,
    *,
    provider_id: int | None = None,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Payout], int]:
    query = scope.query(Payout)
    if provider_id is not None:
        query = query.filter(Payout.provider_id == provider_id)
    if status:
        query = query.filter(Payout.status == status.upper())
    total = query.count()
    rows = query.order_by(Payout.created_at.desc(), Payout.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def get_payout(scope: TenantScope, payout_id: int) -> Payout:
    return scope.get(Payout, payout_id, label="Payout")


def export_payout_csv(scope: TenantScope, payout_id: int) -> str:
    payout = scope.get(Payout, payout_id, label="Payout")

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow([
        "payout_number", "provider_number", "provider_name", "transaction_id", "sale_date",
        "sku", "title", "sale_price", "split_percentage", "provider_amount",
    ])
    for t in payout.transactions:
        writer.writerow([
            payout.payout_number,
            payout.provider.provider_number,
            payout.provider.display_name,
            t.id,
            t.sale_date.date().isoformat(),
            t.item.sku,
            t.item.title,
            f"{t.sale_price_cents / 100:.2f}",
            str(t.split_percentage),
            f"{t.provider_amount_cents / 100:.2f}",
        ])
    writer.writerow([])
    writer.writerow(["total", "", "", "", "", "", "", "", "", f"{payout.total_amount_cents / 100:.2f}"])
    return buf.getvalue()
