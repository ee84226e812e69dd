# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

"""
Reports are in-memory aggregations over tenant-scoped query results. They
never write. Grouping happens in Python so the same code runs on SQLite
and PostgreSQL.
"""

from __future__ import annotations

import csv
import io
from collections import defaultdict
from datetime import date, datetime

from ..models import Item, Payout, Provider, Transaction
from ..models.inventory import ITEM_AVAILABLE
from ..models.payouts import PAYOUT_PAID, PAYOUT_PENDING
from ..models.sales import TRANSACTION_COMPLETED
from ..validation import ValidationError
from consignment.time_utils import end_of_day, start_of_day, to_iso_date, utcnow
from .tenant_service import TenantScope


AGING_BUCKETS = (
    ("0-30", 0, 30),
    ("31-60", 31, 60),
    ("61-90", 61, 90),
    ("90+", 91, None),
)


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""
    pass


def _period_key(dt: datetime, group_by: str) -> str:
    if group_by == "day":
        return dt.strftime("%Y-%m-%d")
    if group_by == "week":
        year, week, _ = dt.isocalendar()
        return f"{year}-W{week:02d}"
    if group_by == "month":
        return dt.strftime("%Y-%m")
    raise ReportError("group_by must be day, week, or month")


def _completed(scope: TenantScope, start_date: date | None, end_date: date | None, provider_id: int | None = None):
    if start_date and end_date and start_date > end_date:
        raise ReportError("start_date must be on or before end_date")
    query = scope.query(Transaction, Transaction.status == TRANSACTION_COMPLETED)
    if start_date:
        query = query.filter(Transaction.sale_date >= start_of_day(start_date))
    if end_date:
        query = query.filter(Transaction.sale_date <= end_of_day(end_date))
    if provider_id is not None:
        query = query.filter(Transaction.provider_id == provider_id)
    return query


def sales_report(
    scope: TenantScope,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    group_by: str = "day",
    provider_id: int | None = None,
) -> dict:
    if group_by not in ("day", "week", "month"):
        raise ReportError("group_by must be day, week, or month")

    buckets = defaultdict(lambda: {
        "transaction_count": 0,
        "gross_sales_cents": 0,
        "provider_amount_cents": 0,
        "shop_amount_cents": 0,
        "sales_tax_cents": 0,
    })
    for t in _completed(scope, start_date, end_date, provider_id).all():
        row = buckets[_period_key(t.sale_date, group_by)]
        row["transaction_count"] += 1
        row["gross_sales_cents"] += t.sale_price_cents
        row["provider_amount_cents"] += t.provider_amount_cents
        row["shop_amount_cents"] += t.shop_amount_cents
        row["sales_tax_cents"] += t.sales_tax_cents

    rows = [dict(period=period, **values) for period, values in sorted(buckets.items())]
    totals = {
        key: sum(r[key] for r in rows)
        for key in ("transaction_count", "gross_sales_cents", "provider_amount_cents",
                    "shop_amount_cents", "sales_tax_cents")
    }
    return {
        "group_by": group_by,
        "start_date": to_iso_date(start_date),
        "end_date": to_iso_date(end_date),
        "provider_id": provider_id,
        "rows": rows,
        "totals": totals,
    }


def sales_trends_by_category(scope: TenantScope, *, start_date: date | None = None,
                             end_date: date | None = None) -> dict:
    stats = defaultdict(lambda: {"items_sold": 0, "revenue_cents": 0})
    for t in _completed(scope, start_date, end_date).all():
        category = t.item.category or "Uncategorized"
        stats[category]["items_sold"] += 1
        stats[category]["revenue_cents"] += t.sale_price_cents

    total_revenue = sum(s["revenue_cents"] for s in stats.values())
    rows = []
    for category, s in stats.items():
        rows.append({
            "category": category,
            "items_sold": s["items_sold"],
            "revenue_cents": s["revenue_cents"],
            "average_price_cents": round(s["revenue_cents"] / s["items_sold"]) if s["items_sold"] else 0,
            "revenue_share_pct": round(100 * s["revenue_cents"] / total_revenue, 2) if total_revenue else 0.0,
        })
    rows.sort(key=lambda r: (-r["revenue_cents"], r["category"]))
    return {
        "start_date": to_iso_date(start_date),
        "end_date": to_iso_date(end_date),
        "total_revenue_cents": total_revenue,
        "rows": rows,
    }


def inventory_aging(scope: TenantScope, *, as_of: date | None = None, oldest_limit: int = 10) -> dict:
    """Available items bucketed by days on the floor."""
    as_of = as_of or utcnow().date()
    buckets = {label: {"bucket": label, "item_count": 0, "value_cents": 0} for label, _, _ in AGING_BUCKETS}

    items = scope.query(Item, Item.status == ITEM_AVAILABLE).all()
    aged = []
    for item in items:
        days = max((as_of - item.listed_at.date()).days, 0)
        for label, low, high in AGING_BUCKETS:
            if days >= low and (high is None or days <= high):
                buckets[label]["item_count"] += 1
                buckets[label]["value_cents"] += item.price_cents
                break
        aged.append((days, item))

    aged.sort(key=lambda pair: (-pair[0], pair[1].id))
    return {
        "as_of": as_of.isoformat(),
        "total_items": len(items),
        "total_value_cents": sum(i.price_cents for i in items),
        "buckets": [buckets[label] for label, _, _ in AGING_BUCKETS],
        "oldest_items": [
            {
                "item_id": item.id,
                "sku": item.sku,
                "title": item.title,
                "provider_id": item.provider_id,
                "price_cents": item.price_cents,
                "days_listed": days,
            }
            for days, item in aged[:oldest_limit]
        ],
    }


def daily_reconciliation(
    scope: TenantScope,
    *,
    day: date,
    opening_cash_cents: int = 0,
    actual_cash_cents: int | None = None,
) -> dict:
    """
    Cash vs card for one day.

    expected_cash = opening_cash + cash sales (incl. tax) - cash payouts paid that day
    variance      = actual_cash - expected_cash (when a count is supplied)
    """
    by_method = defaultdict(lambda: {"transaction_count": 0, "amount_cents": 0})
    for t in _completed(scope, day, day).all():
        row = by_method[t.payment_method]
        row["transaction_count"] += 1
        row["amount_cents"] += t.sale_price_cents + t.sales_tax_cents

    cash_payouts = sum(
        p.total_amount_cents
        for p in scope.query(
            Payout,
            Payout.status == PAYOUT_PAID,
            Payout.payment_method == "CASH",
            Payout.paid_at >= start_of_day(day),
            Payout.paid_at <= end_of_day(day),
        ).all()
    )

    cash_sales = by_method.get("CASH", {}).get("amount_cents", 0)
    card_sales = by_method.get("CARD", {}).get("amount_cents", 0)
    expected_cash = opening_cash_cents + cash_sales - cash_payouts
    return {
        "date": day.isoformat(),
        "opening_cash_cents": opening_cash_cents,
        "cash_sales_cents": cash_sales,
        "card_sales_cents": card_sales,
        "other_sales_cents": sum(
            v["amount_cents"] for k, v in by_method.items() if k not in ("CASH", "CARD")
        ),
        "cash_payouts_cents": cash_payouts,
        "expected_cash_cents": expected_cash,
        "actual_cash_cents": actual_cash_cents,
        "variance_cents": None if actual_cash_cents is None else actual_cash_cents - expected_cash,
        "by_payment_method": [dict(payment_method=k, **v) for k, v in sorted(by_method.items())],
    }


def payout_summary(scope: TenantScope, *, start_date: date | None = None, end_date: date | None = None) -> dict:
    paid_query = scope.query(Payout, Payout.status == PAYOUT_PAID)
    if start_date:
        paid_query = paid_query.filter(Payout.paid_at >= start_of_day(start_date))
    if end_date:
        paid_query = paid_query.filter(Payout.paid_at <= end_of_day(end_date))
    paid = paid_query.all()

    pending_batches = scope.query(Payout, Payout.status == PAYOUT_PENDING).all()

    owed = defaultdict(int)
    for t in scope.query(
        Transaction,
        Transaction.status == TRANSACTION_COMPLETED,
        Transaction.provider_paid_out.is_(False),
    ).all():
        owed[t.provider_id] += t.provider_amount_cents

    by_method = defaultdict(int)
    for p in paid:
        by_method[p.payment_method or "UNKNOWN"] += p.total_amount_cents

    return {
        "start_date": to_iso_date(start_date),
        "end_date": to_iso_date(end_date),
        "paid_count": len(paid),
        "paid_total_cents": sum(p.total_amount_cents for p in paid),
        "paid_by_method": dict(sorted(by_method.items())),
        "pending_batch_count": len(pending_batches),
        "pending_batch_total_cents": sum(p.total_amount_cents for p in pending_batches),
        "unpaid_total_cents": sum(owed.values()),
        "providers_with_balance": sum(1 for amount in owed.values() if amount > 0),
    }


def provider_performance(scope: TenantScope, *, start_date: date | None = None, end_date: date | None = None,
                         limit: int = 50) -> dict:
    stats = defaultdict(lambda: {"items_sold": 0, "gross_sales_cents": 0, "earnings_cents": 0})
    for t in _completed(scope, start_date, end_date).all():
        s = stats[t.provider_id]
        s["items_sold"] += 1
        s["gross_sales_cents"] += t.sale_price_cents
        s["earnings_cents"] += t.provider_amount_cents

    available = defaultdict(int)
    for item in scope.query(Item, Item.status == ITEM_AVAILABLE).all():
        available[item.provider_id] += 1

    providers = {p.id: p for p in scope.query(Provider).all()}
    rows = []
    for provider_id, s in stats.items():
        provider = providers[provider_id]
        on_hand = available.get(provider_id, 0)
        rows.append({
            "provider_id": provider_id,
            "provider_number": provider.provider_number,
            "provider_name": provider.display_name,
            "items_sold": s["items_sold"],
            "gross_sales_cents": s["gross_sales_cents"],
            "earnings_cents": s["earnings_cents"],
            "average_sale_cents": round(s["gross_sales_cents"] / s["items_sold"]),
            "available_items": on_hand,
            "sell_through_pct": round(100 * s["items_sold"] / (s["items_sold"] + on_hand), 2),
        })
    rows.sort(key=lambda r: (-r["gross_sales_cents"], r["provider_name"]))
    return {
        "start_date": to_iso_date(start_date),
        "end_date": to_iso_date(end_date),
        "rows": rows[:limit],
    }


def export_transactions_csv(scope: TenantScope, *, start_date: date | None = None, end_date: date | None = None,
                            provider_id: int | None = None) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow([
        "transaction_id", "sale_date", "sku", "title", "provider_number", "provider_name",
        "sale_price", "split_percentage", "provider_amount", "shop_amount", "sales_tax",
        "payment_method", "source", "paid_out",
    ])
    query = _completed(scope, start_date, end_date, provider_id).order_by(Transaction.sale_date, Transaction.id)
    for t in query.all():
        writer.writerow([
            t.id,
            t.sale_date.strftime("%Y-%m-%d %H:%M:%S"),
            t.item.sku,
            t.item.title,
            t.provider.provider_number,
            t.provider.display_name,
            f"{t.sale_price_cents / 100:.2f}",
            str(t.split_percentage),
            f"{t.provider_amount_cents / 100:.2f}",
            f"{t.shop_amount_cents / 100:.2f}",
            f"{t.sales_tax_cents / 100:.2f}",
            t.payment_method,
            t.source,
            "yes" if t.provider_paid_out else "no",
        ])
    return buf.getvalue()
