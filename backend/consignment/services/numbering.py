# Overview: Human-readable document numbers (orders, payouts).

from datetime import date

from .tenant_service import TenantScope


def next_daily_number(scope: TenantScope, model, column, prefix: str, day: date) -> str:
    """
    "<prefix>YYYYMMDD-NNN", sequential per organization per day.

    The (org_id, number) unique constraint on the table is the final guard
    against two writers picking the same number.
    """
    stem = f"{prefix}{day.strftime('%Y%m%d')}-"
    n = scope.query(model, column.like(f"{stem}%")).count() + 1
    while scope.query(model, column == f"{stem}{n:03d}").first():
        n += 1
    return f"{stem}{n:03d}"
