# Overview: Service-layer operations for consignment sales; encapsulates business logic and database work.

"""
Transaction Service (point of sale)

record_sale moves the item AVAILABLE -> SOLD with a conditional update,
snapshots the effective split percentage and stores the computed split.
Two clerks ringing up the same item: exactly one succeeds, the other gets
a ConflictError.

Voiding reverses a sale that has not been settled: the transaction becomes
VOIDED and the item returns to AVAILABLE.
"""

from __future__ import annotations

from datetime import date, datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CartItem, Item, Provider, Transaction
from ..models.consignors import PROVIDER_ACTIVE
from ..models.inventory import ITEM_AVAILABLE, ITEM_SOLD
from ..models.sales import (
    SALE_PAYMENT_METHODS, SOURCE_IN_STORE, SOURCE_ONLINE,
    TRANSACTION_COMPLETED, TRANSACTION_VOIDED,
)
from ..validation import ConflictError, ValidationError, enforce_price_cents
from consignment.time_utils import end_of_day, start_of_day, utcnow
from . import notification_service
from .concurrency import run_with_retry, transition_status
from .split_service import calculate_split, effective_split_percentage
from .tenant_service import TenantScope


def _payment_method(value: str | None, default: str = "CASH") -> str:
    method = (value or default).upper()
    if method not in SALE_PAYMENT_METHODS:
        raise ValidationError("payment_method must be one of: " + ", ".join(sorted(SALE_PAYMENT_METHODS)))
    return method


def claim_item_for_sale(scope: TenantScope, item: Item, sold_at: datetime) -> None:
    """
    Conditional AVAILABLE -> SOLD. Raises ConflictError if someone else won.

    Releases any cart reservation on the item. Does not commit.
    """
    moved = transition_status(
        Item,
        org_id=scope.org_id,
        row_id=item.id,
        from_status=ITEM_AVAILABLE,
        to_status=ITEM_SOLD,
        extra={"sold_at": sold_at},
    )
    if not moved:
        raise ConflictError(f"Item {item.sku} is no longer available", {"item_ids": [item.id]})
    scope.query(CartItem, CartItem.item_id == item.id).delete(synchronize_session="fetch")


def build_transaction(
    scope: TenantScope,
    item: Item,
    *,
    sale_price_cents: int,
    sale_date: datetime,
    payment_method: str,
    source: str = SOURCE_IN_STORE,
    sales_tax_cents: int = 0,
    order_id: int | None = None,
    notes: str | None = None,
    created_by_user_id: int | None = None,
) -> Transaction:
    """Compute the split for an item sale and stage the Transaction (no commit)."""
    split = calculate_split(sale_price_cents, effective_split_percentage(item))
    transaction = Transaction(
        item_id=item.id,
        provider_id=item.provider_id,
        sale_price_cents=split.sale_price_cents,
        split_percentage=split.split_percentage,
        provider_amount_cents=split.provider_amount_cents,
        shop_amount_cents=split.shop_amount_cents,
        sales_tax_cents=sales_tax_cents,
        sale_date=sale_date,
        payment_method=payment_method,
        source=source,
        status=TRANSACTION_COMPLETED,
        order_id=order_id,
        notes=notes,
        created_by_user_id=created_by_user_id,
    )
    return scope.add(transaction)


def record_sale(
    scope: TenantScope,
    *,
    item_id: int,
    sale_price_cents: int | None = None,
    payment_method: str | None = None,
    sale_date: datetime | None = None,
    sales_tax_cents: int = 0,
    notes: str | None = None,
    created_by_user_id: int | None = None,
) -> Transaction:
    """
    Ring up an in-store sale.

    sale_price_cents defaults to the item's tag price. The provider must be
    ACTIVE. Losing the race for the item yields ConflictError.
    """
    item = scope.get(Item, item_id, label="Item")
    provider = scope.get(Provider, item.provider_id, label="Provider")
    if provider.status != PROVIDER_ACTIVE:
        raise ConflictError("Provider is not active")
    if item.status != ITEM_AVAILABLE:
        raise ConflictError(f"Item {item.sku} is not available (status {item.status})", {"item_ids": [item.id]})

    price = enforce_price_cents(item.price_cents if sale_price_cents is None else sale_price_cents, "sale_price_cents")
    tax = enforce_price_cents(sales_tax_cents or 0, "sales_tax_cents")
    method = _payment_method(payment_method)
    sale_date = sale_date or utcnow()

    def _op():
        try:
            claim_item_for_sale(scope, item, sale_date)
            staged = build_transaction(
                scope,
                item,
                sale_price_cents=price,
                sale_date=sale_date,
                payment_method=method,
                sales_tax_cents=tax,
                notes=(notes or "").strip() or None,
                created_by_user_id=created_by_user_id,
            )
            db.session.commit()
        except (ConflictError, ValidationError):
            db.session.rollback()
            raise
        return staged

    transaction = run_with_retry(_op)

    current_app.logger.info(
        "Sale recorded: item %s for %s cents (provider %s gets %s)",
        item.sku, price, provider.provider_number, transaction.provider_amount_cents,
    )
    notification_service.notify_provider(provider, notification_service.ITEM_SOLD, {
        "transaction_id": transaction.id,
        "item_title": item.title,
        "sku": item.sku,
        "sale_price_cents": transaction.sale_price_cents,
        "provider_amount_cents": transaction.provider_amount_cents,
    })
    return transaction


def list_transactions(
    scope: TenantScope,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    provider_id: int | None = None,
    payment_method: str | None = None,
    paid_out: bool | None = None,
    status: str | None = None,
    source: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Transaction], int]:
    query = _filtered(scope, start_date, end_date, provider_id)
    if payment_method:
        query = query.filter(Transaction.payment_method == payment_method.upper())
    if paid_out is not None:
        query = query.filter(Transaction.provider_paid_out.is_(paid_out))
    if status:
        query = query.filter(Transaction.status == status.upper())
    if source:
        query = query.filter(Transaction.source == source.upper())

    total = query.count()
    rows = query.order_by(Transaction.sale_date.desc(), Transaction.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def _filtered(scope: TenantScope, start_date, end_date, provider_id):
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be on or before end_date")
    query = scope.query(Transaction)
    if start_date:
        query = query.filter(Transaction.sale_date >= start_of_day(start_date))
    if end_date:
        query = query.filter(Transaction.sale_date <= end_of_day(end_date))
    if provider_id is not None:
        query = query.filter(Transaction.provider_id == provider_id)
    return query


def get_transaction(scope: TenantScope, transaction_id: int) -> Transaction:
    return scope.get(Transaction, transaction_id, label="Transaction")


def update_transaction(scope: TenantScope, transaction_id: int, payload: dict) -> Transaction:
    """Only payment_method and notes are editable; amounts never change."""
    transaction = scope.get(Transaction, transaction_id, label="Transaction")
    unknown = set(payload or {}) - {"payment_method", "notes"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    if transaction.status != TRANSACTION_COMPLETED:
        raise ConflictError("Voided transactions cannot be edited")

    if "payment_method" in payload:
        transaction.payment_method = _payment_method(payload["payment_method"])
    if "notes" in payload:
        transaction.notes = (payload["notes"] or "").strip() or None
    db.session.commit()
    return transaction


def void_transaction(
    scope: TenantScope,
    transaction_id: int,
    *,
    reason: str | None = None,
    voided_by_user_id: int | None = None,
    commit: bool = True,
) -> Transaction:
    """
    Void an unsettled sale and put the item back on the floor.

    Sales already paid out or sitting in a payout batch cannot be voided.
    """
    transaction = scope.get(Transaction, transaction_id, label="Transaction")
    if transaction.provider_paid_out or transaction.payout_id is not None:
        raise ConflictError("Transaction is part of a payout and cannot be voided")

    now = utcnow()
    moved = transition_status(
        Transaction,
        org_id=scope.org_id,
        row_id=transaction.id,
        from_status=TRANSACTION_COMPLETED,
        to_status=TRANSACTION_VOIDED,
        extra={
            "voided_at": now,
            "voided_by_user_id": voided_by_user_id,
            "void_reason": (reason or "").strip() or None,
        },
        where=(Transaction.payout_id.is_(None), Transaction.provider_paid_out.is_(False)),
    )
    if not moved:
        db.session.rollback()
        raise ConflictError("Transaction cannot be voided (already voided or claimed by a payout)")

    transition_status(
        Item,
        org_id=scope.org_id,
        row_id=transaction.item_id,
        from_status=ITEM_SOLD,
        to_status=ITEM_AVAILABLE,
        extra={"sold_at": None},
    )
    if commit:
        db.session.commit()
        db.session.refresh(transaction)
        current_app.logger.info("Transaction %s voided", transaction.id)
    return transaction


def get_sales_metrics(scope: TenantScope, *, start_date: date | None = None, end_date: date | None = None,
                      provider_id: int | None = None) -> dict:
    rows = (
        _filtered(scope, start_date, end_date, provider_id)
        .filter(Transaction.status == TRANSACTION_COMPLETED)
        .with_entities(
            Transaction.payment_method,
            Transaction.source,
            func.count(Transaction.id),
            func.coalesce(func.sum(Transaction.sale_price_cents), 0),
            func.coalesce(func.sum(Transaction.provider_amount_cents), 0),
            func.coalesce(func.sum(Transaction.shop_amount_cents), 0),
            func.coalesce(func.sum(Transaction.sales_tax_cents), 0),
        )
        .group_by(Transaction.payment_method, Transaction.source)
        .all()
    )

    metrics = {
        "transaction_count": 0,
        "total_sales_cents": 0,
        "provider_amount_cents": 0,
        "shop_amount_cents": 0,
        "sales_tax_cents": 0,
        "by_payment_method": {},
        "by_source": {SOURCE_IN_STORE: 0, SOURCE_ONLINE: 0},
    }
    for method, source, count, sales, provider_amt, shop_amt, tax in rows:
        metrics["transaction_count"] += count
        metrics["total_sales_cents"] += int(sales)
        metrics["provider_amount_cents"] += int(provider_amt)
        metrics["shop_amount_cents"] += int(shop_amt)
        metrics["sales_tax_cents"] += int(tax)
        metrics["by_payment_method"][method] = metrics["by_payment_method"].get(method, 0) + int(sales)
        metrics["by_source"][source] = metrics["by_source"].get(source, 0) + int(sales)

    count = metrics["transaction_count"]
    metrics["average_sale_cents"] = round(metrics["total_sales_cents"] / count) if count else 0
    return metrics
