# Overview: Accounting integration: pushes sales and payouts, records sync status.

"""
Accounting Sync

Adapter contract:
    create_customer(provider) -> reference
    sync_transaction(transaction) -> reference   (sales receipt)
    sync_payout(payout) -> reference             (payment to the provider)

Services record the outcome on the row (synced_to_accounting,
accounting_sync_failed, accounting_sync_error). There is no automatic
retry: failed rows stay flagged until someone syncs them again.

Backends (ACCOUNTING_BACKEND):
- disabled: every call fails with a clear error (default)
- local:    issues local reference numbers and keeps a journal in
            app.extensions["accounting_journal"]
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Payout, Provider, Transaction
from ..models.payouts import PAYOUT_PAID
from ..models.sales import TRANSACTION_COMPLETED
from ..validation import ConflictError
from consignment.time_utils import utcnow
from .tenant_service import TenantScope


class AccountingError(Exception):
    """Raised by an accounting backend when a sync call fails."""
    pass


class DisabledAccountingClient:
    def _fail(self, *args, **kwargs):
        raise AccountingError("Accounting integration is not configured")

    create_customer = _fail
    sync_transaction = _fail
    sync_payout = _fail


class LocalAccountingClient:
    def _journal(self) -> list:
        return current_app.extensions.setdefault("accounting_journal", [])

    def create_customer(self, provider: Provider) -> str:
        ref = f"CUST-{provider.org_id}-{provider.id}"
        self._journal().append(("customer", ref, provider.display_name))
        return ref

    def sync_transaction(self, transaction: Transaction) -> str:
        ref = f"SR-{transaction.org_id}-{transaction.id}"
        self._journal().append(("sales_receipt", ref, transaction.sale_price_cents))
        return ref

    def sync_payout(self, payout: Payout) -> str:
        ref = f"PMT-{payout.org_id}-{payout.id}"
        self._journal().append(("payment", ref, payout.total_amount_cents))
        return ref


_BACKENDS = {
    "disabled": DisabledAccountingClient,
    "local": LocalAccountingClient,
}


def get_accounting_client():
    name = current_app.config.get("ACCOUNTING_BACKEND", "disabled")
    try:
        return _BACKENDS[name]()
    except KeyError:
        raise AccountingError(f"Unknown ACCOUNTING_BACKEND: {name}")


def _record(row, ok: bool, reference: str | None = None, error: str | None = None) -> None:
    row.synced_to_accounting = ok
    row.accounting_sync_failed = not ok
    row.accounting_sync_error = None if ok else (error or "")[:500]
    if ok:
        row.accounting_reference = reference
        row.accounting_synced_at = utcnow()


def create_customer(scope: TenantScope, provider_id: int) -> Provider:
    provider = scope.get(Provider, provider_id, label="Provider")
    if provider.accounting_customer_id:
        return provider
    provider.accounting_customer_id = get_accounting_client().create_customer(provider)
    db.session.commit()
    return provider


def sync_transaction(scope: TenantScope, transaction_id: int) -> Transaction:
    transaction = scope.get(Transaction, transaction_id, label="Transaction")
    if transaction.status != TRANSACTION_COMPLETED:
        raise ConflictError("Only completed transactions can be synced")

    try:
        reference = get_accounting_client().sync_transaction(transaction)
        _record(transaction, True, reference=reference)
    except AccountingError as exc:
        current_app.logger.warning("Accounting sync failed for transaction %s: %s", transaction.id, exc)
        _record(transaction, False, error=str(exc))
    db.session.commit()
    return transaction


def sync_payout(scope: TenantScope, payout_id: int) -> Payout:
    payout = scope.get(Payout, payout_id, label="Payout")
    if payout.status != PAYOUT_PAID:
        raise ConflictError("Only paid payouts can be synced")

    client = get_accounting_client()
    try:
        provider = payout.provider
        if not provider.accounting_customer_id:
            provider.accounting_customer_id = client.create_customer(provider)
        reference = client.sync_payout(payout)
        _record(payout, True, reference=reference)
    except AccountingError as exc:
        current_app.logger.warning("Accounting sync failed for payout %s: %s", payout.id, exc)
        _record(payout, False, error=str(exc))
    db.session.commit()
    return payout


def sync_pending(scope: TenantScope, *, limit: int = 200) -> dict:
    """Push unsynced completed sales and paid payouts (explicit, operator-triggered)."""
    transactions = (
        scope.query(Transaction, Transaction.status == TRANSACTION_COMPLETED, Transaction.synced_to_accounting.is_(False))
        .order_by(Transaction.id).limit(limit).all()
    )
    payouts = (
        scope.query(Payout, Payout.status == PAYOUT_PAID, Payout.synced_to_accounting.is_(False))
        .order_by(Payout.id).limit(limit).all()
    )
    synced = failed = 0
    for t in transactions:
        ok = sync_transaction(scope, t.id).synced_to_accounting
        synced, failed = synced + ok, failed + (not ok)
    for p in payouts:
        ok = sync_payout(scope, p.id).synced_to_accounting
        synced, failed = synced + ok, failed + (not ok)
    return {"synced": synced, "failed": failed}


def get_sync_status(scope: TenantScope) -> dict:
    def counts(model, *criteria):
        base = scope.query(model, *criteria)
        return {
            "synced": base.filter(model.synced_to_accounting.is_(True)).count(),
            "failed": base.filter(model.accounting_sync_failed.is_(True)).count(),
            "pending": base.filter(
                model.synced_to_accounting.is_(False), model.accounting_sync_failed.is_(False)
            ).count(),
        }

    return {
        "backend": current_app.config.get("ACCOUNTING_BACKEND", "disabled"),
        "transactions": counts(Transaction, Transaction.status == TRANSACTION_COMPLETED),
        "payouts": counts(Payout, Payout.status == PAYOUT_PAID),
    }
