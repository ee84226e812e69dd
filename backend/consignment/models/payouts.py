from __future__ import annotations

from ..extensions import db
from consignment.time_utils import to_utc_z, to_iso_date


PAYOUT_PENDING = "PENDING"
PAYOUT_PAID = "PAID"
PAYOUT_CANCELLED = "CANCELLED"


class Payout(db.Model):
    """
    Settlement batch to one provider.

    The set of transactions is fixed when the batch is created (they carry
    payout_id). Marking paid settles exactly that set. After PAID only the
    accounting sync columns may change.
    """
    __tablename__ = "payouts"
    __table_args__ = (
        db.UniqueConstraint("org_id", "payout_number", name="uq_payouts_org_number"),
        db.Index("ix_payouts_org_provider_status", "org_id", "provider_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False)

    payout_number = db.Column(db.String(32), nullable=False)

    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    transaction_count = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=PAYOUT_PENDING)

    payment_method = db.Column(db.String(32), nullable=True)
    payment_reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Accounting sync bookkeeping
    synced_to_accounting = db.Column(db.Boolean, nullable=False, default=False)
    accounting_sync_failed = db.Column(db.Boolean, nullable=False, default=False)
    accounting_sync_error = db.Column(db.String(500), nullable=True)
    accounting_reference = db.Column(db.String(64), nullable=True)
    accounting_synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    provider = db.relationship("Provider", backref=db.backref("payouts", lazy=True))
    transactions = db.relationship("Transaction", backref="payout", lazy=True, order_by="Transaction.sale_date")

    def to_dict(self, include_transactions: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "provider_id": self.provider_id,
            "provider_name": self.provider.display_name if self.provider else None,
            "payout_number": self.payout_number,
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
            "total_amount_cents": self.total_amount_cents,
            "transaction_count": self.transaction_count,
            "status": self.status,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "synced_to_accounting": self.synced_to_accounting,
            "accounting_sync_failed": self.accounting_sync_failed,
            "accounting_sync_error": self.accounting_sync_error,
        }
        if include_transactions:
            data["transactions"] = [t.to_dict() for t in self.transactions]
        return data
