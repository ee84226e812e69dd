from __future__ import annotations

from ..extensions import db
from consignment.time_utils import to_utc_z


TRANSACTION_COMPLETED = "COMPLETED"
TRANSACTION_VOIDED = "VOIDED"

SOURCE_IN_STORE = "IN_STORE"
SOURCE_ONLINE = "ONLINE"

SALE_PAYMENT_METHODS = {"CASH", "CARD", "CHECK", "ONLINE", "OTHER"}


class Transaction(db.Model):
    """
    One sale of one consigned item.

    The split percentage is snapshotted at sale time, so later changes to
    the provider's commission rate never alter historic earnings.
    provider_amount_cents + shop_amount_cents == sale_price_cents always.

    Payout bookkeeping: payout_id is set when the sale is claimed by a
    pending payout batch; provider_paid_out flips only when that batch is
    marked PAID.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_org_provider_date", "org_id", "provider_id", "sale_date"),
        db.Index("ix_transactions_org_date", "org_id", "sale_date"),
        db.Index("ix_transactions_payout", "payout_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False)

    # Money (cents)
    sale_price_cents = db.Column(db.Integer, nullable=False)
    split_percentage = db.Column(db.Numeric(5, 2), nullable=False)
    provider_amount_cents = db.Column(db.Integer, nullable=False)
    shop_amount_cents = db.Column(db.Integer, nullable=False)
    sales_tax_cents = db.Column(db.Integer, nullable=False, default=0)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False)
    payment_method = db.Column(db.String(16), nullable=False, default="CASH")
    source = db.Column(db.String(16), nullable=False, default=SOURCE_IN_STORE)
    status = db.Column(db.String(16), nullable=False, default=TRANSACTION_COMPLETED, index=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Void audit trail
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    # Payout bookkeeping
    payout_id = db.Column(db.Integer, db.ForeignKey("payouts.id"), nullable=True)
    provider_paid_out = db.Column(db.Boolean, nullable=False, default=False, index=True)
    provider_paid_out_date = db.Column(db.DateTime(timezone=True), nullable=True)
    payout_method = db.Column(db.String(32), nullable=True)
    payout_notes = db.Column(db.String(500), nullable=True)

    # Accounting sync bookkeeping (no automatic retry)
    synced_to_accounting = db.Column(db.Boolean, nullable=False, default=False)
    accounting_sync_failed = db.Column(db.Boolean, nullable=False, default=False)
    accounting_sync_error = db.Column(db.String(500), nullable=True)
    accounting_reference = db.Column(db.String(64), nullable=True)
    accounting_synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item", backref=db.backref("transactions", lazy=True))
    provider = db.relationship("Provider", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "item_id": self.item_id,
            "item_sku": self.item.sku if self.item else None,
            "item_title": self.item.title if self.item else None,
            "provider_id": self.provider_id,
            "provider_name": self.provider.display_name if self.provider else None,
            "sale_price_cents": self.sale_price_cents,
            "split_percentage": str(self.split_percentage),
            "provider_amount_cents": self.provider_amount_cents,
            "shop_amount_cents": self.shop_amount_cents,
            "sales_tax_cents": self.sales_tax_cents,
            "sale_date": to_utc_z(self.sale_date),
            "payment_method": self.payment_method,
            "source": self.source,
            "status": self.status,
            "order_id": self.order_id,
            "notes": self.notes,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "payout_id": self.payout_id,
            "provider_paid_out": self.provider_paid_out,
            "provider_paid_out_date": (
                to_utc_z(self.provider_paid_out_date) if self.provider_paid_out_date else None
            ),
            "payout_method": self.payout_method,
            "payout_notes": self.payout_notes,
            "synced_to_accounting": self.synced_to_accounting,
            "accounting_sync_failed": self.accounting_sync_failed,
            "accounting_sync_error": self.accounting_sync_error,
            "created_at": to_utc_z(self.created_at),
        }
