from __future__ import annotations

from ..extensions import db
from consignment.time_utils import to_utc_z, to_iso_date


STATEMENT_GENERATED = "GENERATED"
STATEMENT_VIEWED = "VIEWED"


class Statement(db.Model):
    """
    Monthly financial summary for one provider.

    closing_balance = opening_balance + total_earnings - total_payouts.
    opening_balance of a period equals the closing balance of the period
    before it. Rows are not mutated after generation except for viewed
    tracking (and explicit regeneration).
    """
    __tablename__ = "statements"
    __table_args__ = (
        db.UniqueConstraint(
            "org_id", "provider_id", "period_start", "period_end",
            name="uq_statements_provider_period",
        ),
        db.UniqueConstraint("org_id", "statement_number", name="uq_statements_org_number"),
        db.Index("ix_statements_org_provider_end", "org_id", "provider_id", "period_end"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False)

    # STMT-YYYY-MM-PRV00012
    statement_number = db.Column(db.String(64), nullable=False)

    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)

    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_earnings_cents = db.Column(db.Integer, nullable=False, default=0)
    total_payouts_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    items_sold = db.Column(db.Integer, nullable=False, default=0)
    payout_count = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=STATEMENT_GENERATED)
    generated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    viewed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    provider = db.relationship("Provider", backref=db.backref("statements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "provider_id": self.provider_id,
            "provider_name": self.provider.display_name if self.provider else None,
            "statement_number": self.statement_number,
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
            "opening_balance_cents": self.opening_balance_cents,
            "total_sales_cents": self.total_sales_cents,
            "total_earnings_cents": self.total_earnings_cents,
            "total_payouts_cents": self.total_payouts_cents,
            "closing_balance_cents": self.closing_balance_cents,
            "items_sold": self.items_sold,
            "payout_count": self.payout_count,
            "status": self.status,
            "generated_at": to_utc_z(self.generated_at),
            "viewed_at": to_utc_z(self.viewed_at) if self.viewed_at else None,
        }
