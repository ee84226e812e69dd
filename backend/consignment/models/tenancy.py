from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from consignment.time_utils import to_utc_z


class Organization(db.Model):
    """
    Multi-tenant root: every consignment shop is an Organization.

    All providers, items, transactions, payouts, statements, carts and
    orders carry org_id. No data may cross organization boundaries.
    The slug is the public storefront key (/api/shop/<slug>/...).
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(64), nullable=False, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Shop-level configuration
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=850)  # Basis points (850 = 8.50%)
    shipping_flat_cents = db.Column(db.Integer, nullable=False, default=1000)
    default_split_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("50.00"))
    storefront_enabled = db.Column(db.Boolean, nullable=False, default=True)

    contact_email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Organization id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "tax_rate_bps": self.tax_rate_bps,
            "shipping_flat_cents": self.shipping_flat_cents,
            "default_split_percentage": str(self.default_split_percentage),
            "storefront_enabled": self.storefront_enabled,
            "contact_email": self.contact_email,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_public_dict(self) -> dict:
        return {
            "name": self.name,
            "slug": self.slug,
            "contact_email": self.contact_email,
            "phone": self.phone,
            "tax_rate_bps": self.tax_rate_bps,
            "shipping_flat_cents": self.shipping_flat_cents,
        }
