from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from consignment.time_utils import to_utc_z, utcnow


PROVIDER_ACTIVE = "ACTIVE"
PROVIDER_DEACTIVATED = "DEACTIVATED"
PROVIDER_PENDING = "PENDING"
PROVIDER_REJECTED = "REJECTED"

PROVIDER_STATUSES = {PROVIDER_ACTIVE, PROVIDER_DEACTIVATED, PROVIDER_PENDING, PROVIDER_REJECTED}

PAYOUT_METHODS = {"CASH", "CHECK", "VENMO", "PAYPAL", "ZELLE", "BANK_TRANSFER", "OTHER"}


class Provider(db.Model):
    """
    Consignor: supplies goods and earns a split of each sale.

    commission_rate is the percentage of the sale paid to the provider
    (60.00 = provider keeps 60%). Providers are never hard-deleted; they
    move to DEACTIVATED so historic transactions keep their owner.
    """
    __tablename__ = "providers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "provider_number", name="uq_providers_org_number"),
        db.UniqueConstraint("org_id", "email", name="uq_providers_org_email"),
        db.Index("ix_providers_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    # Human-readable number (e.g., "PRV-00012"), unique per organization
    provider_number = db.Column(db.String(32), nullable=False)

    display_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    address_line1 = db.Column(db.String(255), nullable=True)
    address_line2 = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(64), nullable=True)
    postal_code = db.Column(db.String(20), nullable=True)

    commission_rate = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("50.00"))

    # Payout preference (CASH, CHECK, VENMO, PAYPAL, ZELLE, BANK_TRANSFER, OTHER)
    payment_method = db.Column(db.String(32), nullable=True)
    payment_details = db.Column(db.String(500), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=PROVIDER_ACTIVE, index=True)
    notes = db.Column(db.Text, nullable=True)

    # Accounting integration customer reference
    accounting_customer_id = db.Column(db.String(64), nullable=True)

    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("providers", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == PROVIDER_ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "provider_number": self.provider_number,
            "display_name": self.display_name,
            "email": self.email,
            "phone": self.phone,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "commission_rate": str(self.commission_rate),
            "payment_method": self.payment_method,
            "payment_details": self.payment_details,
            "status": self.status,
            "notes": self.notes,
            "accounting_customer_id": self.accounting_customer_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "deactivated_at": to_utc_z(self.deactivated_at) if self.deactivated_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


INVITATION_PENDING = "PENDING"
INVITATION_ACCEPTED = "ACCEPTED"
INVITATION_CANCELLED = "CANCELLED"

INVITATION_STATUSES = {INVITATION_PENDING, INVITATION_ACCEPTED, INVITATION_CANCELLED}


class ProviderInvitation(db.Model):
    """
    Staff invitation for a consignor to sign up with a shop.

    The emailed token is stored only as its SHA-256 hash. A PENDING
    invitation past expires_at can no longer be accepted; it reports as
    EXPIRED but keeps its stored status so it can still be resent.
    """
    __tablename__ = "provider_invitations"
    __table_args__ = (
        db.Index("ix_provider_invitations_org_status", "org_id", "status"),
        db.Index("ix_provider_invitations_org_email", "org_id", "email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    invited_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    commission_rate = db.Column(db.Numeric(5, 2), nullable=True)  # None = shop default

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)
    status = db.Column(db.String(16), nullable=False, default=INVITATION_PENDING)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    sent_count = db.Column(db.Integer, nullable=False, default=1)

    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization")
    invited_by = db.relationship("User", foreign_keys=[invited_by_user_id])
    provider = db.relationship("Provider")

    def is_expired(self, now) -> bool:
        return self.status == INVITATION_PENDING and self.expires_at <= now

    def display_status(self, now) -> str:
        return "EXPIRED" if self.is_expired(now) else self.status

    def to_dict(self, now=None) -> dict:
        now = now or utcnow()
        return {
            "id": self.id,
            "org_id": self.org_id,
            "email": self.email,
            "name": self.name,
            "commission_rate": str(self.commission_rate) if self.commission_rate is not None else None,
            "status": self.display_status(now),
            "expires_at": to_utc_z(self.expires_at),
            "sent_count": self.sent_count,
            "invited_by_email": self.invited_by.email if self.invited_by else None,
            "provider_id": self.provider_id,
            "accepted_at": to_utc_z(self.accepted_at) if self.accepted_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "created_at": to_utc_z(self.created_at),
        }

    def to_public_dict(self, now=None) -> dict:
        """What the invitee sees before signing up."""
        now = now or utcnow()
        return {
            "name": self.name,
            "email": self.email,
            "shop_name": self.organization.name,
            "shop_slug": self.organization.slug,
            "status": self.display_status(now),
            "expires_at": to_utc_z(self.expires_at),
        }
