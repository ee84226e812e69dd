from __future__ import annotations

from ..extensions import db
from consignment.time_utils import to_utc_z


ITEM_AVAILABLE = "AVAILABLE"
ITEM_SOLD = "SOLD"
ITEM_REMOVED = "REMOVED"

ITEM_CONDITIONS = {"NEW", "LIKE_NEW", "GOOD", "FAIR", "POOR"}


class Item(db.Model):
    """
    A single consigned good.

    Lifecycle: AVAILABLE -> SOLD (sale or checkout) or AVAILABLE -> REMOVED.
    Status changes go through conditional updates in the services so two
    writers can never both move the same item out of AVAILABLE.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_items_org_sku"),
        db.Index("ix_items_org_status", "org_id", "status"),
        db.Index("ix_items_org_provider", "org_id", "provider_id"),
        db.Index("ix_items_org_category", "org_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False)

    sku = db.Column(db.String(64), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True)
    brand = db.Column(db.String(100), nullable=True)
    size = db.Column(db.String(32), nullable=True)
    color = db.Column(db.String(32), nullable=True)
    condition = db.Column(db.String(16), nullable=True)

    price_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ITEM_AVAILABLE)

    # Per-item split override; falls back to provider.commission_rate
    override_split_percentage = db.Column(db.Numeric(5, 2), nullable=True)

    listed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    sold_at = db.Column(db.DateTime(timezone=True), nullable=True)
    removed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    removed_reason = db.Column(db.String(255), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    provider = db.relationship("Provider", backref=db.backref("items", lazy=True))
    photos = db.relationship(
        "ItemPhoto",
        backref="item",
        lazy=True,
        order_by="ItemPhoto.display_order",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_photos: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "provider_id": self.provider_id,
            "sku": self.sku,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "brand": self.brand,
            "size": self.size,
            "color": self.color,
            "condition": self.condition,
            "price_cents": self.price_cents,
            "status": self.status,
            "override_split_percentage": (
                str(self.override_split_percentage) if self.override_split_percentage is not None else None
            ),
            "listed_at": to_utc_z(self.listed_at),
            "sold_at": to_utc_z(self.sold_at) if self.sold_at else None,
            "removed_at": to_utc_z(self.removed_at) if self.removed_at else None,
            "removed_reason": self.removed_reason,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_photos:
            data["photos"] = [p.to_dict() for p in self.photos]
        return data

    def to_public_dict(self) -> dict:
        """Storefront view: no provider, split or internal notes."""
        return {
            "id": self.id,
            "sku": self.sku,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "brand": self.brand,
            "size": self.size,
            "color": self.color,
            "condition": self.condition,
            "price_cents": self.price_cents,
            "status": self.status,
            "photos": [p.url for p in self.photos],
        }


class ItemPhoto(db.Model):
    """Photo stored through the photo storage adapter."""
    __tablename__ = "item_photos"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    url = db.Column(db.String(1024), nullable=False)
    storage_key = db.Column(db.String(512), nullable=False)
    filename = db.Column(db.String(255), nullable=True)
    content_type = db.Column(db.String(100), nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "url": self.url,
            "filename": self.filename,
            "content_type": self.content_type,
            "display_order": self.display_order,
            "created_at": to_utc_z(self.created_at),
        }
