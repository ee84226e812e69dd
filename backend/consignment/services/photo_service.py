# Overview: Service-layer operations for item photos.

import os

from flask import current_app
from werkzeug.utils import secure_filename

from ..extensions import db
from ..models import Item, ItemPhoto
from ..models.inventory import ITEM_SOLD
from ..validation import ConflictError, NotFoundError, ValidationError
from .photo_storage import get_photo_storage
from .tenant_service import TenantScope


ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
MAX_PHOTOS_PER_ITEM = 10


def add_item_photo(
    scope: TenantScope,
    item_id: int,
    stream,
    filename: str,
    content_type: str | None = None,
) -> ItemPhoto:
    item = scope.get(Item, item_id, label="Item")
    if item.status == ITEM_SOLD:
        raise ConflictError("Cannot add photos to a sold item")

    safe_name = secure_filename(filename or "")
    if not safe_name or os.path.splitext(safe_name)[1].lower() not in ALLOWED_EXTENSIONS:
        raise ValidationError("Photo must be a .jpg, .jpeg, .png, .gif or .webp file")
    if len(item.photos) >= MAX_PHOTOS_PER_ITEM:
        raise ConflictError(f"An item can have at most {MAX_PHOTOS_PER_ITEM} photos")

    storage = get_photo_storage()
    url, key = storage.store(stream, org_id=scope.org_id, item_id=item.id, filename=safe_name)

    photo = ItemPhoto(
        item_id=item.id,
        url=url,
        storage_key=key,
        filename=safe_name,
        content_type=content_type,
        display_order=len(item.photos),
    )
    scope.add(photo)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        storage.delete(key)
        raise
    return photo


def delete_item_photo(scope: TenantScope, item_id: int, photo_id: int) -> None:
    item = scope.get(Item, item_id, label="Item")
    photo = scope.query(ItemPhoto, ItemPhoto.id == photo_id, ItemPhoto.item_id == item.id).first()
    if not photo:
        raise NotFoundError("Photo not found")

    key = photo.storage_key
    db.session.delete(photo)
    db.session.commit()

    get_photo_storage().delete(key)
    current_app.logger.info("Deleted photo %s of item %s", photo_id, item.sku)
