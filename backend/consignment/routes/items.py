# Overview: Flask API routes for consigned item operations; parses input and returns JSON responses.

"""
Item Routes

SECURITY: VIEW_ITEMS to read, MANAGE_ITEMS to intake, edit, remove,
restore and manage photos. All lookups go through g.tenant.

Photos are uploaded as multipart/form-data with a "photo" file field.
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_permission
from ..responses import api_ok, api_error, paged
from ..services import item_service, photo_service
from .params import bool_arg, json_body, page_args


items_bp = Blueprint("items", __name__, url_prefix="/api/items")


@items_bp.get("")
@require_auth
@require_permission("VIEW_ITEMS")
def list_items_route():
    """
    Query parameters:
    - status: AVAILABLE | SOLD | REMOVED
    - provider_id, category, search
    - min_price_cents, max_price_cents
    - limit / offset
    """
    limit, offset = page_args()
    rows, total = item_service.list_items(
        g.tenant,
        status=request.args.get("status"),
        provider_id=request.args.get("provider_id", type=int),
        category=request.args.get("category"),
        search=request.args.get("search"),
        min_price_cents=request.args.get("min_price_cents", type=int),
        max_price_cents=request.args.get("max_price_cents", type=int),
        limit=limit,
        offset=offset,
    )
    return api_ok(paged([i.to_dict(include_photos=False) for i in rows], total, limit, offset))


@items_bp.get("/categories")
@require_auth
@require_permission("VIEW_ITEMS")
def list_categories_route():
    available_only = bool_arg("available_only") or False
    return api_ok(item_service.list_categories(g.tenant, available_only=available_only))


@items_bp.post("")
@require_auth
@require_permission("MANAGE_ITEMS")
def create_item_route():
    """
    Request body:
    {
        "provider_id": 12,              // required, provider must be ACTIVE
        "title": "Wool coat",           // required
        "price_cents": 8900,            // required, >= 0
        "sku": "PRV-00012-0001",        // optional, generated when omitted
        "override_split_percentage": "70.00",  // optional
        "description", "category", "brand", "size", "color", "condition", "notes"
    }
    """
    item = item_service.create_item(g.tenant, json_body())
    return api_ok(item.to_dict(), "Item created", 201)


@items_bp.get("/<int:item_id>")
@require_auth
@require_permission("VIEW_ITEMS")
def get_item_route(item_id: int):
    return api_ok(item_service.get_item(g.tenant, item_id).to_dict())


@items_bp.patch("/<int:item_id>")
@require_auth
@require_permission("MANAGE_ITEMS")
def update_item_route(item_id: int):
    item = item_service.update_item(g.tenant, item_id, json_body())
    return api_ok(item.to_dict(), "Item updated")


@items_bp.post("/<int:item_id>/remove")
@require_auth
@require_permission("MANAGE_ITEMS")
def remove_item_route(item_id: int):
    """AVAILABLE -> REMOVED. Request body: {"reason": "Returned to provider"}"""
    item = item_service.remove_item(g.tenant, item_id, reason=json_body().get("reason"))
    return api_ok(item.to_dict(), "Item removed")


@items_bp.post("/<int:item_id>/restore")
@require_auth
@require_permission("MANAGE_ITEMS")
def restore_item_route(item_id: int):
    """REMOVED -> AVAILABLE."""
    return api_ok(item_service.restore_item(g.tenant, item_id).to_dict(), "Item restored")


@items_bp.post("/<int:item_id>/photos")
@require_auth
@require_permission("MANAGE_ITEMS")
def upload_photo_route(item_id: int):
    upload = request.files.get("photo")
    if upload is None or not upload.filename:
        return api_error("photo file is required", 400)
    photo = photo_service.add_item_photo(
        g.tenant,
        item_id,
        upload.stream,
        upload.filename,
        content_type=upload.mimetype,
    )
    return api_ok(photo.to_dict(), "Photo uploaded", 201)


@items_bp.delete("/<int:item_id>/photos/<int:photo_id>")
@require_auth
@require_permission("MANAGE_ITEMS")
def delete_photo_route(item_id: int, photo_id: int):
    photo_service.delete_item_photo(g.tenant, item_id, photo_id)
    return api_ok(None, "Photo deleted")
