# Overview: Flask API routes for the signed-in user's notifications.

from flask import Blueprint, g

from ..decorators import require_auth
from ..responses import api_ok, paged
from ..services import notification_service
from .params import bool_arg, page_args


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    limit, offset = page_args(default_limit=50)
    rows, total = notification_service.list_notifications(
        g.current_user,
        unread_only=bool_arg("unread_only") or False,
        limit=limit,
        offset=offset,
    )
    data = paged([n.to_dict() for n in rows], total, limit, offset)
    data["unread_count"] = notification_service.unread_count(g.current_user)
    return api_ok(data)


@notifications_bp.get("/unread-count")
@require_auth
def unread_count_route():
    return api_ok({"unread_count": notification_service.unread_count(g.current_user)})


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    return api_ok(notification_service.mark_read(g.current_user, notification_id).to_dict())


@notifications_bp.post("/read-all")
@require_auth
def mark_all_read_route():
    return api_ok({"updated": notification_service.mark_all_read(g.current_user)})
