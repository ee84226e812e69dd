# Overview: Flask API routes for online orders (back office view); parses input and returns JSON responses.

"""
Order Routes (shop staff)

SECURITY: VIEW_ORDERS to read, MANAGE_ORDERS to advance, confirm or cancel.
Shoppers see their own orders through /api/shop/<slug>/orders instead.
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_permission
from ..responses import api_ok, api_error, paged
from ..services import order_service
from .params import date_arg, json_body, page_args


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
@require_permission("VIEW_ORDERS")
def list_orders_route():
    """
    Query parameters:
    - status, search (order number, email or name)
    - start_date / end_date: inclusive YYYY-MM-DD on created_at
    - limit / offset
    """
    limit, offset = page_args()
    rows, total = order_service.list_orders(
        g.tenant,
        status=request.args.get("status"),
        start_date=date_arg("start_date"),
        end_date=date_arg("end_date"),
        search=request.args.get("search"),
        limit=limit,
        offset=offset,
    )
    return api_ok(paged([o.to_dict() for o in rows], total, limit, offset))


@orders_bp.get("/<int:order_id>")
@require_auth
@require_permission("VIEW_ORDERS")
def get_order_route(order_id: int):
    return api_ok(order_service.get_order(g.tenant, order_id).to_dict())


@orders_bp.post("/<int:order_id>/status")
@require_auth
@require_permission("MANAGE_ORDERS")
def update_order_status_route(order_id: int):
    """Request body: {"status": "SHIPPED", "tracking_number": "1Z..."}"""
    data = json_body()
    if not data.get("status"):
        return api_error("status is required", 400)
    order = order_service.update_order_status(
        g.tenant, order_id, data["status"], tracking_number=data.get("tracking_number"),
    )
    return api_ok(order.to_dict(), "Order updated")


@orders_bp.post("/<int:order_id>/confirm-payment")
@require_auth
@require_permission("MANAGE_ORDERS")
def confirm_payment_route(order_id: int):
    order = order_service.confirm_payment(
        g.tenant, order_id, payment_intent_id=json_body().get("payment_intent_id"),
    )
    return api_ok(order.to_dict(), "Payment confirmed")


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_permission("MANAGE_ORDERS")
def cancel_order_route(order_id: int):
    """Pending orders only. Items go back on sale and the order's sales are voided."""
    order = order_service.cancel_order(
        g.tenant,
        order_id,
        reason=json_body().get("reason"),
        cancelled_by_user_id=g.current_user.id,
    )
    return api_ok(order.to_dict(), "Order cancelled")
