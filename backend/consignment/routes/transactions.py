# Overview: Flask API routes for point-of-sale transactions; parses input and returns JSON responses.

"""
Transaction Routes

SECURITY:
- VIEW_TRANSACTIONS to list, read and see metrics
- RECORD_SALE to ring up a sale and edit payment method / notes
- VOID_TRANSACTION to void an unsettled sale
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_permission
from ..responses import api_ok, api_error, paged
from ..services import transaction_service
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError
from .params import bool_arg, date_arg, json_body, page_args


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
@require_auth
@require_permission("VIEW_TRANSACTIONS")
def list_transactions_route():
    """
    Query parameters:
    - start_date / end_date: inclusive YYYY-MM-DD
    - provider_id, payment_method, status, source
    - paid_out: true | false
    - limit / offset
    """
    limit, offset = page_args()
    rows, total = transaction_service.list_transactions(
        g.tenant,
        start_date=date_arg("start_date"),
        end_date=date_arg("end_date"),
        provider_id=request.args.get("provider_id", type=int),
        payment_method=request.args.get("payment_method"),
        paid_out=bool_arg("paid_out"),
        status=request.args.get("status"),
        source=request.args.get("source"),
        limit=limit,
        offset=offset,
    )
    return api_ok(paged([t.to_dict() for t in rows], total, limit, offset))


@transactions_bp.post("")
@require_auth
@require_permission("RECORD_SALE")
def record_sale_route():
    """
    Request body:
    {
        "item_id": 42,                 // required
        "sale_price_cents": 4500,      // optional, defaults to the tag price
        "payment_method": "CARD",      // optional, CASH by default
        "sales_tax_cents": 383,        // optional
        "sale_date": "2026-10-01T15:04:00Z",  // optional, now by default
        "notes": "..."
    }

    409 when the item was sold, removed or reserved by someone else first.
    """
    data = json_body()
    item_id = data.get("item_id")
    if not isinstance(item_id, int) or isinstance(item_id, bool):
        return api_error("item_id is required", 400)

    sale_date = None
    if data.get("sale_date"):
        try:
            sale_date = parse_iso_datetime(str(data["sale_date"]))
        except ValueError:
            raise ValidationError("sale_date must be an ISO-8601 datetime")

    transaction = transaction_service.record_sale(
        g.tenant,
        item_id=item_id,
        sale_price_cents=data.get("sale_price_cents"),
        payment_method=data.get("payment_method"),
        sale_date=sale_date,
        sales_tax_cents=data.get("sales_tax_cents", 0),
        notes=data.get("notes"),
        created_by_user_id=g.current_user.id,
    )
    return api_ok(transaction.to_dict(), "Sale recorded", 201)


@transactions_bp.get("/metrics")
@require_auth
@require_permission("VIEW_TRANSACTIONS")
def sales_metrics_route():
    return api_ok(transaction_service.get_sales_metrics(
        g.tenant,
        start_date=date_arg("start_date"),
        end_date=date_arg("end_date"),
        provider_id=request.args.get("provider_id", type=int),
    ))


@transactions_bp.get("/<int:transaction_id>")
@require_auth
@require_permission("VIEW_TRANSACTIONS")
def get_transaction_route(transaction_id: int):
    return api_ok(transaction_service.get_transaction(g.tenant, transaction_id).to_dict())


@transactions_bp.patch("/<int:transaction_id>")
@require_auth
@require_permission("RECORD_SALE")
def update_transaction_route(transaction_id: int):
    """Only payment_method and notes can change."""
    transaction = transaction_service.update_transaction(g.tenant, transaction_id, json_body())
    return api_ok(transaction.to_dict(), "Transaction updated")


@transactions_bp.post("/<int:transaction_id>/void")
@require_auth
@require_permission("VOID_TRANSACTION")
def void_transaction_route(transaction_id: int):
    """Request body: {"reason": "..."}. The item goes back to AVAILABLE."""
    transaction = transaction_service.void_transaction(
        g.tenant,
        transaction_id,
        reason=json_body().get("reason"),
        voided_by_user_id=g.current_user.id,
    )
    return api_ok(transaction.to_dict(), "Transaction voided")
