# Overview: Flask API routes for consignor self-service; parses input and returns JSON responses.

"""
Consignor Portal Routes

SECURITY: Every route requires a CONSIGNOR session (VIEW_OWN_CONSIGNMENTS)
linked to a provider. The provider id always comes from the session, never
from the request, so a consignor can only ever see their own records.
Statements opened here are marked VIEWED.
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_permission, require_provider_link
from ..models import Payout, Statement
from ..responses import api_ok, paged
from ..services import item_service, payout_service, provider_service, statement_service, transaction_service
from ..validation import NotFoundError, ValidationError
from .params import date_arg, json_body, page_args


portal_bp = Blueprint("portal", __name__, url_prefix="/api/portal")

PROFILE_FIELDS = {
    "phone", "address_line1", "address_line2", "city", "state", "postal_code",
    "payment_method", "payment_details",
}


@portal_bp.get("/dashboard")
@require_auth
@require_permission("VIEW_OWN_CONSIGNMENTS")
@require_provider_link
def dashboard_route():
    summary = provider_service.get_provider_summary(g.tenant, g.provider_id)
    recent, _ = transaction_service.list_transactions(
        g.tenant, provider_id=g.provider_id, status="COMPLETED", limit=10, offset=0,
    )
    summary["recent_sales"] = [t.to_dict() for t in recent]
    return api_ok(summary)


@portal_bp.patch("/profile")
@require_auth
@require_permission("VIEW_OWN_CONSIGNMENTS")
@require_provider_link
def update_profile_route():
    """Consignors may edit contact and payout details only; commission is set by the shop."""
    data = json_body()
    blocked = sorted(set(data) - PROFILE_FIELDS)
    if blocked:
        raise ValidationError(f"Field not allowed: {', '.join(blocked)}")
    provider = provider_service.update_provider(g.tenant, g.provider_id, data)
    return api_ok(provider.to_dict(), "Profile updated")


@portal_bp.get("/items")
@require_auth
@require_permission("VIEW_OWN_CONSIGNMENTS")
@require_provider_link
def my_items_route():
    limit, offset = page_args()
    rows, total = item_service.list_items(
        g.tenant,
        provider_id=g.provider_id,
        status=request.args.get("status"),
        search=request.args.get("search"),
        limit=limit,
        offset=offset,
    )
    return api_ok(paged([i.to_dict() for i in rows], total, limit, offset))


@portal_bp.get("/sales")
@require_auth
@require_permission("VIEW_OWN_CONSIGNMENTS")
@require_provider_link
def my_sales_route():
    limit, offset = page_args()
    rows, total = transaction_service.list_transactions(
        g.tenant,
        provider_id=g.provider_id,
        start_date=date_arg("start_date"),
        end_date=date_arg("end_date"),
        status="COMPLETED",
        limit=limit,
        offset=offset,
    )
    return api_ok(paged([t.to_dict() for t in rows], total, limit, offset))


@portal_bp.get("/payouts")
@require_auth
@require_permission("VIEW_OWN_CONSIGNMENTS")
@require_provider_link
def my_payouts_route():
    limit, offset = page_args()
    rows, total = payout_service.list_payouts(
        g.tenant, provider_id=g.provider_id, status=request.args.get("status"), limit=limit, offset=offset,
    )
    data = paged([p.to_dict() for p in rows], total, limit, offset)
    data["pending_balance_cents"] = payout_service.get_pending_amount(g.tenant, g.provider_id)
    return api_ok(data)


@portal_bp.get("/payouts/<int:payout_id>")
@require_auth
@require_permission("VIEW_OWN_CONSIGNMENTS")
@require_provider_link
def my_payout_route(payout_id: int):
    payout = g.tenant.get(Payout, payout_id, label="Payout")
    if payout.provider_id != g.provider_id:
        raise NotFoundError("Payout not found")
    return api_ok(payout.to_dict(include_transactions=True))


@portal_bp.get("/statements")
@require_auth
@require_permission("VIEW_OWN_CONSIGNMENTS")
@require_provider_link
def my_statements_route():
    limit, offset = page_args()
    rows, total = statement_service.list_statements(
        g.tenant, provider_id=g.provider_id, year=request.args.get("year", type=int), limit=limit, offset=offset,
    )
    return api_ok(paged([s.to_dict() for s in rows], total, limit, offset))


@portal_bp.get("/statements/<int:statement_id>")
@require_auth
@require_permission("VIEW_OWN_CONSIGNMENTS")
@require_provider_link
def my_statement_route(statement_id: int):
    statement = g.tenant.get(Statement, statement_id, label="Statement")
    if statement.provider_id != g.provider_id:
        raise NotFoundError("Statement not found")
    return api_ok(statement_service.mark_viewed(g.tenant, statement.id).to_dict())
