# Overview: Flask API routes for provider payouts; parses input and returns JSON responses.

"""
Payout Routes

Workflow:
1. GET  /api/payouts/pending             who is owed what
2. GET  /api/payouts/report              read-only preview for one provider and period
3. POST /api/payouts                     persist a PENDING batch
4. POST /api/payouts/<id>/mark-paid      settle exactly that batch
   POST /api/payouts/<id>/cancel         release the batch instead

SECURITY: VIEW_PAYOUTS to read, MANAGE_PAYOUTS to create, pay or cancel.
"""

from flask import Blueprint, Response, request, g

from ..decorators import require_auth, require_permission
from ..responses import api_ok, api_error, paged
from ..services import payout_service
from .params import body_date, date_arg, json_body, page_args


payouts_bp = Blueprint("payouts", __name__, url_prefix="/api/payouts")


@payouts_bp.get("")
@require_auth
@require_permission("VIEW_PAYOUTS")
def list_payouts_route():
    limit, offset = page_args()
    rows, total = payout_service.list_payouts(
        g.tenant,
        provider_id=request.args.get("provider_id", type=int),
        status=request.args.get("status"),
        limit=limit,
        offset=offset,
    )
    return api_ok(paged([p.to_dict() for p in rows], total, limit, offset))


@payouts_bp.get("/pending")
@require_auth
@require_permission("VIEW_PAYOUTS")
def pending_payouts_route():
    rows = payout_service.get_pending_payouts(g.tenant)
    return api_ok({
        "items": rows,
        "count": len(rows),
        "total_pending_cents": sum(r["pending_amount_cents"] for r in rows),
    })


@payouts_bp.get("/report")
@require_auth
@require_permission("VIEW_PAYOUTS")
def payout_report_route():
    """
    Query parameters:
    - provider_id: optional; all active providers with a balance when omitted
    - period_start / period_end: required, inclusive YYYY-MM-DD
    """
    period_start = date_arg("period_start", required=True)
    period_end = date_arg("period_end", required=True)
    provider_id = request.args.get("provider_id", type=int)

    if provider_id is not None:
        report = payout_service.generate_payout_report(g.tenant, provider_id, period_start, period_end)
        return api_ok(report.to_dict())

    reports = payout_service.generate_all_payout_reports(g.tenant, period_start, period_end)
    return api_ok({
        "items": [r.to_dict(include_transactions=False) for r in reports],
        "count": len(reports),
        "total_amount_cents": sum(r.total_amount_cents for r in reports),
    })


@payouts_bp.post("")
@require_auth
@require_permission("MANAGE_PAYOUTS")
def create_payout_route():
    """
    Request body:
    {"provider_id": 3, "period_start": "2026-09-01", "period_end": "2026-09-30", "notes": "..."}
    """
    data = json_body()
    provider_id = data.get("provider_id")
    if not isinstance(provider_id, int) or isinstance(provider_id, bool):
        return api_error("provider_id is required", 400)

    payout = payout_service.create_payout(
        g.tenant,
        provider_id,
        body_date(data, "period_start"),
        body_date(data, "period_end"),
        created_by_user_id=g.current_user.id,
        notes=data.get("notes"),
    )
    return api_ok(payout.to_dict(include_transactions=True), "Payout created", 201)


@payouts_bp.get("/<int:payout_id>")
@require_auth
@require_permission("VIEW_PAYOUTS")
def get_payout_route(payout_id: int):
    return api_ok(payout_service.get_payout(g.tenant, payout_id).to_dict(include_transactions=True))


@payouts_bp.post("/<int:payout_id>/mark-paid")
@require_auth
@require_permission("MANAGE_PAYOUTS")
def mark_paid_route(payout_id: int):
    """Request body: {"payment_method": "CHECK", "payment_reference": "#1042", "notes": "..."}"""
    data = json_body()
    payout = payout_service.mark_payout_paid(
        g.tenant,
        payout_id,
        payment_method=data.get("payment_method"),
        notes=data.get("notes"),
        payment_reference=data.get("payment_reference"),
        paid_by_user_id=g.current_user.id,
    )
    return api_ok(payout.to_dict(include_transactions=True), "Payout marked as paid")


@payouts_bp.post("/<int:payout_id>/cancel")
@require_auth
@require_permission("MANAGE_PAYOUTS")
def cancel_payout_route(payout_id: int):
    return api_ok(payout_service.cancel_payout(g.tenant, payout_id).to_dict(), "Payout cancelled")


@payouts_bp.get("/<int:payout_id>/export")
@require_auth
@require_permission("VIEW_PAYOUTS")
def export_payout_route(payout_id: int):
    payout = payout_service.get_payout(g.tenant, payout_id)
    body = payout_service.export_payout_csv(g.tenant, payout_id)
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={payout.payout_number}.csv"},
    )
