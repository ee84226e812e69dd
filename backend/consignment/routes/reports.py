from flask import Blueprint, Response, request, g

from ..decorators import require_auth, require_permission
from ..responses import api_ok
from ..services import reporting_service
from ..time_utils import utcnow
from .params import date_arg


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_auth
@require_permission("VIEW_REPORTS")
def sales_report():
    report = reporting_service.sales_report(
        g.tenant,
        start_date=date_arg("start_date"),
        end_date=date_arg("end_date"),
        group_by=request.args.get("group_by", "day"),
        provider_id=request.args.get("provider_id", type=int),
    )
    return api_ok(report)


@reports_bp.get("/categories")
@require_auth
@require_permission("VIEW_REPORTS")
def category_trends_report():
    return api_ok(reporting_service.sales_trends_by_category(
        g.tenant,
        start_date=date_arg("start_date"),
        end_date=date_arg("end_date"),
    ))


@reports_bp.get("/inventory-aging")
@require_auth
@require_permission("VIEW_REPORTS")
def inventory_aging_report():
    return api_ok(reporting_service.inventory_aging(g.tenant, as_of=date_arg("as_of")))


@reports_bp.get("/reconciliation")
@require_auth
@require_permission("VIEW_REPORTS")
def daily_reconciliation_report():
    return api_ok(reporting_service.daily_reconciliation(
        g.tenant,
        day=date_arg("date") or utcnow().date(),
        opening_cash_cents=request.args.get("opening_cash_cents", 0, type=int),
        actual_cash_cents=request.args.get("actual_cash_cents", type=int),
    ))


@reports_bp.get("/payouts")
@require_auth
@require_permission("VIEW_REPORTS")
def payout_summary_report():
    return api_ok(reporting_service.payout_summary(
        g.tenant,
        start_date=date_arg("start_date"),
        end_date=date_arg("end_date"),
    ))


@reports_bp.get("/providers")
@require_auth
@require_permission("VIEW_REPORTS")
def provider_performance_report():
    return api_ok(reporting_service.provider_performance(
        g.tenant,
        start_date=date_arg("start_date"),
        end_date=date_arg("end_date"),
        limit=min(max(request.args.get("limit", 50, type=int), 1), 500),
    ))


@reports_bp.get("/transactions.csv")
@require_auth
@require_permission("VIEW_REPORTS")
def transactions_csv_export():
    body = reporting_service.export_transactions_csv(
        g.tenant,
        start_date=date_arg("start_date"),
        end_date=date_arg("end_date"),
        provider_id=request.args.get("provider_id", type=int),
    )
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=transactions.csv"},
    )
