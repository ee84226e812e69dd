# Overview: Flask API routes for consignor statements; parses input and returns JSON responses.

"""
Statement Routes

SECURITY: VIEW_STATEMENTS to read, GENERATE_STATEMENTS to create or
regenerate. Monthly runs for every shop are normally driven by the
scheduler (flask statements run-monthly); POST /generate runs the same
job for the caller's shop only.
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_permission
from ..responses import api_ok, api_error, paged
from ..services import statement_service
from .params import body_date, json_body, page_args


statements_bp = Blueprint("statements", __name__, url_prefix="/api/statements")


@statements_bp.get("")
@require_auth
@require_permission("VIEW_STATEMENTS")
def list_statements_route():
    limit, offset = page_args()
    rows, total = statement_service.list_statements(
        g.tenant,
        provider_id=request.args.get("provider_id", type=int),
        year=request.args.get("year", type=int),
        limit=limit,
        offset=offset,
    )
    return api_ok(paged([s.to_dict() for s in rows], total, limit, offset))


@statements_bp.post("")
@require_auth
@require_permission("GENERATE_STATEMENTS")
def generate_statement_route():
    """
    Request body: {"provider_id": 3, "period_start": "2026-09-01", "period_end": "2026-09-30"}

    Returns the existing statement when one already covers that period.
    """
    data = json_body()
    provider_id = data.get("provider_id")
    if not isinstance(provider_id, int) or isinstance(provider_id, bool):
        return api_error("provider_id is required", 400)

    statement = statement_service.generate_statement(
        g.tenant,
        provider_id,
        body_date(data, "period_start"),
        body_date(data, "period_end"),
    )
    return api_ok(statement.to_dict(), "Statement ready", 201)


@statements_bp.post("/generate")
@require_auth
@require_permission("GENERATE_STATEMENTS")
def generate_month_route():
    """Request body: {"year": 2026, "month": 9}"""
    data = json_body()
    year, month = data.get("year"), data.get("month")
    if not isinstance(year, int) or not isinstance(month, int):
        return api_error("year and month are required integers", 400)
    result = statement_service.generate_statements_for_month(year, month, org_id=g.org_id)
    return api_ok(result.to_dict(), "Statements generated")


@statements_bp.get("/<int:statement_id>")
@require_auth
@require_permission("VIEW_STATEMENTS")
def get_statement_route(statement_id: int):
    return api_ok(statement_service.get_statement(g.tenant, statement_id).to_dict())


@statements_bp.post("/<int:statement_id>/regenerate")
@require_auth
@require_permission("GENERATE_STATEMENTS")
def regenerate_statement_route(statement_id: int):
    statement = statement_service.regenerate_statement(g.tenant, statement_id)
    return api_ok(statement.to_dict(), "Statement regenerated")
