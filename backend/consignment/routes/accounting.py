# Overview: Flask API routes for explicit accounting sync; parses input and returns JSON responses.

"""
Accounting Sync Routes

Syncs are operator-triggered and never retried automatically. A failed
sync is recorded on the row (accounting_sync_failed + error text) and the
response still succeeds so the operator can inspect and retry.

SECURITY: SYNC_ACCOUNTING for everything here.
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_permission
from ..responses import api_ok
from ..services import accounting_service


accounting_bp = Blueprint("accounting", __name__, url_prefix="/api/accounting")


@accounting_bp.get("/status")
@require_auth
@require_permission("SYNC_ACCOUNTING")
def sync_status_route():
    return api_ok(accounting_service.get_sync_status(g.tenant))


@accounting_bp.post("/sync")
@require_auth
@require_permission("SYNC_ACCOUNTING")
def sync_pending_route():
    limit = min(max(request.args.get("limit", 200, type=int), 1), 500)
    return api_ok(accounting_service.sync_pending(g.tenant, limit=limit))


@accounting_bp.post("/transactions/<int:transaction_id>/sync")
@require_auth
@require_permission("SYNC_ACCOUNTING")
def sync_transaction_route(transaction_id: int):
    return api_ok(accounting_service.sync_transaction(g.tenant, transaction_id).to_dict())


@accounting_bp.post("/payouts/<int:payout_id>/sync")
@require_auth
@require_permission("SYNC_ACCOUNTING")
def sync_payout_route(payout_id: int):
    return api_ok(accounting_service.sync_payout(g.tenant, payout_id).to_dict())


@accounting_bp.post("/providers/<int:provider_id>/customer")
@require_auth
@require_permission("SYNC_ACCOUNTING")
def create_customer_route(provider_id: int):
    return api_ok(accounting_service.create_customer(g.tenant, provider_id).to_dict())
