# Overview: Flask API routes for provider (consignor) operations; parses input and returns JSON responses.

"""
Provider Routes

SECURITY: All routes require authentication.
- View operations require VIEW_PROVIDERS permission
- Create/update/status changes/portal access/invitations require MANAGE_PROVIDERS

Providers are scoped to organizations (multi-tenant) through g.tenant.
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_permission
from ..responses import api_ok, api_error, paged
from ..models import Provider
from ..services import invitation_service, item_service, provider_service
from .params import json_body, page_args


providers_bp = Blueprint("providers", __name__, url_prefix="/api/providers")


@providers_bp.get("")
@require_auth
@require_permission("VIEW_PROVIDERS")
def list_providers_route():
    """
    Query parameters:
    - status: ACTIVE | DEACTIVATED | PENDING | REJECTED
    - search: name, email or provider number
    - limit / offset
    """
    limit, offset = page_args()
    rows, total = provider_service.list_providers(
        g.tenant,
        status=request.args.get("status"),
        search=request.args.get("search"),
        limit=limit,
        offset=offset,
    )
    return api_ok(paged([p.to_dict() for p in rows], total, limit, offset))


@providers_bp.post("")
@require_auth
@require_permission("MANAGE_PROVIDERS")
def create_provider_route():
    """
    Request body:
    {
        "display_name": "Jane Doe",     // required
        "email": "jane@example.com",    // required, unique within the shop
        "commission_rate": "60.00",     // optional, defaults to the shop default split
        "payment_method": "CHECK",      // optional
        "phone", "address_line1", "address_line2", "city", "state", "postal_code",
        "payment_details", "notes"      // optional
    }
    """
    provider = provider_service.create_provider(g.tenant, json_body())
    return api_ok(provider.to_dict(), "Provider created", 201)


@providers_bp.get("/<int:provider_id>")
@require_auth
@require_permission("VIEW_PROVIDERS")
def get_provider_route(provider_id: int):
    """Provider with pending balance, lifetime earnings and inventory counts."""
    return api_ok(provider_service.get_provider_summary(g.tenant, provider_id))


@providers_bp.patch("/<int:provider_id>")
@require_auth
@require_permission("MANAGE_PROVIDERS")
def update_provider_route(provider_id: int):
    provider = provider_service.update_provider(g.tenant, provider_id, json_body())
    return api_ok(provider.to_dict(), "Provider updated")


@providers_bp.post("/<int:provider_id>/deactivate")
@require_auth
@require_permission("MANAGE_PROVIDERS")
def deactivate_provider_route(provider_id: int):
    return api_ok(provider_service.deactivate_provider(g.tenant, provider_id).to_dict(), "Provider deactivated")


@providers_bp.post("/<int:provider_id>/reactivate")
@require_auth
@require_permission("MANAGE_PROVIDERS")
def reactivate_provider_route(provider_id: int):
    return api_ok(provider_service.reactivate_provider(g.tenant, provider_id).to_dict(), "Provider reactivated")


@providers_bp.post("/<int:provider_id>/approve")
@require_auth
@require_permission("MANAGE_PROVIDERS")
def approve_provider_route(provider_id: int):
    return api_ok(provider_service.approve_provider(g.tenant, provider_id).to_dict(), "Provider approved")


@providers_bp.post("/<int:provider_id>/reject")
@require_auth
@require_permission("MANAGE_PROVIDERS")
def reject_provider_route(provider_id: int):
    return api_ok(provider_service.reject_provider(g.tenant, provider_id).to_dict(), "Provider rejected")


@providers_bp.post("/<int:provider_id>/portal-access")
@require_auth
@require_permission("MANAGE_PROVIDERS")
def grant_portal_access_route(provider_id: int):
    """Create the consignor portal login. Request body: {"password": "..."}"""
    password = json_body().get("password")
    if not password:
        return api_error("password is required", 400)
    user = provider_service.grant_portal_access(g.tenant, provider_id, password)
    return api_ok(user.to_dict(), "Portal access granted", 201)


@providers_bp.get("/<int:provider_id>/items")
@require_auth
@require_permission("VIEW_ITEMS")
def list_provider_items_route(provider_id: int):
    limit, offset = page_args()
    g.tenant.get(Provider, provider_id, label="Provider")
    rows, total = item_service.list_items(
        g.tenant,
        provider_id=provider_id,
        status=request.args.get("status"),
        limit=limit,
        offset=offset,
    )
    return api_ok(paged([i.to_dict(include_photos=False) for i in rows], total, limit, offset))



# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

def _invitation_payload(invitation, token: str) -> dict:
    data = invitation.to_dict()
    data["invite_link"] = invitation_service.invitation_link(invitation, token)
    return data


@providers_bp.post("/invitations")
@require_auth
@require_permission("MANAGE_PROVIDERS")
def create_invitation_route():
    """
    Email a consignor a sign-up link.

    Request body:
    {
        "email": "jane@example.com",   // required
        "name": "Jane Doe",            // required
        "commission_rate": "60.00"     // optional, defaults to the shop default split
    }
    """
    data = json_body()
    invitation, token = invitation_service.create_invitation(
        g.tenant,
        email=data.get("email"),
        name=data.get("name"),
        commission_rate=data.get("commission_rate"),
        invited_by_user_id=g.current_user.id,
    )
    return api_ok(_invitation_payload(invitation, token), "Invitation sent", 201)


@providers_bp.get("/invitations")
@require_auth
@require_permission("VIEW_PROVIDERS")
def list_invitations_route():
    """
    Query parameters:
    - status: PENDING (default) | ACCEPTED | CANCELLED | ALL
    - limit / offset
    """
    limit, offset = page_args()
    status = request.args.get("status", "PENDING")
    rows, total = invitation_service.list_invitations(
        g.tenant,
        status=None if status.upper() == "ALL" else status,
        limit=limit,
        offset=offset,
    )
    return api_ok(paged([i.to_dict() for i in rows], total, limit, offset))


@providers_bp.post("/invitations/<int:invitation_id>/cancel")
@require_auth
@require_permission("MANAGE_PROVIDERS")
def cancel_invitation_route(invitation_id: int):
    invitation = invitation_service.cancel_invitation(g.tenant, invitation_id)
    return api_ok(invitation.to_dict(), "Invitation cancelled")


@providers_bp.post("/invitations/<int:invitation_id>/resend")
@require_auth
@require_permission("MANAGE_PROVIDERS")
def resend_invitation_route(invitation_id: int):
    """Issues a new link; the previous one stops working."""
    invitation, token = invitation_service.resend_invitation(g.tenant, invitation_id)
    return api_ok(_invitation_payload(invitation, token), "Invitation resent")
