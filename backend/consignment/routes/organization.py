# Overview: Flask API routes for shop settings.

from flask import Blueprint, g

from ..decorators import require_auth, require_permission
from ..responses import api_ok
from ..services import organization_service
from .params import json_body


organization_bp = Blueprint("organization", __name__, url_prefix="/api/organization")


@organization_bp.get("")
@require_auth
def get_organization_route():
    """Any signed-in user may read their own shop settings."""
    return api_ok(g.tenant.organization().to_dict())


@organization_bp.patch("")
@require_auth
@require_permission("MANAGE_ORGANIZATION")
def update_organization_route():
    """
    Request body (all optional):
        name, tax_rate_bps, shipping_flat_cents, default_split_percentage,
        storefront_enabled, contact_email, phone
    """
    org = organization_service.update_settings(g.tenant, json_body())
    return api_ok(org.to_dict(), "Settings updated")
