# Overview: Flask API routes for the tenant security audit trail.

from flask import Blueprint, request, g

from ..decorators import require_auth, require_permission
from ..responses import api_ok
from ..services import permission_service


security_bp = Blueprint("security", __name__, url_prefix="/api/security")


@security_bp.get("/events")
@require_auth
@require_permission("VIEW_SECURITY_EVENTS")
def list_security_events_route():
    """Most recent first. Query parameters: event_type, limit (max 500)."""
    limit = min(max(request.args.get("limit", 100, type=int), 1), 500)
    events = permission_service.list_security_events(
        g.org_id, event_type=request.args.get("event_type"), limit=limit,
    )
    return api_ok({"items": [e.to_dict() for e in events], "count": len(events)})
