"""
Multi-Tenant Service: Tenant-Scoped Data Access

WHY: Every request is scoped to one organization and cross-tenant access
must be explicitly denied. Instead of re-applying "WHERE org_id = X" in
every query, services go through a TenantScope built once per request from
the validated session (g.tenant). The org filter cannot be forgotten
because the scope is the only way services obtain tenant-owned rows.

SECURITY INVARIANTS:
1. Every authenticated request has g.org_id and g.tenant set
2. IDs from client input are resolved through TenantScope.get
3. Rows belonging to another organization look exactly like missing rows
4. Cross-tenant access attempts are logged as security events

USAGE:
    from consignment.services.tenant_service import current_scope

    scope = current_scope()
    provider = scope.get(Provider, provider_id)
    items = scope.query(Item).filter(Item.status == "AVAILABLE").all()
"""

from flask import g, has_request_context, request

from ..extensions import db
from ..models import Organization
from ..validation import NotFoundError
from .concurrency import lock_for_update
from .permission_service import log_security_event


class TenantAccessError(LookupError):
    """Raised when cross-tenant access is attempted (surfaced as 404)."""
    pass


class TenantScope:
    """Data access bound to a single organization."""

    def __init__(self, org_id: int):
        if not org_id:
            raise TenantAccessError("Tenant context not established")
        self.org_id = org_id

    def __repr__(self) -> str:
        return f"<TenantScope org_id={self.org_id}>"

    def query(self, model, *criteria):
        """Base query for a tenant-owned model, already filtered by org_id."""
        query = db.session.query(model).filter(model.org_id == self.org_id)
        if criteria:
            query = query.filter(*criteria)
        return query

    def get(self, model, row_id, *, label: str | None = None, for_update: bool = False):
        """
        Fetch one row by id inside this organization.

        Raises NotFoundError when the row does not exist anywhere and
        TenantAccessError (same message) when it belongs to another org.
        """
        label = label or model.__name__
        query = self.query(model, model.id == row_id)
        if for_update:
            query = lock_for_update(query)
        row = query.first()
        if row is not None:
            return row

        other_org_id = (
            db.session.query(model.org_id).filter(model.id == row_id).scalar()
            if isinstance(row_id, int) else None
        )
        if other_org_id is not None:
            _log_cross_tenant_attempt(
                f"{label} {row_id} belongs to org {other_org_id}, not {self.org_id}",
                org_id=self.org_id,
            )
            raise TenantAccessError(f"{label} not found")  # Don't reveal it exists in another org
        raise NotFoundError(f"{label} not found")

    def add(self, obj):
        """Attach a new tenant-owned row, stamping org_id."""
        if getattr(obj, "org_id", None) is None:
            obj.org_id = self.org_id
        elif obj.org_id != self.org_id:
            _log_cross_tenant_attempt(
                f"Attempt to write {type(obj).__name__} into org {obj.org_id}",
                org_id=self.org_id,
            )
            raise TenantAccessError("Cross-tenant write rejected")
        db.session.add(obj)
        return obj

    def organization(self) -> Organization:
        return db.session.get(Organization, self.org_id)


def current_scope() -> TenantScope:
    """
    TenantScope of the current request.

    SECURITY: Raises TenantAccessError if no tenant context was established.
    This should never happen after @require_auth or storefront resolution.
    """
    scope = getattr(g, "tenant", None) if has_request_context() else None
    if scope is None:
        raise TenantAccessError("Tenant context not established")
    return scope


def validate_org_active(org_id: int) -> Organization:
    org = db.session.query(Organization).filter_by(id=org_id).first()

    if not org:
        raise TenantAccessError("Organization not found")

    if not org.is_active:
        raise TenantAccessError("Organization is not active")

    return org


def resolve_storefront(slug: str) -> Organization:
    """
    Public storefront lookup by slug.

    Inactive organizations and disabled storefronts are indistinguishable
    from unknown slugs.
    """
    org = db.session.query(Organization).filter_by(slug=(slug or "").strip().lower()).first()
    if not org or not org.is_active or not org.storefront_enabled:
        raise NotFoundError("Store not found")
    return org


def _log_cross_tenant_attempt(reason: str, org_id: int | None = None) -> None:
    """
    Log a cross-tenant access attempt as a security event.

    SECURITY: Critical audit trail for detecting unauthorized access attempts.
    """
    user = getattr(g, "current_user", None) if has_request_context() else None
    in_request = has_request_context()

    log_security_event(
        user_id=user.id if user is not None else None,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        resource=request.path if in_request else None,
        action=request.method if in_request else None,
        reason=reason,
        ip_address=request.remote_addr if in_request else None,
        user_agent=request.headers.get("User-Agent") if in_request else None,
        org_id=org_id,
    )
