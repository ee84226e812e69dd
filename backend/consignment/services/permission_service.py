# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Permission Checking and Security Event Logging with Multi-Tenant Support

WHY: Enforce role-based access control and create audit trail.

MULTI-TENANT: Security events include org_id for tenant-scoped auditing.
All permission checks occur within the caller's tenant boundary.

DESIGN PRINCIPLES:
- Fail closed: unknown roles have no permissions
- Log denials only: Permission grants are not logged
- Roles map to permissions statically (see consignment.permissions.roles)
"""

from ..extensions import db
from ..models import User, SecurityEvent
from ..permissions import get_role_permissions
from consignment.time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""

    def __init__(self, message: str, permission_code: str | None = None):
        super().__init__(message)
        self.permission_code = permission_code


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    org_id: int | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail with tenant context.

    event_type examples:
    - PERMISSION_DENIED
    - LOGIN_FAILED
    - LOGIN_SUCCESS
    - LOGOUT
    - USER_CREATED
    - TENANT_CONTEXT_MISSING
    - CROSS_TENANT_ACCESS_DENIED
    """
    event = SecurityEvent(
        user_id=user_id,
        org_id=org_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_user_permissions(user_id: int) -> set[str]:
    """
    Get all permission codes for a user (e.g., {"RECORD_SALE", "VIEW_ITEMS"}).

    Inactive or missing users have none.
    """
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return set()
    return get_role_permissions(user.role)


def user_has_permission(user_id: int, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user_id)


def require_permission(
    user_id: int,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    org_id: int | None = None,
) -> None:
    """
    Require user to have permission, raise PermissionDeniedError if not.

    Denials are logged to security_events with org_id.

    Usage:
        require_permission(user.id, "RECORD_SALE", resource="/api/transactions", org_id=g.org_id)
    """
    if user_has_permission(user_id, permission_code):
        return

    log_security_event(
        user_id=user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission_code,
        reason=f"Missing permission: {permission_code}",
        ip_address=ip_address,
        user_agent=user_agent,
        org_id=org_id,
    )
    raise PermissionDeniedError(f"Permission denied: {permission_code}", permission_code)


def list_security_events(org_id: int, *, event_type: str | None = None, limit: int = 100) -> list[SecurityEvent]:
    query = db.session.query(SecurityEvent).filter(SecurityEvent.org_id == org_id)
    if event_type:
        query = query.filter(SecurityEvent.event_type == event_type)
    return query.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).limit(limit).all()
