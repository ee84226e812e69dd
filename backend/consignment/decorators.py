# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, g

from .models.auth import ROLE_SHOPPER
from .responses import api_error
from .services import session_service, permission_service
from .services.permission_service import PermissionDeniedError
from .services.tenant_service import TenantScope, resolve_storefront


CART_SESSION_HEADER = "X-Cart-Session"


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'org_id')


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _establish(context: session_service.SessionContext) -> None:
    g.current_user = context.user
    g.org_id = context.org_id
    g.session_context = context
    g.tenant = TenantScope(context.org_id)


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.org_id: The organization ID (tenant context) - REQUIRED
    - g.session_context: The full SessionContext (role, provider_id, customer_id, store_slug)
    - g.tenant: TenantScope bound to g.org_id; services query through it

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid or expired token
    - User account deactivated
    - Organization deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return api_error("Authentication required", 401)

        context = session_service.validate_session(token)
        if not context:
            return api_error("Invalid or expired token", 401)

        if not context.org_id:
            permission_service.log_security_event(
                user_id=context.user.id if context.user else None,
                event_type="TENANT_CONTEXT_MISSING",
                success=False,
                resource=request.path,
                action=request.method,
                reason="Session missing org_id - critical security invariant violated",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
                org_id=None,
            )
            return api_error("Invalid session: missing tenant context", 401)

        _establish(context)
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """
    Require a specific permission.

    MULTI-TENANT: Denials are logged as security events with org_id.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return api_error("Authentication required", 401)

            try:
                permission_service.require_permission(
                    user_id=g.current_user.id,
                    permission_code=permission_code,
                    resource=request.path,
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                    org_id=g.org_id,
                )
            except PermissionDeniedError as e:
                return api_error("Permission denied", 403, errors=[str(e)],
                                 data={"required_permission": permission_code})

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_provider_link(f):
    """
    Consignor portal routes: the session must carry a provider_id.

    Must run after @require_auth. Sets g.provider_id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        provider_id = g.session_context.provider_id
        if not provider_id:
            return api_error("Account is not linked to a consignor", 403)
        g.provider_id = provider_id
        return f(*args, **kwargs)

    return decorated_function


def storefront(f):
    """
    Public storefront routes under /api/shop/<slug>.

    Resolves the organization from the slug (404 when unknown, inactive or
    storefront disabled) and sets g.store, g.tenant and g.cart_session_id.
    A valid SHOPPER bearer token for the same store also sets
    g.current_user and g.customer_id; any other token is ignored.
    """
    @wraps(f)
    def decorated_function(slug, *args, **kwargs):
        org = resolve_storefront(slug)
        g.store = org
        g.tenant = TenantScope(org.id)
        g.cart_session_id = (request.headers.get(CART_SESSION_HEADER) or "").strip() or None
        g.customer_id = None

        token = _bearer_token()
        if token:
            context = session_service.validate_session(token)
            if context and context.org_id == org.id and context.role == ROLE_SHOPPER:
                g.current_user = context.user
                g.org_id = context.org_id
                g.session_context = context
                g.customer_id = context.customer_id

        return f(*args, **kwargs)

    return decorated_function


def require_shopper(f):
    """Storefront routes that need a signed-in shopper. Must run after @storefront."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not getattr(g, "customer_id", None):
            return api_error("Sign in required", 401)
        return f(*args, **kwargs)

    return decorated_function
