# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes (staff and consignor portal)

- POST /api/auth/register creates a new shop (organization) and its OWNER
- POST /api/auth/login needs the shop slug because emails are unique per shop
- Shoppers sign in through /api/shop/<slug>/login instead
- Invited consignors register through /api/auth/invitations/<token>/accept

SECURITY: Login failures are indistinguishable (unknown shop, unknown
email, wrong password, wrong role) and are recorded as security events.
"""

from flask import Blueprint, request, g

from ..decorators import require_auth
from ..models.auth import ROLE_SHOPPER, ALL_ROLES
from ..permissions import get_role_permissions
from ..responses import api_ok, api_error
from ..services import auth_service, invitation_service, permission_service, session_service
from .params import json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

BACKOFFICE_ROLES = set(ALL_ROLES) - {ROLE_SHOPPER}


def session_payload(user, token: str) -> dict:
    org = user.organization
    return {
        "token": token,
        "user": user.to_dict(),
        "organization": org.to_dict(),
        "permissions": sorted(get_role_permissions(user.role)),
    }


@auth_bp.post("/register")
def register_route():
    """
    Register a new shop.

    Request body:
    {
        "organization_name": "Second Hand Rose",  // required
        "slug": "second-hand-rose",              // required, storefront key
        "email": "owner@example.com",            // required
        "password": "...",                       // required, strength rules apply
        "first_name": "...", "last_name": "..."  // optional
    }

    Returns the owner session (auto-login).
    """
    data = json_body()
    org, owner = auth_service.register_organization(
        name=data.get("organization_name"),
        slug=data.get("slug"),
        owner_email=data.get("email"),
        owner_password=data.get("password"),
        owner_first_name=data.get("first_name"),
        owner_last_name=data.get("last_name"),
    )
    _, token = session_service.create_session(
        owner.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return api_ok(session_payload(owner, token), "Organization registered", 201)


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    Request body: {"org_slug": "...", "email": "...", "password": "..."}
    Token must be sent as "Authorization: Bearer <token>".
    """
    data = json_body()
    org_slug = data.get("org_slug")
    email = data.get("email")
    password = data.get("password")

    if not all([org_slug, email, password]):
        return api_error("org_slug, email and password required", 400)

    user_agent = request.headers.get("User-Agent")
    ip_address = request.remote_addr

    result = auth_service.login(
        org_slug=org_slug,
        email=email,
        password=password,
        allowed_roles=BACKOFFICE_ROLES,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    if not result:
        permission_service.log_security_event(
            user_id=None,
            event_type="LOGIN_FAILED",
            success=False,
            resource=request.path,
            action="LOGIN",
            reason=f"Invalid credentials for {str(email).strip().lower()} at {org_slug}",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return api_error("Invalid credentials", 401)

    user, token = result
    permission_service.log_security_event(
        user_id=user.id,
        event_type="LOGIN_SUCCESS",
        success=True,
        resource=request.path,
        action="LOGIN",
        ip_address=ip_address,
        user_agent=user_agent,
        org_id=user.org_id,
    )
    return api_ok(session_payload(user, token), "Login successful")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers["Authorization"].split(" ", 1)[1].strip()
    session_service.revoke_session(token, reason="User logout")
    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type="LOGOUT",
        success=True,
        resource=request.path,
        action="LOGOUT",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        org_id=g.org_id,
    )
    return api_ok(None, "Logged out")


@auth_bp.get("/me")
@require_auth
def me_route():
    context = g.session_context
    return api_ok({
        "user": g.current_user.to_dict(),
        "organization": g.tenant.organization().to_dict(),
        "role": context.role,
        "provider_id": context.provider_id,
        "permissions": sorted(get_role_permissions(context.role)),
    })


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    """Change own password. All sessions are revoked; the client must log in again."""
    data = json_body()
    if not data.get("current_password") or not data.get("new_password"):
        return api_error("current_password and new_password required", 400)
    auth_service.change_password(g.current_user, data["current_password"], data["new_password"])
    return api_ok(None, "Password changed")


@auth_bp.get("/invitations/<token>")
def get_invitation_route(token: str):
    """Public: who was invited, by which shop, and whether the link still works."""
    invitation = invitation_service.get_invitation_by_token(token)
    return api_ok(invitation.to_public_dict())


@auth_bp.post("/invitations/<token>/accept")
def accept_invitation_route(token: str):
    """
    Register as a consignor from an invitation link.

    Request body:
    {
        "email": "jane@example.com",   // required, must match the invitation
        "password": "...",             // required, strength rules apply
        "display_name": "Jane Doe",    // optional, defaults to the invited name
        "phone": "..."                 // optional
    }

    Returns the consignor session (auto-login).
    """
    data = json_body()
    provider, user = invitation_service.register_from_invitation(
        token,
        email=data.get("email"),
        password=data.get("password"),
        display_name=data.get("display_name"),
        phone=data.get("phone"),
    )
    _, session_token = session_service.create_session(
        user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    payload = session_payload(user, session_token)
    payload["provider"] = provider.to_dict()
    return api_ok(payload, "Registration complete", 201)
