# Overview: Flask API routes for staff management; parses input and returns JSON responses.

"""
Staff User Routes

SECURITY: VIEW_USERS to list/read, MANAGE_USERS to create or change.
Only staff roles can be assigned here; consignor logins are granted via
/api/providers/<id>/portal-access and shoppers self-register on the storefront.
"""

from flask import Blueprint, g

from ..decorators import require_auth, require_permission
from ..models import User
from ..models.auth import STAFF_ROLES
from ..responses import api_ok, api_error
from ..services import auth_service
from ..validation import ValidationError
from .params import json_body


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _staff_user(user_id: int) -> User:
    user = g.tenant.get(User, user_id, label="User")
    if user.role not in STAFF_ROLES:
        raise ValidationError("Not a staff account")
    return user


@users_bp.get("")
@require_auth
@require_permission("VIEW_USERS")
def list_users_route():
    users = auth_service.list_staff(g.org_id)
    return api_ok({"items": [u.to_dict() for u in users], "count": len(users)})


@users_bp.post("")
@require_auth
@require_permission("MANAGE_USERS")
def create_user_route():
    """
    Request body:
    {"email": "...", "password": "...", "role": "CLERK", "first_name": "...", "last_name": "...", "phone": "..."}
    """
    data = json_body()
    role = data.get("role")
    if role not in STAFF_ROLES:
        return api_error("role must be one of: " + ", ".join(sorted(STAFF_ROLES)), 400)

    user = auth_service.create_user(
        org_id=g.org_id,
        email=data.get("email"),
        password=data.get("password"),
        role=role,
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        phone=data.get("phone"),
    )
    return api_ok(user.to_dict(), "User created", 201)


@users_bp.get("/<int:user_id>")
@require_auth
@require_permission("VIEW_USERS")
def get_user_route(user_id: int):
    return api_ok(_staff_user(user_id).to_dict())


@users_bp.patch("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user_route(user_id: int):
    user = _staff_user(user_id)
    data = json_body()
    if user.id == g.current_user.id and "role" in data and data["role"] != user.role:
        return api_error("You cannot change your own role", 400)
    return api_ok(auth_service.update_user(user, data).to_dict(), "User updated")


@users_bp.post("/<int:user_id>/deactivate")
@require_auth
@require_permission("MANAGE_USERS")
def deactivate_user_route(user_id: int):
    user = _staff_user(user_id)
    if user.id == g.current_user.id:
        return api_error("You cannot deactivate your own account", 400)
    return api_ok(auth_service.set_user_active(user, False).to_dict(), "User deactivated")


@users_bp.post("/<int:user_id>/activate")
@require_auth
@require_permission("MANAGE_USERS")
def activate_user_route(user_id: int):
    return api_ok(auth_service.set_user_active(_staff_user(user_id), True).to_dict(), "User activated")
