# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service with Multi-Tenant Support

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

MULTI-TENANT: Users belong to exactly one organization (org_id).
Email uniqueness is tenant-scoped, so logins name the shop (org slug).

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User, Organization
from ..models.auth import ALL_ROLES, STAFF_ROLES, ROLE_OWNER, ROLE_CONSIGNOR, ROLE_SHOPPER
from ..validation import ValidationError, ConflictError, NotFoundError
from consignment.time_utils import utcnow
from . import session_service


SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,62}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>?_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if not EMAIL_RE.match(value):
        raise ValidationError("A valid email address is required")
    return value


def create_user(
    *,
    org_id: int,
    email: str,
    password: str,
    role: str,
    first_name: str | None = None,
    last_name: str | None = None,
    phone: str | None = None,
    provider_id: int | None = None,
    commit: bool = True,
) -> User:
    """
    Create new user with bcrypt password hashing.

    MULTI-TENANT: email uniqueness is scoped to the organization.

    Raises:
        ValidationError: bad role/email, or a weak password
        ConflictError: email already used in this organization
        NotFoundError: organization missing or inactive
    """
    if role not in ALL_ROLES:
        raise ValidationError(f"Unknown role: {role}")
    if role == ROLE_CONSIGNOR and provider_id is None:
        raise ValidationError("Consignor users must be linked to a provider")

    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org or not org.is_active:
        raise NotFoundError("Organization not found")

    email = normalize_email(email)
    existing = db.session.query(User).filter(User.org_id == org_id, User.email == email).first()
    if existing:
        raise ConflictError("Email already exists in this organization")

    user = User(
        org_id=org_id,
        email=email,
        password_hash=hash_password(password),
        role=role,
        first_name=(first_name or "").strip() or None,
        last_name=(last_name or "").strip() or None,
        phone=(phone or "").strip() or None,
        provider_id=provider_id,
    )

    db.session.add(user)
    if commit:
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Email already exists in this organization")
    else:
        db.session.flush()
    return user


def authenticate(email: str, password: str, org_id: int) -> User | None:
    """
    Authenticate a user of one organization.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        User.org_id == org_id,
        User.email == (email or "").strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def login(
    *,
    org_slug: str,
    email: str,
    password: str,
    allowed_roles: set[str] | None = None,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[User, str] | None:
    """
    Resolve the organization by slug, authenticate, and open a session.

    Returns (user, plaintext_token) or None on any failure. Failures are
    deliberately indistinguishable to the caller.
    """
    org = db.session.query(Organization).filter_by(slug=(org_slug or "").strip().lower()).first()
    if not org or not org.is_active:
        return None

    user = authenticate(email, password, org.id)
    if not user:
        return None
    if allowed_roles is not None and user.role not in allowed_roles:
        return None

    _, token = session_service.create_session(user.id, user_agent=user_agent, ip_address=ip_address)
    return user, token


def register_organization(
    *,
    name: str,
    slug: str,
    owner_email: str,
    owner_password: str,
    owner_first_name: str | None = None,
    owner_last_name: str | None = None,
) -> tuple[Organization, User]:
    """Create a new shop and its OWNER account in one transaction."""
    name = (name or "").strip()
    slug = (slug or "").strip().lower()
    if not name:
        raise ValidationError("Organization name is required")
    if not SLUG_RE.match(slug):
        raise ValidationError("slug must be 2-63 characters: lowercase letters, digits, hyphens")
    if db.session.query(Organization).filter_by(slug=slug).first():
        raise ConflictError("Slug is already taken")

    cfg = current_app.config
    org = Organization(
        name=name,
        slug=slug,
        tax_rate_bps=cfg.get("DEFAULT_TAX_RATE_BPS", 850),
        shipping_flat_cents=cfg.get("DEFAULT_SHIPPING_CENTS", 1000),
        contact_email=(owner_email or "").strip().lower() or None,
    )
    db.session.add(org)
    db.session.flush()

    try:
        owner = create_user(
            org_id=org.id,
            email=owner_email,
            password=owner_password,
            role=ROLE_OWNER,
            first_name=owner_first_name,
            last_name=owner_last_name,
            commit=False,
        )
        db.session.commit()
    except (ValidationError, ConflictError, NotFoundError):
        db.session.rollback()
        raise
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Slug is already taken")

    current_app.logger.info("Registered organization %s (id=%s)", org.slug, org.id)
    return org, owner


def register_shopper(
    *,
    org_id: int,
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
    phone: str | None = None,
) -> User:
    return create_user(
        org_id=org_id,
        email=email,
        password=password,
        role=ROLE_SHOPPER,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
    )


def list_staff(org_id: int) -> list[User]:
    return (
        db.session.query(User)
        .filter(User.org_id == org_id, User.role.in_(STAFF_ROLES))
        .order_by(User.email)
        .all()
    )


def update_user(user: User, data: dict) -> User:
    """Staff management: names, phone, role (staff roles only), notification opt-in."""
    if "role" in data:
        role = data["role"]
        if role not in STAFF_ROLES:
            raise ValidationError("role must be one of: " + ", ".join(sorted(STAFF_ROLES)))
        user.role = role
    for field in ("first_name", "last_name", "phone"):
        if field in data:
            setattr(user, field, (data[field] or "").strip() or None)
    if "email_notifications" in data:
        user.email_notifications = bool(data["email_notifications"])
    db.session.commit()
    return user


def set_user_active(user: User, active: bool) -> User:
    user.is_active = bool(active)
    db.session.commit()
    if not user.is_active:
        session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.session.commit()
    session_service.revoke_all_user_sessions(user.id, reason="Password changed")
