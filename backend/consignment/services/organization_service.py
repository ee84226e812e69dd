# Overview: Service-layer operations for shop (organization) settings.

from ..extensions import db
from ..models import Organization
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from .tenant_service import TenantScope


ORGANIZATION_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "tax_rate_bps", "shipping_flat_cents", "default_split_percentage",
        "storefront_enabled", "contact_email", "phone",
    },
)

MAX_TAX_RATE_BPS = 10_000


def update_settings(scope: TenantScope, payload: dict) -> Organization:
    """
    Update shop settings. The slug is the storefront key and is not editable.

    default_split_percentage only applies to providers created afterwards;
    existing providers keep their commission_rate.
    """
    patch = validate_payload(model=Organization, payload=payload, policy=ORGANIZATION_POLICY, partial=True)

    tax = patch.get("tax_rate_bps")
    if tax is not None and not 0 <= tax <= MAX_TAX_RATE_BPS:
        raise ValidationError("tax_rate_bps must be between 0 and 10000")
    shipping = patch.get("shipping_flat_cents")
    if shipping is not None and shipping < 0:
        raise ValidationError("shipping_flat_cents must be >= 0")
    if patch.get("contact_email") and "@" not in patch["contact_email"]:
        raise ValidationError("contact_email must be a valid email address")

    org = scope.organization()
    for key, value in patch.items():
        setattr(org, key, value)
    db.session.commit()
    return org
