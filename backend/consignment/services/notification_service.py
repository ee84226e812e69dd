# Overview: Service-layer operations for notifications; renders templates, stores and emails.

"""
Notification Service

notify(user_id, notification_type, data) renders the Jinja template for
the type, stores an in-app Notification and mirrors it by email when the
user has email notifications on. Email failures are logged and never undo
the business operation that triggered the notification.
"""

from flask import current_app

from ..extensions import db
from ..models import Notification, User, Provider
from ..validation import NotFoundError, ValidationError
from consignment.time_utils import utcnow
from .email_service import EmailDeliveryError, send_email


ITEM_SOLD = "ITEM_SOLD"
PAYOUT_PROCESSED = "PAYOUT_PROCESSED"
STATEMENT_READY = "STATEMENT_READY"
ORDER_PLACED = "ORDER_PLACED"
ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
PROVIDER_APPROVED = "PROVIDER_APPROVED"

# type -> (title template, message template)
TEMPLATES = {
    ITEM_SOLD: (
        "Your item sold: {{ item_title }}",
        "{{ item_title }} ({{ sku }}) sold for {{ sale_price_cents | money }}. "
        "Your share is {{ provider_amount_cents | money }}.",
    ),
    PAYOUT_PROCESSED: (
        "Payout {{ payout_number }} sent",
        "We paid you {{ amount_cents | money }} by {{ payment_method | default('cash', true) | lower }} "
        "for {{ transaction_count }} sale{{ 's' if transaction_count != 1 else '' }}"
        "{% if notes %}. Note: {{ notes }}{% endif %}.",
    ),
    STATEMENT_READY: (
        "Your statement for {{ period_label }} is ready",
        "Statement {{ statement_number }}: opening balance {{ opening_balance_cents | money }}, "
        "earnings {{ total_earnings_cents | money }}, payouts {{ total_payouts_cents | money }}, "
        "closing balance {{ closing_balance_cents | money }}.",
    ),
    ORDER_PLACED: (
        "Order {{ order_number }} received",
        "Thanks for your order from {{ shop_name }}. Total {{ total_cents | money }} "
        "for {{ item_count }} item{{ 's' if item_count != 1 else '' }}.",
    ),
    ORDER_STATUS_CHANGED: (
        "Order {{ order_number }} is {{ status | lower }}",
        "Your order {{ order_number }} is now {{ status | lower }}"
        "{% if tracking_number %} (tracking {{ tracking_number }}){% endif %}.",
    ),
    PROVIDER_APPROVED: (
        "Welcome to {{ shop_name }}",
        "Your consignor application was approved. Your provider number is {{ provider_number }}.",
    ),
}


def format_money(cents) -> str:
    cents = int(cents or 0)
    sign = "-" if cents < 0 else ""
    return f"{sign}${abs(cents) / 100:,.2f}"


def render(notification_type: str, data: dict) -> tuple[str, str]:
    try:
        title_tpl, message_tpl = TEMPLATES[notification_type]
    except KeyError:
        raise ValidationError(f"Unknown notification type: {notification_type}")
    # Plain text, so no HTML escaping; the app's filters (money) stay available
    env = current_app.jinja_env.overlay(autoescape=False)
    return (
        env.from_string(title_tpl).render(**data).strip(),
        env.from_string(message_tpl).render(**data).strip(),
    )


def _email(to: str, title: str, message: str, notification_type: str) -> bool:
    try:
        send_email(to, title, message, tags=[notification_type])
        return True
    except EmailDeliveryError:
        current_app.logger.warning("Email %s to %s failed", notification_type, to, exc_info=True)
        return False


def notify(user_id: int, notification_type: str, data: dict | None = None, *, email: bool = True) -> Notification:
    data = dict(data or {})
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    title, message = render(notification_type, data)
    notification = Notification(
        org_id=user.org_id,
        user_id=user.id,
        notification_type=notification_type,
        title=title,
        message=message,
        data=data,
    )
    db.session.add(notification)

    if email and user.email_notifications and user.is_active:
        if _email(user.email, title, message, notification_type):
            notification.email_sent = True
            notification.email_sent_at = utcnow()

    db.session.commit()
    return notification


def notify_provider(provider: Provider, notification_type: str, data: dict | None = None) -> list[Notification]:
    """
    Notify a provider through their portal account(s).

    Providers without portal access still get the email at provider.email.
    """
    users = [u for u in provider.portal_users if u.is_active]
    if users:
        return [notify(u.id, notification_type, data) for u in users]

    title, message = render(notification_type, dict(data or {}))
    _email(provider.email, title, message, notification_type)
    return []


def list_notifications(
    user: User,
    *,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Notification], int]:
    query = db.session.query(Notification).filter(
        Notification.user_id == user.id,
        Notification.org_id == user.org_id,
    )
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    total = query.count()
    rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def unread_count(user: User) -> int:
    return db.session.query(Notification).filter(
        Notification.user_id == user.id,
        Notification.org_id == user.org_id,
        Notification.is_read.is_(False),
    ).count()


def mark_read(user: User, notification_id: int) -> Notification:
    notification = db.session.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user.id,
        Notification.org_id == user.org_id,
    ).first()
    if not notification:
        raise NotFoundError("Notification not found")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
    return notification


def mark_all_read(user: User) -> int:
    updated = db.session.query(Notification).filter(
        Notification.user_id == user.id,
        Notification.org_id == user.org_id,
        Notification.is_read.is_(False),
    ).update({Notification.is_read: True, Notification.read_at: utcnow()}, synchronize_session="fetch")
    db.session.commit()
    return updated
