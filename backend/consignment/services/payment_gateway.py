# Overview: Payment gateway adapter used by checkout.

"""
Payment Gateway

Contract consumed by order_service, keyed by an intent id issued here:
    create_payment_intent(amount_cents, currency, metadata) -> PaymentIntent
    confirm_payment(intent_id) -> PaymentIntent
    cancel_payment(intent_id) -> PaymentIntent

The manual gateway is for shops that take payment at pickup or by phone:
it issues local intent ids and confirms them on request. No card data is
ever seen by this backend.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from flask import current_app


class PaymentGatewayError(Exception):
    """Raised when the gateway rejects or cannot process a request."""
    pass


@dataclass
class PaymentIntent:
    id: str
    amount_cents: int
    currency: str
    status: str  # requires_confirmation | succeeded | canceled
    client_secret: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "status": self.status,
            "client_secret": self.client_secret,
        }


class ManualPaymentGateway:
    prefix = "pi_"

    def _check(self, intent_id: str) -> None:
        if not intent_id or not intent_id.startswith(self.prefix):
            raise PaymentGatewayError("Unknown payment intent")

    def create_payment_intent(self, amount_cents: int, *, currency: str = "usd", metadata: dict | None = None) -> PaymentIntent:
        if amount_cents <= 0:
            raise PaymentGatewayError("Amount must be positive")
        token = uuid.uuid4().hex
        return PaymentIntent(
            id=f"{self.prefix}{token}",
            amount_cents=amount_cents,
            currency=currency,
            status="requires_confirmation",
            client_secret=f"{self.prefix}{token}_secret",
        )

    def confirm_payment(self, intent_id: str, *, amount_cents: int = 0, currency: str = "usd") -> PaymentIntent:
        self._check(intent_id)
        return PaymentIntent(id=intent_id, amount_cents=amount_cents, currency=currency, status="succeeded")

    def cancel_payment(self, intent_id: str, *, amount_cents: int = 0, currency: str = "usd") -> PaymentIntent:
        self._check(intent_id)
        return PaymentIntent(id=intent_id, amount_cents=amount_cents, currency=currency, status="canceled")


_GATEWAYS = {
    "manual": ManualPaymentGateway,
}


def get_payment_gateway():
    name = current_app.config.get("PAYMENT_GATEWAY", "manual")
    try:
        return _GATEWAYS[name]()
    except KeyError:
        raise PaymentGatewayError(f"Unknown PAYMENT_GATEWAY: {name}")
