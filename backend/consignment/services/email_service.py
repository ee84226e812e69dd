# Overview: Outbound email adapters (console logging and in-memory outbox).

"""
Email Service

Senders implement send(message). The backend is chosen by EMAIL_BACKEND:
- console: writes the message to the application log (development default)
- memory:  appends to app.extensions["email_outbox"] (tests)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app


class EmailDeliveryError(Exception):
    """Raised when a message cannot be handed to the configured backend."""
    pass


@dataclass
class EmailMessage:
    to: str
    subject: str
    body: str
    sender: str = ""
    tags: list[str] = field(default_factory=list)


class ConsoleEmailSender:
    def send(self, message: EmailMessage) -> None:
        current_app.logger.info(
            "EMAIL to=%s from=%s subject=%r\n%s",
            message.to, message.sender, message.subject, message.body,
        )


class MemoryEmailSender:
    def send(self, message: EmailMessage) -> None:
        current_app.extensions.setdefault("email_outbox", []).append(message)


_SENDERS = {
    "console": ConsoleEmailSender,
    "memory": MemoryEmailSender,
}


def get_email_sender():
    backend = current_app.config.get("EMAIL_BACKEND", "console")
    try:
        return _SENDERS[backend]()
    except KeyError:
        raise EmailDeliveryError(f"Unknown EMAIL_BACKEND: {backend}")


def send_email(to: str, subject: str, body: str, *, tags: list[str] | None = None) -> EmailMessage:
    if not to:
        raise EmailDeliveryError("Recipient address is required")
    message = EmailMessage(
        to=to,
        subject=subject,
        body=body,
        sender=current_app.config.get("EMAIL_FROM", ""),
        tags=list(tags or []),
    )
    get_email_sender().send(message)
    return message


def get_outbox() -> list[EmailMessage]:
    """Messages captured by the memory backend."""
    return current_app.extensions.setdefault("email_outbox", [])
