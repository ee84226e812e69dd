# backend/consignment/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value not in (None, "") else default


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/consignment.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///consignment.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:4200,http://127.0.0.1:4200",
        ).split(",")
        if origin.strip()
    ]

    # Sessions
    SESSION_ABSOLUTE_TIMEOUT_HOURS = _env_int("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_HOURS = _env_int("SESSION_IDLE_TIMEOUT_HOURS", 2)

    # Consignor invitations: sign-up links point at the client app
    CLIENT_URL = os.environ.get("CLIENT_URL", "http://localhost:4200")
    INVITATION_TTL_DAYS = _env_int("INVITATION_TTL_DAYS", 7)

    # Storefront
    CART_TTL_DAYS = _env_int("CART_TTL_DAYS", 7)  # anonymous carts only
    DEFAULT_TAX_RATE_BPS = _env_int("DEFAULT_TAX_RATE_BPS", 850)  # 8.50%
    DEFAULT_SHIPPING_CENTS = _env_int("DEFAULT_SHIPPING_CENTS", 1000)

    # Integrations (local adapters only)
    EMAIL_BACKEND = os.environ.get("EMAIL_BACKEND", "console")  # console | memory
    EMAIL_FROM = os.environ.get("EMAIL_FROM", "no-reply@consignment.local")
    PAYMENT_GATEWAY = os.environ.get("PAYMENT_GATEWAY", "manual")
    ACCOUNTING_BACKEND = os.environ.get("ACCOUNTING_BACKEND", "disabled")
    PHOTO_STORAGE_DIR = os.environ.get("PHOTO_STORAGE_DIR", "instance/photos")
    PHOTO_BASE_URL = os.environ.get("PHOTO_BASE_URL", "/media/photos")
    VENDOR_TIMEOUT_SECONDS = _env_int("VENDOR_TIMEOUT_SECONDS", 10)

    # bcrypt cost factor (tests lower this)
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)
