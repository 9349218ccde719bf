"""Environment driven configuration for the booking service."""
from __future__ import annotations

import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _list_env(name: str) -> list[str]:
    raw = os.environ.get(name, "")
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///salonbook.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stripe
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "eur")

    # Resend
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    NOTIFICATION_FROM_EMAIL = os.environ.get("NOTIFICATION_FROM_EMAIL", "onboarding@resend.dev")
    NOTIFICATION_WORKERS = _int_env("NOTIFICATION_WORKERS", 2)
    # Empty list means every staff member with an email gets notified.
    STAFF_NOTIFICATION_ALLOWLIST = _list_env("STAFF_NOTIFICATION_ALLOWLIST")

    # Business rules
    DEPOSIT_PERCENTAGE = _int_env("DEPOSIT_PERCENTAGE", 50)
    MIN_BOOKING_BUFFER_MINUTES = _int_env("MIN_BOOKING_BUFFER_MINUTES", 30)
    MIN_CANCEL_HOURS = _int_env("MIN_CANCEL_HOURS", 24)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    STRIPE_SECRET_KEY = "sk_test_dummy"
    RESEND_API_KEY = None
    STAFF_NOTIFICATION_ALLOWLIST: list[str] = []
