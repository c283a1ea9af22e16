# backend/storefront/config.py
from __future__ import annotations
import os


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # The single account allowed into the admin panel.
    # Role alone is not enough: the session email must match this address.
    ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@storefront.local").strip().lower()

    # Optional admin IP allow-list, comma separated. Empty = no restriction.
    ADMIN_ALLOWED_IPS = _split_csv(os.environ.get("ADMIN_ALLOWED_IPS"))

    # Used to build the links sent by email (verification, reset, admin access)
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:3001")

    # Mail transport. Missing host/user/pass = transport not configured (fails closed).
    SMTP_HOST = os.environ.get("SMTP_HOST")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_USER = os.environ.get("SMTP_USER")
    SMTP_PASS = os.environ.get("SMTP_PASS")
    EMAIL_FROM = os.environ.get("EMAIL_FROM", "no-reply@storefront.local")
    MAIL_TIMEOUT_SECONDS = float(os.environ.get("MAIL_TIMEOUT_SECONDS", "10"))

    # Injected transport object (anything with .send(to, subject, html)); overrides SMTP
    MAIL_TRANSPORT = None

    CORS_ALLOWED_ORIGINS = _split_csv(os.environ.get("CORS_ALLOWED_ORIGINS")) or [
        "http://localhost:3001",
        "http://127.0.0.1:3001",
    ]


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    ADMIN_EMAIL = "owner@storefront.test"
    ADMIN_ALLOWED_IPS: list[str] = []
    APP_BASE_URL = "http://storefront.test"
