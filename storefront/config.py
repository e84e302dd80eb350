"""Storefront configuration."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Environment-driven settings for the storefront service."""

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_api_version: str = "2023-10-16"
    stripe_signature_tolerance: int = 300

    # Resend
    resend_api_key: str = ""
    resend_api_url: str = "https://api.resend.com/emails"
    email_from: str = "Nefer Kali Healing <info@neferkalihealing.org>"

    # Storage (empty database_url = in-memory store, empty redis_url = no event ledger)
    database_url: str = ""
    redis_url: str = ""

    # Admin / internal endpoints
    admin_api_token: str = ""
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Organization printed on receipts and footers
    org_name: str = "Nefer Kali Healing"
    org_ein: str = "99-3021724"
    org_address: str = "PO Box 322, McCordsville, IN 46055"
    support_email: str = "asasa@neferkalihealing.org"
    org_is_nonprofit: bool = True

    # Runtime
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_file": ".env", "extra": "ignore"}
