"""Application configuration settings."""
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Environnement d'exécution: "dev" | "staging" | "prod"
ENV = os.getenv("APP_ENV", "dev").lower()


class Settings(BaseSettings):
    """Environment configuration for the partner wallet backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///partner_wallet.db"
    LOG_LEVEL: str = "INFO"

    # --- Razorpay ---------------------------------------------------------
    razorpay_key_id: str | None = None
    razorpay_key_secret: str | None = None
    razorpay_webhook_secret: str | None = None
    RAZORPAY_API_TIMEOUT_SECONDS: float = 5.0
    WALLET_CURRENCY: str = "INR"

    # --- Admin API --------------------------------------------------------
    ADMIN_API_KEY: str | None = None

    # --- Checkout gateway -------------------------------------------------
    CHECKOUT_BASE_URL: str = "https://sandbox-pgapi.example-pg.in"
    CHECKOUT_MERCHANT_ID: str | None = None
    CHECKOUT_CLIENT_ID: str | None = None
    CHECKOUT_MERCHANT_KEY: str | None = None
    CHECKOUT_CALLBACK_URL: str = "http://localhost:8000/payment/callback"
    CHECKOUT_RETURN_URL: str = "http://localhost:3000/partner/wallet?payment=success"
    CHECKOUT_TIMESTAMP_WINDOW_SECONDS: int = 300
    CHECKOUT_REJECT_FUTURE_TIMESTAMPS: bool = False

    CORS_ALLOW_ORIGINS: list[str] = [
        "http://localhost:3000",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = True
    ALLOW_DB_CREATE_ALL: bool = False

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator(
        "razorpay_webhook_secret",
        "razorpay_key_secret",
        "ADMIN_API_KEY",
        "CHECKOUT_MERCHANT_KEY",
    )
    @classmethod
    def _strip_empty_secret(cls, value: str | None) -> str | None:
        """Normalise empty secrets to ``None`` for easier validation."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @property
    def razorpay_mode(self) -> str:
        key_id = self.razorpay_key_id or ""
        return "sandbox" if key_id.startswith("rzp_test_") else "production"


class AppInfo(BaseModel):
    name: str = "partner-wallet-backend"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
