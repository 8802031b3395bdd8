"""
Configuration management for the storefront reservation backend.

Loads settings from .env via pydantic-settings.

Notes:
    - Gateway secrets are never logged; only their presence is checked.
    - validate_production_settings() enforces strict CORS, gateway secrets and
      a cron secret in production.
"""
import logging
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/storefront.db"
    sqlite_busy_timeout_seconds: float = 30.0

    # ── Reservations ────────────────────────────────────────────────
    reservation_ttl_minutes: int = 15
    currency: str = "NGN"

    # ── Gateways ────────────────────────────────────────────────────
    default_gateway: str = "flutterwave"   # "paystack" | "flutterwave"
    gateway_timeout_seconds: float = 15.0

    paystack_secret_key: str = ""
    paystack_base_url: str = "https://api.paystack.co"

    flutterwave_secret_key: str = ""
    flutterwave_secret_hash: str = ""      # compared against the verif-hash header
    flutterwave_base_url: str = "https://api.flutterwave.com"

    # ── Checkout page ───────────────────────────────────────────────
    checkout_redirect_url: str = "http://localhost:3000/success"
    checkout_title: str = "Storefront"
    checkout_logo_url: str = ""

    # When True, /payments/verify settles a gateway-confirmed success itself
    # instead of waiting for the webhook. See DESIGN.md.
    verify_settles_success: bool = True

    # ── Reaper ──────────────────────────────────────────────────────
    reaper_enabled: bool = True
    reaper_interval_seconds: int = 300
    cron_secret: str = ""

    # ── Rate limiting ───────────────────────────────────────────────
    checkout_rate_limit: int = 10
    checkout_rate_window_seconds: int = 60

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup. Raises ValueError in production when a
        required secret is missing; only warns in other environments.
        """
        problems = []
        if "*" in self.cors_origins:
            problems.append("CORS_ORIGINS contains '*' (open access)")
        if not self.paystack_secret_key:
            problems.append("PAYSTACK_SECRET_KEY not set (Paystack checkout and webhooks disabled)")
        if not self.flutterwave_secret_key:
            problems.append("FLUTTERWAVE_SECRET_KEY not set (Flutterwave checkout disabled)")
        if not self.flutterwave_secret_hash:
            problems.append("FLUTTERWAVE_SECRET_HASH not set (Flutterwave webhooks rejected)")
        if not self.cron_secret:
            problems.append("CRON_SECRET not set (/cron/cleanup-orders rejects all callers)")
        if self.default_gateway not in ("paystack", "flutterwave"):
            problems.append(f"DEFAULT_GATEWAY={self.default_gateway!r} is not a known gateway")

        if self.environment == "production":
            if problems:
                raise ValueError(
                    "Refusing to start in production: " + "; ".join(problems)
                )
            logger.info("Production settings validated")
        else:
            for p in problems:
                logger.warning(f"⚠️  {p}")


# Global settings instance
settings = Settings()
