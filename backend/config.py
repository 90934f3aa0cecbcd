"""
Configuration management for the Alternus checkout service.

Loads settings from .env via pydantic-settings.

Notes:
    - All money settings are integer minor units (cents)
    - validate_production_settings() refuses simulated payments, missing
      processor secrets and wildcard CORS in production
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/storefront.db"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"
    simulation_mode: bool = True  # in-process card processor instead of Stripe

    # ── Pricing ─────────────────────────────────────────────────────
    default_currency: str = "EUR"
    supported_currencies: str = "EUR"
    shipping_flat_fee_minor: int = 16_000        # 160.00
    free_shipping_threshold_minor: int = 216_000  # 2,160.00

    # ── Orders ──────────────────────────────────────────────────────
    order_number_prefix: str = "ALT"
    order_number_group_length: int = 4
    order_number_max_attempts: int = 5

    # ── Card processor (Stripe) ─────────────────────────────────────
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    gateway_timeout_seconds: float = 10.0

    # ── PayPal (redirect checkout) ──────────────────────────────────
    paypal_client_id: str = ""
    paypal_client_secret: str = ""
    paypal_webhook_id: str = ""
    paypal_api_base: str = "https://api-m.sandbox.paypal.com"
    paypal_brand_name: str = "Alternus Art Gallery"

    # Storefront base URL (PayPal return/cancel pages)
    app_url: str = "http://localhost:3000"

    # Signing secret for the simulated processor's webhooks
    simulated_webhook_secret: str = "whsec_simulated"

    # ── Bank transfer ───────────────────────────────────────────────
    bank_name: str = "Raiffeisen Bank"
    bank_account_holder: str = "Alternus Art Gallery"
    bank_iban: str = "AL35 2021 1109 0000 0000 1234 5678"
    bank_bic: str = "SGSBALTX"

    # ── Sales ───────────────────────────────────────────────────────
    gallery_commission_percent: int = 40

    # ── Auth (JWT, admin endpoints) ─────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "alternus-api"
    jwt_access_ttl_minutes: int = 15

    # ── Rate limits ─────────────────────────────────────────────────
    checkout_rate_limit: int = 10          # requests per window per IP
    checkout_rate_window_seconds: int = 60

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def supported_currencies_list(self) -> List[str]:
        """Parse supported ISO currency codes (upper-cased)."""
        return [c.strip().upper() for c in self.supported_currencies.split(",") if c.strip()]

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if self.simulation_mode:
                raise ValueError(
                    "SIMULATION_MODE must be false in production. "
                    "The simulated processor accepts any payment."
                )
            if not self.stripe_secret_key or not self.stripe_webhook_secret:
                raise ValueError(
                    "STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET must be set in production."
                )
            if self.paypal_client_id and not self.paypal_webhook_id:
                raise ValueError(
                    "PAYPAL_WEBHOOK_ID must be set when PayPal is enabled in production."
                )
            if "sandbox" in self.paypal_api_base:
                logger.warning("PAYPAL_API_BASE points at the PayPal sandbox")
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to sign admin access tokens."
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if self.simulation_mode:
                warnings.append("SIMULATION_MODE=true (card payments are simulated)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            for w in warnings:
                logger.warning(w)


# Global settings instance
settings = Settings()
