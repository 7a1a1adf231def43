"""Application configuration management using Pydantic Settings."""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="storefront-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    max_request_body_size: int = Field(default=1_048_576, description="Maximum request body size in bytes")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:8080,http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase (document database + auth)
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(..., description="Supabase signing key JWK (JSON string) for JWT token verification")

    # Stripe (payment widget)
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")
    stripe_publishable_key: str = Field(default="", description="Stripe publishable key (for frontend)")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="Storefront <orders@example.com>",
        description="From address for transactional emails",
    )

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:8080",
        description="Storefront site URL for email links",
    )
    login_path: str = Field(default="/login/", description="Sign-in page path")
    register_path: str = Field(default="/register/", description="Registration page path")
    account_path: str = Field(default="/account/", description="Account page path")
    confirmation_path: str = Field(default="/order-confirmation/", description="Order confirmation page path")

    # Commerce
    currency: str = Field(default="usd", description="ISO currency code for all prices")
    shipping_flat_fee: Decimal = Field(
        default=Decimal("10.00"),
        ge=0,
        description="Flat shipping fee applied to any non-empty cart",
    )

    # Cart storage
    cart_storage_backend: Literal["memory", "supabase"] = Field(
        default="supabase",
        description="Backend for anonymous cart storage",
    )
    cart_storage_key: str = Field(default="storefrontCart", description="Key prefix the serialized cart is stored under")
    cart_cookie_name: str = Field(default="storefront_cart", description="Anonymous cart token cookie name")
    cart_cookie_max_age: int = Field(default=2592000, description="Cart cookie max age in seconds (30 days)")
    cart_cookie_secure: bool = Field(default=True, description="Use secure cookies (HTTPS only)")

    # Checkout
    pending_order_ttl_minutes: int = Field(
        default=60,
        ge=1,
        description="Minutes before an unpaid pending order is marked failed",
    )

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, value: str) -> str:
        """Store currency codes in lowercase, as Stripe expects."""
        return value.strip().lower()

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_stripe_test_mode(self) -> bool:
        """Check if using Stripe test keys."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
