"""Application configuration using Pydantic Settings."""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "Staybook Reservations"
    debug: bool = False
    api_v1_prefix: str = "/v1"
    allowed_origins: str

    # Database
    database_url: str
    database_echo: bool = False

    # Firebase Auth
    firebase_project_id: str
    google_application_credentials: Optional[str] = None

    # Money policy (all amounts are integer minor units)
    default_currency: str = "USD"
    service_fee_percent: Decimal = Decimal("10")
    tax_rate_percent: Decimal = Decimal("8")
    platform_fee_percent: Decimal = Decimal("10")

    # Payments
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None

    # iCal
    ical_fetch_timeout_seconds: float = 10.0
    ical_sync_interval_minutes: int = 0
    ical_product_id: str = "-//Staybook//Listing Calendar//EN"
    ical_uid_domain: str = "staybook.local"

    # Notifications
    notifications_webhook_url: Optional[str] = None
    notifications_timeout_seconds: float = 5.0

    @property
    def origins(self) -> list[str]:
        """Parsed CORS origins."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
