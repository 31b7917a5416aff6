"""
Runtime Environment Validation Module

Validates the environment at application startup. If validation fails the
application refuses to start (hard fail, exit code 1) instead of failing later
in the middle of a booking.
"""

import os
import sys
from decimal import Decimal

from pydantic import ValidationError

from staybook.core.config import Settings, get_settings


def _fatal(*lines: str) -> None:
    print(f"❌ FATAL: {lines[0]}", file=sys.stderr)
    for line in lines[1:]:
        print(f"   {line}", file=sys.stderr)
    sys.exit(1)


def validate_environment() -> Settings:
    """
    Validate all required environment variables at startup.

    This function MUST be called before the FastAPI app starts.

    Returns:
        Settings: Validated settings object

    Raises:
        SystemExit: If validation fails (exit code 1)
    """
    try:
        settings = get_settings()
    except ValidationError as e:
        print("❌ FATAL: Environment validation failed", file=sys.stderr)
        print("\nMissing or invalid environment variables:", file=sys.stderr)
        for error in e.errors():
            field = " -> ".join(str(loc) for loc in error["loc"])
            print(f"   • {field}: {error['msg']}", file=sys.stderr)
        print("\nPlease check your .env file or environment variables.", file=sys.stderr)
        sys.exit(1)

    # 1. CORS: wildcard only allowed in debug
    if not settings.debug and "*" in settings.origins:
        _fatal(
            "Wildcard CORS origin (*) detected in production mode.",
            "Set ALLOWED_ORIGINS to specific domains (comma-separated).",
        )

    # 2. Money policy: percentages must be sane
    for name in ("service_fee_percent", "tax_rate_percent", "platform_fee_percent"):
        value: Decimal = getattr(settings, name)
        if value < 0 or value > 100:
            _fatal(f"{name.upper()} must be between 0 and 100 (got {value})")

    # 3. iCal fetch must be bounded
    if settings.ical_fetch_timeout_seconds <= 0:
        _fatal("ICAL_FETCH_TIMEOUT_SECONDS must be positive")
    if settings.ical_sync_interval_minutes < 0:
        _fatal("ICAL_SYNC_INTERVAL_MINUTES cannot be negative (use 0 to disable)")

    # 4. Firebase: credentials path must exist if provided
    if settings.google_application_credentials and not os.path.exists(
        settings.google_application_credentials
    ):
        _fatal(f"Firebase credentials file not found: {settings.google_application_credentials}")

    # 5. Database: SQLite is a development convenience only
    if not settings.debug and not settings.database_url.startswith("postgresql"):
        _fatal(
            "DATABASE_URL must be a PostgreSQL connection string outside debug mode",
            "(postgresql:// or postgresql+asyncpg://)",
        )

    # 6. Payments: webhook secret without a key is a misconfiguration
    if settings.stripe_webhook_secret and not settings.stripe_secret_key:
        _fatal("STRIPE_WEBHOOK_SECRET is set but STRIPE_SECRET_KEY is missing")

    print("✅ Environment validation passed")
    print(f"   App: {settings.app_name}")
    print(f"   Debug: {settings.debug}")
    print(f"   Payments: {'stripe' if settings.stripe_secret_key else 'disabled'}")
    print(f"   CORS Origins: {settings.allowed_origins}")

    return settings


if __name__ == "__main__":
    validate_environment()
    print("\n✅ All environment variables are valid!")
