"""
Application configuration.

All configuration is loaded from environment variables.
Never hardcode secrets or connection strings in code.
"""

import os
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file into environment variables
load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Party Ledger"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql://localhost:5432/party_ledger"
    )

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Ledger rules
    DEFAULT_COMPANY_NAME: str = os.getenv("DEFAULT_COMPANY_NAME", "Company")
    DEFAULT_COMMISSION_RATE: Decimal = Decimal(
        os.getenv("DEFAULT_COMMISSION_RATE", "0.03")
    )
    COMMISSION_PARTY_NAME: str = os.getenv("COMMISSION_PARTY_NAME", "Commission")
    # Comma separated pair of parties that mirror each other's postings
    MIRROR_PARTIES: tuple[str, ...] = tuple(
        name.strip()
        for name in os.getenv("MIRROR_PARTIES", "Take,Give").split(",")
        if name.strip()
    )

    # Advisory read cache for ledger views and reports
    CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "30"))

    # Settlements wait for the party lock by default. With NOWAIT a held
    # lock fails at once as a conflict, which the API retries once.
    SETTLEMENT_LOCK_NOWAIT: bool = (
        os.getenv("SETTLEMENT_LOCK_NOWAIT", "false").lower() == "true"
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Return cached settings instance.

    Using lru_cache means the Settings object is created once
    and reused for all subsequent calls. This avoids reading
    environment variables repeatedly.
    """
    return Settings()
