# occupancy_engine/core/config.py
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global application configuration.

    Values are loaded from environment variables (and an optional `.env`
    file) at runtime.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Occupancy Engine"
    APP_ENV: str = Field("local", description="Environment name: local/dev/stage/prod")

    DB_URL: str = Field(
        "sqlite+aiosqlite:///./occupancy_engine.db",
        description="SQLAlchemy-compatible async database URL",
    )

    LOG_LEVEL: str = Field(
        "INFO",
        description="Root log level (DEBUG/INFO/WARNING/ERROR).",
    )

    DEFAULT_SITE_TIMEZONE: str = Field(
        "America/Chicago",
        description="IANA timezone used when a site row carries no timezone.",
    )

    # --- Ledger resolution window ---
    LEDGER_LOOKBACK_YEARS: int = Field(
        default=1,
        ge=0,
        description=(
            "Whole calendar years before the current one included when listing "
            "occurrences without an explicit date range."
        ),
    )
    LEDGER_LOOKAHEAD_YEARS: int = Field(
        default=1,
        ge=0,
        description=(
            "Whole calendar years after the current one included when listing "
            "occurrences without an explicit date range."
        ),
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Using LRU cache ensures settings are read and validated only once,
    while still being easily importable across the app.
    """
    return Settings()
