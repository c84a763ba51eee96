"""Configuration settings for the ledger analytics engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Ledger service
    ledger_api_url: str = Field(
        default="http://localhost:8000", validation_alias="LEDGER_API_URL"
    )
    ledger_api_token: SecretStr = Field(..., validation_alias="LEDGER_API_TOKEN")
    ledger_timeout: float = Field(default=30.0, validation_alias="LEDGER_TIMEOUT")
    ledger_max_retries: int = Field(default=3, validation_alias="LEDGER_MAX_RETRIES")

    # Fetch phase budget shared by scope resolution and all parallel reads
    fetch_timeout_seconds: float = Field(
        default=60.0, validation_alias="FETCH_TIMEOUT_SECONDS"
    )
    transaction_limit: int = Field(default=50000, validation_alias="TRANSACTION_LIMIT")

    # Result cache
    cache_ttl_closed_seconds: int = Field(
        default=86400, validation_alias="CACHE_TTL_CLOSED_SECONDS"
    )
    cache_ttl_current_seconds: int = Field(
        default=1800, validation_alias="CACHE_TTL_CURRENT_SECONDS"
    )

    # Downsample targets per resolution
    resolution_high_points: int = Field(default=365, validation_alias="RESOLUTION_HIGH_POINTS")
    resolution_standard_points: int = Field(
        default=120, validation_alias="RESOLUTION_STANDARD_POINTS"
    )
    resolution_low_points: int = Field(default=60, validation_alias="RESOLUTION_LOW_POINTS")

    # Windows
    trailing_span: int = Field(default=12, validation_alias="TRAILING_SPAN")
    graph_window_months: int = Field(default=12, validation_alias="GRAPH_WINDOW_MONTHS")
    overview_months: int = Field(default=24, validation_alias="OVERVIEW_MONTHS")
    fiscal_year_start_month: int = Field(
        default=9, ge=1, le=12, validation_alias="FISCAL_YEAR_START_MONTH"
    )

    # Employee categories reported as partners (others report as managers)
    partner_categories: list[str] = Field(
        default_factory=lambda: ["CARL", "Local", "DIR"],
        validation_alias="PARTNER_CATEGORIES",
    )

    # Optional static service-line mapping file (YAML)
    service_line_map_path: str | None = Field(
        default=None, validation_alias="SERVICE_LINE_MAP_PATH"
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
