"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
Forecast thresholds and penalties live here so they can be tuned
per deployment without code changes.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        "http://localhost:54321",
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        "",
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )

    # ===================
    # HISTORY THRESHOLDS
    # ===================
    forecast_min_history_days: int = Field(
        default=7,
        ge=2,
        description="Days of history needed for weighted moving average (T1)"
    )
    forecast_ema_history_days: int = Field(
        default=30,
        ge=3,
        description="Days of history needed for exponential moving average (T2)"
    )
    forecast_regression_history_days: int = Field(
        default=90,
        ge=4,
        description="Days of history needed for regression-combined forecast (T3)"
    )
    consumption_lookback_days: int = Field(
        default=90,
        ge=1,
        le=730,
        description="Days of consumption history fetched per forecast"
    )
    fill_missing_days: bool = Field(
        default=False,
        description="Expand sparse history to one entry per calendar day (missing = 0)"
    )

    # ===================
    # CONFIDENCE SCORING
    # ===================
    insufficient_data_confidence: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Confidence reported when no history exists"
    )
    variability_cv_threshold: float = Field(
        default=50.0,
        ge=0,
        description="Coefficient of variation (%) above which confidence is penalised"
    )
    variability_penalty_slope: float = Field(
        default=0.5,
        ge=0,
        description="Points lost per CV point above the threshold"
    )
    variability_penalty_cap: float = Field(
        default=30.0,
        ge=0,
        le=100,
        description="Maximum variability penalty"
    )
    quarter_confidence_adjustment: int = Field(
        default=-10,
        le=0,
        ge=-100,
        description="Confidence adjustment for quarterly forecasts"
    )
    year_confidence_adjustment: int = Field(
        default=-20,
        le=0,
        ge=-100,
        description="Confidence adjustment for yearly forecasts"
    )

    # ===================
    # BULK GENERATION
    # ===================
    forecast_max_workers: int = Field(
        default=5,
        ge=1,
        le=32,
        description="Concurrent forecasts in flight during bulk generation"
    )
    collaborator_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="Timeout applied to history/stock lookups and store writes"
    )
    bulk_insufficient_as_failure: bool = Field(
        default=True,
        description="Report products without history as failed in bulk runs"
    )
    batch_run_ttl_minutes: int = Field(
        default=60,
        ge=1,
        description="Minutes a finished bulk run stays available for polling"
    )
    forecast_freshness_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Stored forecasts older than this are ignored"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    @model_validator(mode="after")
    def check_history_thresholds(self) -> "Settings":
        """Thresholds must be strictly increasing (T1 < T2 < T3)."""
        if not (
            self.forecast_min_history_days
            < self.forecast_ema_history_days
            < self.forecast_regression_history_days
        ):
            raise ValueError(
                "forecast history thresholds must satisfy min < ema < regression"
            )
        return self

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
