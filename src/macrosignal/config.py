"""Configuration management for MACROSIGNAL.

Loads engine thresholds and runtime settings from environment variables
using Pydantic. Every field has a default, so the engine starts without a
.env file; override any value with an upper-case environment variable
(e.g. ``MIN_DRIVERS=4``).

Usage:
    from macrosignal.config import settings

    print(settings.regime_threshold)
    print(settings.log_level)
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DRIVER_KINDS = {
    "usd_bias",
    "counter_currency_bias",
    "correlation_alignment",
    "event_surprise",
}


class Settings(BaseSettings):
    """MACROSIGNAL configuration from environment variables.

    Loads from .env file automatically. Validates on instantiation.

    Attributes:
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR)
        data_dir: Directory for the Parquet observation repository
        ledger_dir: Directory holding the release and impact ledger between runs
        benchmark: Reference instrument correlations are measured against
        min_indicators: Minimum usable indicators before a regime is labelled
        regime_threshold: |score| needed for Hawkish/Dovish and Risk ON/OFF
        direction_threshold: |score| needed for a long/short bias
        min_confidence: Confidence floor below which bias is forced neutral
        min_drivers: Driver count floor below which bias is forced neutral
        driver_weights: Weight budget per bias driver kind
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown env vars
    )

    # System Settings
    log_level: str = Field(default="INFO", description="Logging level")
    data_dir: str = Field(default="data", description="Parquet repository directory")
    ledger_dir: str = Field(default="data/ledger", description="Release and impact ledger directory")
    benchmark: str = Field(default="DXY", min_length=1, description="Correlation benchmark symbol")
    max_concurrency: int = Field(default=4, ge=1, le=64, description="Max concurrent per-symbol tasks")

    # Diagnosis
    min_indicators: int = Field(
        default=3,
        ge=1,
        description="Minimum usable indicators per currency before a regime is labelled",
    )
    regime_threshold: float = Field(default=0.3, gt=0.0, le=1.0, description="Regime score threshold")
    stable_tolerance: float = Field(
        default=0.01,
        ge=0.0,
        description="Relative change below which an indicator votes 0",
    )
    quadrant_threshold: float = Field(default=0.1, ge=0.0, le=1.0, description="Macro quadrant threshold")

    # Correlation
    short_window_days: int = Field(default=63, ge=2, description="Short correlation window (trading days)")
    short_window_min_obs: int = Field(default=40, ge=2, description="Minimum aligned returns, short window")
    long_window_days: int = Field(default=252, ge=2, description="Long correlation window (trading days)")
    long_window_min_obs: int = Field(default=150, ge=2, description="Minimum aligned returns, long window")
    trend_tolerance: float = Field(default=0.1, ge=0.0, description="Correlation trend stability band")
    price_stale_days: int = Field(default=30, ge=1, description="Calendar days before a price series is stale")

    # Bias scoring
    direction_threshold: float = Field(default=0.1, ge=0.0, le=1.0, description="Bias direction threshold")
    min_confidence: float = Field(default=0.35, ge=0.0, le=1.0, description="Bias confidence floor")
    min_drivers: int = Field(default=3, ge=1, description="Bias driver count floor")
    full_conviction_score: float = Field(
        default=0.5,
        gt=0.0,
        le=1.0,
        description="|score| at which score strength saturates",
    )
    surprise_validity_hours: int = Field(default=24, ge=1, description="Event surprise driver lifetime")
    pending_release_window_hours: int = Field(
        default=24,
        ge=1,
        description="Lookback for pending releases at the start of a run",
    )
    driver_weights: dict[str, float] = Field(
        default_factory=lambda: {
            "usd_bias": 0.35,
            "counter_currency_bias": 0.30,
            "correlation_alignment": 0.15,
            "event_surprise": 0.20,
        },
        description="Weight budget per bias driver kind",
    )

    # Quality checks
    fx_rule_confidence_floor: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Below this confidence a usd_bias_fx_rule mismatch passes",
    )
    fx_sign_tolerance: float = Field(default=0.0, ge=0.0, le=1.0, description="FX correlation sign slack")
    correlation_max_age_days: int = Field(default=3, ge=0, description="Correlation freshness SLA (days)")
    stale_share_fail: float = Field(
        default=0.25,
        ge=0.0,
        le=1.0,
        description="Share of stale drivers per currency that escalates to FAIL",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid:
            raise ValueError(f"log_level must be one of {valid}, got {v}")
        return v_upper

    @field_validator("benchmark")
    @classmethod
    def validate_benchmark(cls, v: str) -> str:
        """Benchmark symbols are upper-case."""
        return v.upper()

    @field_validator("short_window_min_obs", "long_window_min_obs")
    @classmethod
    def validate_window_min_obs(cls, v: int, info) -> int:
        """Ensure a window's minimum sample fits inside the window."""
        days_field = info.field_name.replace("_min_obs", "_days")
        days = info.data.get(days_field)
        if days is not None and v > days:
            raise ValueError(f"{info.field_name} ({v}) cannot exceed {days_field} ({days})")
        return v

    @field_validator("long_window_days")
    @classmethod
    def validate_long_window(cls, v: int, info) -> int:
        """Ensure the long window is at least as long as the short window."""
        short = info.data.get("short_window_days")
        if short is not None and v < short:
            raise ValueError(f"long_window_days ({v}) must be >= short_window_days ({short})")
        return v

    @field_validator("driver_weights")
    @classmethod
    def validate_driver_weights(cls, v: dict[str, float]) -> dict[str, float]:
        """Ensure driver weights name known kinds and are non-negative."""
        unknown = set(v) - DRIVER_KINDS
        if unknown:
            raise ValueError(f"driver_weights has unknown kinds: {sorted(unknown)}")
        negative = [k for k, w in v.items() if w < 0]
        if negative:
            raise ValueError(f"driver_weights must be >= 0, got negative for {sorted(negative)}")
        return v


# Global settings instance, loaded once at import
settings = Settings()
