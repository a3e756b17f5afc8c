"""Application settings with Pydantic validation and environment loading."""

from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Wheelscan API"
    app_version: str = "1.0.0"
    debug: bool = Field(
        default=False, description="Enable debug mode (disable in production)"
    )
    root_path: str = Field(default="", description="Root path for reverse proxy")
    environment: str = Field(
        default="production",
        description="Environment: development, staging, production",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./wheelscan.db",
        description="Database URL (PostgreSQL in production, SQLite locally)",
    )
    db_pool_min_size: int = Field(
        default=5, ge=1, le=20, description="Minimum database pool connections"
    )
    db_pool_max_size: int = Field(
        default=20, ge=5, le=100, description="Maximum database pool connections"
    )

    # CORS
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # Market data providers
    market_data_provider: str = Field(
        default="mock", description="Quote/history provider: mock or yfinance"
    )
    options_data_provider: str = Field(
        default="mock", description="Options chain provider: mock or financialdata"
    )
    financial_data_api_key: str = Field(
        default="", description="FinancialData.net API key for live option chains"
    )
    financial_data_base_url: str = Field(
        default="https://financialdata.net/api/v1",
        description="FinancialData.net API base URL",
    )

    # Shared external API budget
    provider_request_interval_seconds: float = Field(
        default=12.0, ge=0, description="Fixed drain interval between upstream requests"
    )
    provider_requests_per_minute: int = Field(
        default=5, ge=1, description="Upstream requests allowed per rolling minute"
    )
    provider_daily_budget: int = Field(
        default=500, ge=1, description="Upstream requests allowed per day"
    )

    # External API timeouts
    external_api_timeout: int = Field(
        default=30, ge=5, le=120, description="External API timeout in seconds"
    )

    # Price freshness
    price_refresh_cooldown_hours: float = Field(
        default=4.0, gt=0, description="Minimum hours between refreshes while the market is open"
    )

    # Watchlist
    watchlist_max_tickers: int = Field(
        default=50, ge=1, le=500, description="Soft cap on tickers per watchlist"
    )

    # Scanner
    scan_max_workers: int = Field(
        default=4, ge=1, le=32, description="Worker threads for phase evaluation"
    )
    scan_timeout_seconds: int = Field(
        default=60 * 30, ge=10, description="Overall timeout for a scan run"
    )
    scan_guard_ttl_seconds: int = Field(
        default=60 * 35, ge=1, description="TTL of the per-owner scan-in-progress guard"
    )

    # Scheduler
    scheduler_enabled: bool = Field(
        default=True, description="Enable background job scheduler"
    )
    scheduler_timezone: str = Field(
        default="America/New_York", description="Scheduler timezone"
    )
    scan_schedule_cron: str = Field(
        default="30 16 * * 1-5", description="Cron expression for the after-close scan"
    )

    # Logging
    log_level: str = Field(
        default="INFO", description="Log level: DEBUG, INFO, WARNING, ERROR"
    )
    log_format: str = Field(default="json", description="Log format: json or text")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("market_data_provider")
    @classmethod
    def validate_market_data_provider(cls, v: str) -> str:
        valid = {"mock", "yfinance"}
        lower = v.strip().lower()
        if lower not in valid:
            raise ValueError(f"market_data_provider must be one of {valid}")
        return lower

    @field_validator("options_data_provider")
    @classmethod
    def validate_options_data_provider(cls, v: str) -> str:
        valid = {"mock", "financialdata"}
        lower = v.strip().lower()
        if lower not in valid:
            raise ValueError(f"options_data_provider must be one of {valid}")
        return lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return upper

    @model_validator(mode="after")
    def validate_scan_guard_ttl(self) -> "Settings":
        # A live run must never outlast its own guard
        if self.scan_guard_ttl_seconds < self.scan_timeout_seconds:
            raise ValueError("scan_guard_ttl_seconds must be at least scan_timeout_seconds")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Cached settings factory."""
    return Settings()


settings = get_settings()
