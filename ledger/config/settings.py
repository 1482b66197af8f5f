"""
Configuration Management for Budget Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SpendScope(str, Enum):
    """
    Period over which already-spent amounts are summed
    during the admission check.

    The same scope applies to bulk and single-transaction adds.
    """
    LIFETIME = "lifetime"  # Everything ever spent in the category
    MONTH = "month"        # Calendar month of the transaction's date


class StorageBackend(str, Enum):
    """Which store implementation backs the ledger."""
    MEMORY = "memory"
    GOOGLE_SHEETS = "google_sheets"


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    budgets_sheet_name: str = Field(
        default="Budgets",
        description="Name of the sheet for category budgets"
    )
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for committed transactions"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class LedgerSettings(BaseSettings):
    """
    Tuning for the ingestion engine and the summary aggregator.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    storage_backend: StorageBackend = Field(
        default=StorageBackend.MEMORY,
        description="Store implementation to use"
    )

    # Bulk ingestion
    bulk_worker_count: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Default number of concurrent bulk workers"
    )
    spend_scope: SpendScope = Field(
        default=SpendScope.MONTH,
        description="Period used to compute already-spent amounts"
    )
    serialize_admissions: bool = Field(
        default=False,
        description=(
            "Hold a per-category lock across admission check and commit. "
            "Off reproduces the unserialized check-then-act behaviour."
        )
    )

    # Summary cache
    summary_cache_ttl_seconds: int = Field(
        default=30,
        ge=1,
        description="Time-to-live of cached report summaries"
    )
    summary_cache_prefix: str = Field(
        default="report:summary",
        min_length=1,
        description="Key prefix for cached report summaries"
    )
    dedupe_inflight_summaries: bool = Field(
        default=False,
        description="Share one computation between concurrent identical summary misses"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Google Sheets is only checked when it is the selected backend.
    """
    results = {}

    settings = get_settings()

    try:
        ledger_settings = settings.ledger
        results["ledger"] = True
    except Exception as e:
        ledger_settings = None
        results["ledger"] = False
        results["ledger_error"] = str(e)

    if ledger_settings and ledger_settings.storage_backend == StorageBackend.GOOGLE_SHEETS:
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except Exception as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
