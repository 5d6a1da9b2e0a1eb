"""
Configuration Management for the Cash-Flow Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Engine constants (launch month, generation horizon, due-soon window)
live next to the storage backend settings so every tunable is visible
in one place and validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class EngineSettings(BaseSettings):
    """Ledger engine tunables."""

    model_config = SettingsConfigDict(
        env_prefix="CASHFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    min_supported_month: str = Field(
        default="2026-01",
        pattern=MONTH_PATTERN,
        description="Months at or before this one are seeded manually (no automatic rollover)"
    )
    generation_horizon_months: int = Field(
        default=2,
        ge=1,
        le=12,
        description="How many calendar months (starting with the current) the generator fills"
    )
    due_soon_days: int = Field(
        default=7,
        ge=0,
        le=60,
        description="Window in days for the due-soon set"
    )
    top_categories_limit: int = Field(
        default=3,
        ge=1,
        description="How many expense categories to report"
    )
    default_category: str = Field(
        default="Other",
        min_length=1,
        description="Bucket for transactions without a category"
    )
    default_card_due_day: int = Field(
        default=10,
        ge=1,
        le=31,
        description="Invoice due day used when a card record lacks one"
    )
    default_card_closing_day: int = Field(
        default=1,
        ge=1,
        le=31,
        description="Closing day used when a card record lacks one"
    )


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

    # Worksheet names within the spreadsheet
    ledgers_sheet_name: str = Field(default="Ledgers")
    cards_sheet_name: str = Field(default="Cards")
    transactions_sheet_name: str = Field(default="Transactions")
    recurrences_sheet_name: str = Field(default="Recurrences")
    debt_contracts_sheet_name: str = Field(default="DebtContracts")
    opening_balances_sheet_name: str = Field(default="OpeningBalances")
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

    # Loaded lazily so the engine runs without storage credentials

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()


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
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.engine
        results["engine"] = True
    except Exception as e:
        results["engine"] = False
        results["engine_error"] = str(e)

    try:
        _ = settings.google_sheets
        results["google_sheets"] = True
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    return results
