"""
Configuration Management for Group Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The split calculator and balance aggregator take their defaults
(precision, rounding strategy, tolerances, strictness) from these settings
so that every entry point agrees on the same policy.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ROUNDING_STRATEGIES = ("distribute", "largest", "smallest")


class LedgerSettings(BaseSettings):
    """Split calculation, balance aggregation and fetch configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Split calculator defaults
    default_precision: int = Field(
        default=2,
        ge=0,
        le=8,
        description="Decimal places split amounts are rounded to"
    )
    default_rounding_strategy: str = Field(
        default="distribute",
        description="How rounding remainders are assigned (distribute/largest/smallest)"
    )
    split_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Allowed difference between split sum and expense amount"
    )
    custom_amount_tolerance: Decimal = Field(
        default=Decimal("0.001"),
        ge=0,
        description="Custom amounts within this of the total are used verbatim"
    )

    # Balance aggregation
    strict_member_references: bool = Field(
        default=True,
        description="Raise on splits/settlements that reference non-members"
    )

    # Fetching full group history from storage
    fetch_page_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Records requested per page when materializing history"
    )
    fetch_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per page on storage connection errors"
    )
    fetch_retry_min_wait_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Minimum backoff between fetch retries"
    )
    fetch_retry_max_wait_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="Maximum backoff between fetch retries"
    )

    # Balance cache
    balance_cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        description="How long computed group balances stay cached"
    )
    balance_cache_max_size: int = Field(
        default=50,
        ge=1,
        description="Maximum number of groups with cached balances"
    )

    # Validation thresholds
    future_date_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="How many days in the future an expense date can be"
    )
    max_expense_amount: Decimal = Field(
        default=Decimal("1000000"),
        gt=0,
        description="Maximum reasonable expense amount (for sanity checking)"
    )

    @field_validator('default_rounding_strategy')
    @classmethod
    def validate_rounding_strategy(cls, v: str) -> str:
        """Only allow the known remainder strategies."""
        v = v.strip().lower()
        if v not in ROUNDING_STRATEGIES:
            raise ValueError(
                f"Unsupported rounding strategy: {v}. Allowed: {ROUNDING_STRATEGIES}"
            )
        return v


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

    # Display
    display_currency: str = Field(
        default="INR",
        min_length=3,
        max_length=3,
        description="ISO currency code used when formatting amounts"
    )

    @field_validator('display_currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


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
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.ledger
        results["ledger"] = True
    except Exception as e:
        results["ledger"] = False
        results["ledger_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
