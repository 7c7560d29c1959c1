"""
Configuration Management for Chat Bookkeeper

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All tunables (matching thresholds, retry policy, storage
locations) live here. Components receive them through their constructors,
so nothing in the pipeline reads module-level state while a message is
being processed.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ResolverSettings(BaseSettings):
    """Subject matching configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RESOLVER_",
        extra="ignore"
    )

    fuzzy_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum edit-distance similarity for a fuzzy match"
    )
    preference_confidence: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Confidence reported for a learned preference hit"
    )
    compound_min_term_length: int = Field(
        default=2,
        ge=1,
        description="Shortest name/synonym considered for containment matching"
    )
    compound_name_cap: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Score cap when the input contains a subject name"
    )
    compound_synonym_cap: float = Field(
        default=0.95,
        ge=0.0,
        le=1.0,
        description="Score cap when the input contains a synonym"
    )


class DispatchSettings(BaseSettings):
    """Retry and learning behaviour of the dispatch orchestrator."""

    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_",
        extra="ignore"
    )

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts (first try included) for retryable failures"
    )
    base_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Delay before the first retry; doubles on every retry"
    )
    learn_preferences: bool = Field(
        default=True,
        description="Record typed terms in the preference store on success"
    )
    learn_synonyms: bool = Field(
        default=True,
        description="Append compound/fuzzy matched terms as synonyms on success"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets ledger configuration."""

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
    entries_sheet_name: str = Field(
        default="Entries",
        description="Name of the sheet for ledger entries"
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
    timezone: str = Field(
        default="Asia/Taipei",
        description="Timezone used when showing entry times to the user"
    )

    # Ledger scoping
    ledger_id_template: str = Field(
        default="user_{user_id}",
        description="Template deriving a user's ledger id from the user id"
    )

    # User classification
    manager_user_ids: str = Field(
        default="",
        description="Comma-separated user ids classified as managers (M)"
    )
    system_user_prefix: str = Field(
        default="SYSTEM_",
        description="User ids starting with this prefix are system users (S)"
    )

    @model_validator(mode='after')
    def validate_ledger_template(self) -> 'AppSettings':
        """The ledger template must reference the user id."""
        if "{user_id}" not in self.ledger_id_template:
            raise ValueError("ledger_id_template must contain '{user_id}'")
        return self

    @property
    def manager_ids_list(self) -> list[str]:
        """Get manager ids as a list."""
        return [uid.strip() for uid in self.manager_user_ids.split(",") if uid.strip()]


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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def resolver(self) -> ResolverSettings:
        return ResolverSettings()

    @property
    def dispatch(self) -> DispatchSettings:
        return DispatchSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

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

    for name in ("resolver", "dispatch", "google_sheets", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
