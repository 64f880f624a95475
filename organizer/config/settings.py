"""
Configuration Management for Couple Organizer

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here, so every external dependency
(data platform, AI gateway, OAuth/calendar) is visible in one place and
validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SupabaseSettings(BaseSettings):
    """Hosted database / realtime / storage platform configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Project URL (https://<ref>.supabase.co)"
    )
    key: str = Field(
        ...,
        description="Anon or service key"
    )
    schema_name: str = Field(
        default="public",
        description="Database schema the tables live in"
    )

    # Storage
    trip_gallery_bucket: str = Field(
        default="trip-images",
        description="Bucket for travel gallery photos"
    )

    # Audit trail
    audit_table: str = Field(
        default="audit_events",
        description="Append-only table for persisted audit events"
    )

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Default sampling temperature"
    )

    # Transient failure handling
    max_attempts: int = Field(
        default=2,
        ge=1,
        le=5,
        description="Total attempts for a call that fails with a transient server error"
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=10.0,
        description="Fixed delay between attempts"
    )


class GoogleOAuthSettings(BaseSettings):
    """Delegated Google credential (sign-in + calendar) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_OAUTH_",
        extra="ignore"
    )

    client_id: str = Field(
        ...,
        description="OAuth client id"
    )
    client_secret: str = Field(
        ...,
        description="OAuth client secret"
    )
    redirect_uri: str = Field(
        default="http://localhost:8501",
        description="Where Google sends the user back after consent"
    )
    scopes: str = Field(
        default=(
            "https://www.googleapis.com/auth/calendar.events "
            "https://www.googleapis.com/auth/userinfo.email "
            "https://www.googleapis.com/auth/userinfo.profile"
        ),
        description="Space-separated OAuth scopes"
    )
    calendar_id: str = Field(
        default="primary",
        description="Calendar that receives recurring expense events"
    )
    request_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout for OAuth and Calendar REST calls"
    )

    @property
    def scopes_list(self) -> list[str]:
        return self.scopes.split()


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

    # Durable client storage
    session_dir: str = Field(
        default=".organizer/sessions",
        description="One file per browser client with its profile and bearer token"
    )
    default_view: str = Field(
        default="dashboard",
        description="View shown right after sign-in"
    )

    # AI helpers
    autocomplete_debounce_seconds: float = Field(
        default=0.25,
        ge=0.0,
        le=5.0,
        description="Quiet period before an autocomplete request is sent"
    )
    autocomplete_min_length: int = Field(
        default=3,
        ge=1,
        description="Shortest query that triggers autocomplete"
    )
    recommendation_history_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="How many past recommender searches are remembered"
    )

    @property
    def session_path(self) -> Path:
        return Path(self.session_dir).expanduser()


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
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def google_oauth(self) -> GoogleOAuthSettings:
        return GoogleOAuthSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool | str]:
    """
    Validate all settings are properly configured.

    Returns a dict of {section: is_valid} plus {section_error: message}
    for every section that failed. Useful for startup checks.
    """
    results: dict[str, bool | str] = {}
    settings = get_settings()

    sections = {
        "supabase": lambda: settings.supabase,
        "gemini": lambda: settings.gemini,
        "google_oauth": lambda: settings.google_oauth,
        "app": lambda: settings.app,
    }

    for name, load in sections.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
