"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_llm_settings() -> "LLMSettings":
    """Build LLM settings from environment.

    Static type checkers treat required fields as constructor arguments,
    which is not how BaseSettings is meant to be used.
    """

    return LLMSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    return AppSettings()  # type: ignore[call-arg]


def _build_db_settings() -> "DatabaseSettings":
    return DatabaseSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class LLMSettings(BaseSettings):
    """LLM provider configuration.

    Validation of provider-specific requirements happens in the factory.
    """

    provider: str = Field(
        "openai",
        description="LLM provider name (e.g., openai)",
    )
    model: str = Field(
        "gpt-4o-mini",
        description="Model name used for zine generation",
    )
    api_key: str | None = Field(
        None,
        description="API key for cloud providers (required for OpenAI)",
    )
    base_url: str | None = Field(
        None,
        description="Custom API endpoint",
    )
    timeout_seconds: float = Field(
        30.0,
        description="Request timeout in seconds",
    )
    temperature: float = Field(
        0.8,
        description="Sampling temperature for zine copy",
        ge=0.0,
        le=2.0,
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description=(
            "Whether the authenticated-subject header must be vouched for by a "
            "valid X-API-Key (and whether admin routes require one)"
        ),
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for trusted callers",
    )
    subject_header: str = Field(
        "X-User-Id",
        description="Header carrying the authenticated subject id set by the auth proxy",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable tiered rate limiting on zine generation",
    )
    rate_limit_anonymous_requests: int = Field(
        2,
        description="Requests allowed per window for anonymous callers",
        ge=1,
    )
    rate_limit_anonymous_window_seconds: int = Field(
        60 * 60,
        description="Window length for anonymous callers",
        ge=1,
    )
    rate_limit_authenticated_requests: int = Field(
        10,
        description="Requests allowed per window for signed-in callers",
        ge=1,
    )
    rate_limit_authenticated_window_seconds: int = Field(
        24 * 60 * 60,
        description="Window length for signed-in callers",
        ge=1,
    )
    rate_limit_store_timeout_seconds: float = Field(
        2.0,
        description="Upper bound for a single counter store call before falling back",
        gt=0,
    )
    rate_limit_retention_seconds: int = Field(
        24 * 60 * 60,
        description="How long expired windows are kept before the cleanup sweep deletes them",
        ge=0,
    )
    rate_limit_fallback_sweep_seconds: int = Field(
        5 * 60,
        description="Minimum interval between sweeps of the in-process fallback counter",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers on gated responses",
    )

    session_cookie_name: str = Field(
        "anyzine_session",
        description="Cookie carrying the anonymous session id",
    )
    session_cookie_max_age_seconds: int = Field(
        30 * 24 * 60 * 60,
        description="Lifetime of the anonymous session cookie",
        ge=60,
    )
    session_cookie_secure: bool | None = Field(
        None,
        description="Force the Secure cookie attribute; defaults to true in production",
    )
    migration_guard_ttl_seconds: int = Field(
        24 * 60 * 60,
        description="How long a sign-in's migration attempt is remembered without a sign-out",
        ge=1,
    )

    min_subject_chars: int = Field(
        2,
        description="Minimum zine subject length",
        ge=1,
    )
    max_subject_chars: int = Field(
        200,
        description="Maximum zine subject length",
        ge=1,
    )
    zine_cache_ttl_seconds: int = Field(
        60 * 60,
        description="How long generated zines are cached per subject",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class DatabaseSettings(BaseSettings):
    """Counter store connection settings."""

    url: str = Field(
        "sqlite+aiosqlite:///./anyzine.db",
        description="Async SQLAlchemy URL for the counter store",
    )
    echo: bool = Field(
        False,
        description="Echo SQL statements (debugging only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    llm: LLMSettings = Field(default_factory=_build_llm_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    db: DatabaseSettings = Field(default_factory=_build_db_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


# Nested settings are created via default_factory so env loading works.
settings = Settings()
