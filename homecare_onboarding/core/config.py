"""Engine configuration loaded from environment variables.

Settings for the profile API endpoint, auto-save quiet periods, and the
prescreen defaults used when the candidate's profile does not say which job
or city they applied for. Uses pydantic-settings for validation and .env file
support.
"""

from typing import Literal
from urllib.parse import urlparse

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Hosts allowed to use plain http outside development
_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Profile API
    api_base_url: str = "http://localhost:5000/api"
    api_timeout_seconds: float = 10.0

    # Auto-save quiet periods
    # Small forms settle quickly; upload-heavy steps wait longer so a burst of
    # file selections becomes a single save.
    autosave_delay_ms: int = 2000
    autosave_upload_delay_ms: int = 3000

    # Prescreen defaults (profile may not carry a job title or base city yet)
    default_job_title: str = "nurse"
    default_city: str = "Delhi NCR"

    # Application
    environment: Literal["development", "production", "testing"] = "development"
    log_level: str = "INFO"

    @property
    def api_root(self) -> str:
        """Base URL without a trailing slash."""
        return self.api_base_url.rstrip("/")

    @model_validator(mode="after")
    def check_settings(self) -> "Settings":
        """Validate cross-field requirements.

        Checks:
        - Quiet periods must be positive (all environments)
        - API timeout must be positive (all environments)
        - API URL must be http(s)
        - Production must not talk to a remote API over plain http
        """
        if self.autosave_delay_ms <= 0 or self.autosave_upload_delay_ms <= 0:
            msg = (
                "AUTOSAVE_DELAY_MS and AUTOSAVE_UPLOAD_DELAY_MS must be positive. "
                f"Got: {self.autosave_delay_ms}, {self.autosave_upload_delay_ms}"
            )
            raise ValueError(msg)

        if self.api_timeout_seconds <= 0:
            msg = f"API_TIMEOUT_SECONDS must be positive. Got: {self.api_timeout_seconds}"
            raise ValueError(msg)

        parsed = urlparse(self.api_base_url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            msg = f"API_BASE_URL must be an http(s) URL. Got: {self.api_base_url!r}"
            raise ValueError(msg)

        if (
            self.environment == "production"
            and parsed.scheme == "http"
            and parsed.hostname not in _LOCAL_HOSTS
        ):
            msg = (
                "API_BASE_URL must use https in production. "
                "Bearer tokens would otherwise travel in clear text."
            )
            raise ValueError(msg)

        return self


settings = Settings()
