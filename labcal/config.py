"""
LabCal Configuration.

Pydantic Settings v2 — loads from .env, environment variables.
"""

from typing import List, Optional

from pydantic import Field, field_validator
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

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = Field(default="LabCal", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # ── API ───────────────────────────────────────────────────────────────
    api_prefix: str = Field(default="/api/v1", alias="API_PREFIX")
    allowed_origins: List[str] = Field(
        default=["http://localhost:3000"],
        alias="CORS_ORIGINS",
    )

    # ── Biomni advisory service ──────────────────────────────────────────
    biomni_base_url: str = Field(
        default="https://api.biomni.stanford.edu",
        alias="BIOMNI_BASE_URL",
    )
    biomni_api_key: str = Field(default="", alias="BIOMNI_API_KEY")
    advisory_enabled: bool = Field(
        default=True,
        alias="ADVISORY_ENABLED",
        description="Call Biomni during validation (deterministic-only if False)",
    )
    advisory_timeout_seconds: float = Field(
        default=3.0,
        alias="ADVISORY_TIMEOUT_SECONDS",
        description="Upper bound on a single advisory call before falling back",
    )
    advisory_breaker_failure_threshold: int = Field(
        default=5, alias="ADVISORY_BREAKER_FAILURE_THRESHOLD",
    )
    advisory_breaker_window_seconds: float = Field(
        default=60.0, alias="ADVISORY_BREAKER_WINDOW_SECONDS",
    )
    advisory_breaker_recovery_seconds: float = Field(
        default=30.0, alias="ADVISORY_BREAKER_RECOVERY_SECONDS",
    )

    # ── Acceptance criteria ──────────────────────────────────────────────
    criteria_file: Optional[str] = Field(
        default=None,
        alias="CRITERIA_FILE",
        description="JSON criteria table overriding the built-in defaults",
    )

    # ── Sessions ─────────────────────────────────────────────────────────
    session_retention_seconds: float = Field(
        default=3600.0,
        alias="SESSION_RETENTION_SECONDS",
        description="How long a finished, unclosed session stays readable",
    )

    # ── Operational ──────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")  # json or console

    @field_validator("advisory_timeout_seconds")
    @classmethod
    def validate_advisory_timeout(cls, v: float) -> float:
        """A zero or negative timeout would skip the advisory call entirely."""
        if v <= 0:
            raise ValueError("ADVISORY_TIMEOUT_SECONDS must be greater than 0")
        return v

    @field_validator("session_retention_seconds")
    @classmethod
    def validate_session_retention(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("SESSION_RETENTION_SECONDS must be greater than 0")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "console"):
            raise ValueError("LOG_FORMAT must be 'json' or 'console'")
        return v


settings = Settings()
