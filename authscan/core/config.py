"""
AuthScan Configuration Management

Centralized configuration with validation, environment variable support,
and sensible defaults for the scan orchestration client.
"""

from typing import Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings with validation and defaults."""

    model_config = SettingsConfigDict(
        env_prefix="AUTHSCAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================
    app_name: str = Field(default="AuthScan", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment (development, staging, production, test)")

    # ==========================================================================
    # SCAN BACKEND
    # ==========================================================================
    api_base_url: str = Field(
        default="http://localhost:3001",
        description="Origin of the scan backend"
    )
    api_prefix: str = Field(default="/api/zap-auth", description="Path prefix of the authenticated-scan routes")
    api_token: str = Field(default="", description="Token sent as x-auth-token")
    request_timeout: float = Field(default=30.0, description="Per-request timeout in seconds")

    # ==========================================================================
    # POLLING
    # ==========================================================================
    poll_interval: float = Field(default=3.0, description="Seconds between status requests")
    poll_max_attempts: Optional[int] = Field(
        default=None,
        description="Maximum status requests per scan (None = poll until the backend reports a terminal status)"
    )

    # ==========================================================================
    # STORAGE
    # ==========================================================================
    session_store_path: str = Field(
        default="~/.authscan/active_scan.json",
        description="File holding the active scan record"
    )

    # ==========================================================================
    # OBSERVABILITY
    # ==========================================================================
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format (json, text)")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================
    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production", "test"]
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v

    @field_validator("poll_interval", "request_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("poll_max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("poll_max_attempts must be at least 1 when set")
        return v

    # ==========================================================================
    # PROPERTIES
    # ==========================================================================
    @property
    def api_url(self) -> str:
        """Base URL of the authenticated-scan routes."""
        return self.api_base_url.rstrip("/") + "/" + self.api_prefix.strip("/")

    @property
    def session_store_file(self) -> Path:
        return Path(self.session_store_path).expanduser()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
