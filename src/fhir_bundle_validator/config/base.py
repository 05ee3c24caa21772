"""Base configuration settings."""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Validator settings.

    Values are read from the environment (prefixed ``FHIR_VALIDATOR_``) or a
    local ``.env`` file. Request fields always win over these defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FHIR_VALIDATOR_",
        case_sensitive=False,
        extra="allow",
    )

    # Application
    app_name: str = "FHIR Bundle Validator"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"

    # Validation defaults
    default_fhir_version: str = "R4"
    default_validation_mode: Literal["fast", "debug"] = "fast"
    default_reference_policy: Literal["InBundleOnly", "AllowExternal"] = (
        "InBundleOnly"
    )

    # Monitoring
    enable_metrics: bool = Field(
        default=True, description="Record Prometheus metrics for each run"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only json and console renderers are supported."""
        fmt = v.lower()
        if fmt not in {"json", "console"}:
            raise ValueError(f"Unknown log format: {v}")
        return fmt
