"""Configuration loader."""

from functools import lru_cache

from pydantic import ValidationError

from fhir_bundle_validator.config.base import Settings
from fhir_bundle_validator.core.exceptions import ConfigurationError


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Raises:
        ConfigurationError: If an environment value is invalid
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid validator settings: {e}") from e
