"""Configuration module for the FHIR bundle validator."""

from fhir_bundle_validator.config.base import Settings
from fhir_bundle_validator.config.loader import get_settings

__all__ = ["Settings", "get_settings"]
