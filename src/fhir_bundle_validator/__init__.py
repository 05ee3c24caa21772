"""FHIR Bundle Validator.

Validates FHIR R4 Bundles against structural conformance, project business
rules, screening code masters and reference integrity, and reports every
finding with an exact JSON pointer into the submitted document.
"""

from fhir_bundle_validator.models.request import (
    ValidationRequest,
    ValidationResult,
    ValidationSettings,
)
from fhir_bundle_validator.utils.logging import setup_logging
from fhir_bundle_validator.validation.pipeline import ValidationPipeline

__version__ = "0.1.0"

__all__ = [
    "ValidationPipeline",
    "ValidationRequest",
    "ValidationResult",
    "ValidationSettings",
    "setup_logging",
]
