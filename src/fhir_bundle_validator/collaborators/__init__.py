"""Validation layers the pipeline delegates to."""

from fhir_bundle_validator.collaborators.base import (
    BaseDomainValidator,
    BaseReferenceValidator,
    BaseShapeLinter,
    BaseSpecHintProvider,
    BaseStructuralValidator,
)
from fhir_bundle_validator.collaborators.domain import ScreeningDomainValidator
from fhir_bundle_validator.collaborators.lint import LINT_RULES, JsonShapeLinter
from fhir_bundle_validator.collaborators.references import BundleReferenceValidator
from fhir_bundle_validator.collaborators.spec_hints import (
    R4_SPEC_HINTS,
    CatalogSpecHintProvider,
    SpecHint,
)
from fhir_bundle_validator.collaborators.structural import FhirClientStructuralValidator

__all__ = [
    "BaseDomainValidator",
    "BaseReferenceValidator",
    "BaseShapeLinter",
    "BaseSpecHintProvider",
    "BaseStructuralValidator",
    "BundleReferenceValidator",
    "CatalogSpecHintProvider",
    "FhirClientStructuralValidator",
    "JsonShapeLinter",
    "LINT_RULES",
    "R4_SPEC_HINTS",
    "ScreeningDomainValidator",
    "SpecHint",
]
