"""Data models for bundles, rules, scopes, requests and errors."""

from fhir_bundle_validator.models.bundle import BundleDocument, BundleEntry
from fhir_bundle_validator.models.domain import DomainDefinition
from fhir_bundle_validator.models.errors import (
    DomainIssue,
    ErrorSource,
    LintIssue,
    ReferenceIssue,
    RuleViolation,
    Severity,
    SpecHintIssue,
    StageFailure,
    StructuralIssue,
    ValidationError,
)
from fhir_bundle_validator.models.instance_scope import (
    AllInstances,
    FilteredInstances,
    FirstInstance,
    parse_instance_scope,
)
from fhir_bundle_validator.models.request import (
    ValidationMetadata,
    ValidationRequest,
    ValidationResult,
    ValidationSettings,
    ValidationSummary,
)
from fhir_bundle_validator.models.rules import (
    RuleDefinition,
    RuleSet,
    RuleType,
    ValidationClass,
)

__all__ = [
    "AllInstances",
    "BundleDocument",
    "BundleEntry",
    "DomainDefinition",
    "DomainIssue",
    "ErrorSource",
    "FilteredInstances",
    "FirstInstance",
    "LintIssue",
    "ReferenceIssue",
    "RuleDefinition",
    "RuleSet",
    "RuleType",
    "RuleViolation",
    "Severity",
    "SpecHintIssue",
    "StageFailure",
    "StructuralIssue",
    "ValidationClass",
    "ValidationError",
    "ValidationMetadata",
    "ValidationRequest",
    "ValidationResult",
    "ValidationSettings",
    "ValidationSummary",
    "parse_instance_scope",
]
