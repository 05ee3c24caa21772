"""Validation request and result models."""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from fhir_bundle_validator.models.domain import DomainDefinition
from fhir_bundle_validator.models.errors import ValidationError
from fhir_bundle_validator.models.rules import RuleSet

ReferencePolicy = Literal["InBundleOnly", "AllowExternal"]
ValidationMode = Literal["fast", "debug"]


class ValidationSettings(BaseModel):
    """Per-request validation settings."""

    model_config = ConfigDict(populate_by_name=True)

    reference_resolution_policy: Optional[ReferencePolicy] = Field(
        default=None, alias="referenceResolutionPolicy"
    )


class ValidationRequest(BaseModel):
    """Input to one validation run.

    Unset fields fall back to the settings defaults.
    """

    model_config = ConfigDict(populate_by_name=True)

    bundle_json: Optional[str] = Field(default=None, alias="bundleJson")
    fhir_version: Optional[str] = Field(default=None, alias="fhirVersion")
    rules: Optional[RuleSet] = None
    code_master: Optional[DomainDefinition] = Field(default=None, alias="codeMaster")
    validation_mode: Optional[ValidationMode] = Field(
        default=None, alias="validationMode"
    )
    validation_settings: ValidationSettings = Field(
        default_factory=ValidationSettings, alias="validationSettings"
    )


class ValidationSummary(BaseModel):
    """Counts of the returned errors."""

    model_config = ConfigDict(populate_by_name=True)

    total_errors: int = Field(default=0, alias="totalErrors")
    error_count: int = Field(default=0, alias="errorCount")
    warning_count: int = Field(default=0, alias="warningCount")
    info_count: int = Field(default=0, alias="infoCount")
    by_source: Dict[str, int] = Field(default_factory=dict, alias="bySource")


class ValidationMetadata(BaseModel):
    """Run metadata."""

    model_config = ConfigDict(populate_by_name=True)

    fhir_version: str = Field(alias="fhirVersion")
    validation_mode: str = Field(alias="validationMode")
    processing_time_ms: int = Field(default=0, alias="processingTimeMs")
    timestamp: datetime


class ValidationResult(BaseModel):
    """Outcome of one validation run."""

    model_config = ConfigDict(populate_by_name=True)

    errors: List[ValidationError] = Field(default_factory=list)
    summary: ValidationSummary = Field(default_factory=ValidationSummary)
    metadata: ValidationMetadata

    @property
    def is_valid(self) -> bool:
        """True when no error-severity entries were reported."""
        return self.summary.error_count == 0
