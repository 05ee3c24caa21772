"""Error and issue models.

Every validation layer reports in its own native shape (``LintIssue``,
``SpecHintIssue``, ``StructuralIssue``, ``RuleViolation``, ``DomainIssue``,
``ReferenceIssue``).
The error model builder turns all of them into the canonical
``ValidationError``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorSource(str, Enum):
    """Layer that produced an error."""

    LINT = "LINT"
    SPEC_HINT = "SPEC_HINT"
    STRUCTURE = "FHIR"
    BUSINESS = "Business"
    DOMAIN = "CodeMaster"
    REFERENCE = "Reference"
    PIPELINE = "Pipeline"

    @property
    def stage_order(self) -> int:
        """Position of the layer in the pipeline, used for ordering."""
        return _STAGE_ORDER[self]


_STAGE_ORDER = {
    ErrorSource.LINT: 0,
    ErrorSource.SPEC_HINT: 1,
    ErrorSource.STRUCTURE: 2,
    ErrorSource.BUSINESS: 3,
    ErrorSource.DOMAIN: 4,
    ErrorSource.REFERENCE: 5,
    ErrorSource.PIPELINE: 6,
}


class Severity(str, Enum):
    """Canonical severities."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ValidationError(BaseModel):
    """Canonical validation error returned to callers."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    source: ErrorSource
    severity: Severity
    configured_severity: Optional[str] = Field(default=None, alias="configuredSeverity")
    validation_class: Optional[str] = Field(default=None, alias="validationClass")
    downgrade_reason: Optional[str] = Field(default=None, alias="downgradeReason")
    resource_type: Optional[str] = Field(default=None, alias="resourceType")
    path: Optional[str] = None
    json_pointer: Optional[str] = Field(default=None, alias="jsonPointer")
    error_code: str = Field(alias="errorCode")
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    explanation: Optional[str] = None


@dataclass
class RuleViolation:
    """A business rule failure for one resource instance."""

    rule_id: str
    rule_type: str
    resource_type: str
    field_path: str
    error_code: str
    severity: str
    entry_index: Optional[int] = None
    resource_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    json_pointer: Optional[str] = None
    validation_class: Optional[str] = None
    is_heuristic: bool = False
    is_spec_hint: bool = False
    user_hint: Optional[str] = None


@dataclass
class LintIssue:
    """Best-effort shape finding produced by the linter."""

    rule_id: str
    category: str
    severity: str
    confidence: str
    title: str
    description: str
    message: str
    disclaimer: str
    resource_type: Optional[str] = None
    json_pointer: Optional[str] = None
    fhir_path: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SpecHintIssue:
    """Advisory note that an element HL7 FHIR marks as required is missing."""

    resource_type: str
    path: str
    reason: str
    severity: str = "warning"
    json_pointer: Optional[str] = None
    entry_index: Optional[int] = None
    resource_id: Optional[str] = None
    condition: Optional[str] = None
    applies_to_each: bool = False


@dataclass
class StructuralIssue:
    """Structural conformance finding from the standards validator."""

    severity: str
    code: str
    message: str
    location: Optional[str] = None
    entry_index: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReferenceIssue:
    """Dangling or mistyped reference found in a resource."""

    severity: str
    error_code: str
    resource_type: str
    field_path: str
    reference: str
    entry_index: Optional[int] = None
    resource_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DomainIssue:
    """Screening answer violation from the domain validator."""

    severity: str
    error_code: str
    resource_type: str
    path: str
    entry_index: Optional[int] = None
    resource_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StageFailure:
    """A pipeline stage that raised instead of returning issues."""

    stage: str
    exception_type: str
    exception_message: str
