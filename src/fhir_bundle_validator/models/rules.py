"""Business rule definitions."""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fhir_bundle_validator.models.instance_scope import (
    AllInstances,
    FilteredInstances,
    FirstInstance,
    parse_instance_scope,
)


class RuleType(str, Enum):
    """Supported business rule types."""

    REQUIRED = "Required"
    FIXED_VALUE = "FixedValue"
    ALLOWED_VALUES = "AllowedValues"
    REGEX = "Regex"
    PATTERN = "Pattern"  # alias of Regex
    ARRAY_LENGTH = "ArrayLength"
    CODE_SYSTEM = "CodeSystem"
    CUSTOM_FHIRPATH = "CustomFHIRPath"
    UNSUPPORTED = "Unsupported"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "RuleType":
        """Map a rule type string to its variant, case-insensitively."""
        if raw:
            wanted = raw.strip().lower()
            for member in cls:
                if member is not cls.UNSUPPORTED and member.value.lower() == wanted:
                    return member
        return cls.UNSUPPORTED


class ValidationClass(str, Enum):
    """How authoritative a rule is."""

    CONTRACT = "Contract"  # agreed interface contract, never downgraded
    STRUCTURAL = "Structural"  # shape guarantees, never downgraded
    ADVISORY = "Advisory"  # guidance, may be downgraded


Scope = Union[AllInstances, FirstInstance, FilteredInstances]


class RuleDefinition(BaseModel):
    """A single project rule applied to one resource type."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    type: str
    resource_type: str = Field(alias="resourceType")
    field_path: str = Field(default="", alias="fieldPath")
    instance_scope: Scope = Field(default_factory=AllInstances, alias="instanceScope")
    severity: str = "error"
    validation_class: ValidationClass = Field(
        default=ValidationClass.ADVISORY, alias="validationClass"
    )
    error_code: Optional[str] = Field(default=None, alias="errorCode")
    user_hint: Optional[str] = Field(default=None, alias="userHint")
    params: Dict[str, Any] = Field(default_factory=dict)
    is_heuristic: bool = Field(default=False, alias="isHeuristic")
    is_spec_hint: bool = Field(default=False, alias="isSpecHint")

    @field_validator("instance_scope", mode="before")
    @classmethod
    def coerce_instance_scope(cls, v: Any) -> Any:
        """Accept shorthand scope strings and missing values."""
        return parse_instance_scope(v)

    @field_validator("severity")
    @classmethod
    def normalize_severity(cls, v: str) -> str:
        """Severities are compared lowercase."""
        return (v or "error").strip().lower()

    @property
    def rule_type(self) -> RuleType:
        """Parsed rule type variant."""
        return RuleType.parse(self.type)


class RuleSet(BaseModel):
    """A versioned collection of project rules."""

    model_config = ConfigDict(populate_by_name=True)

    version: str = "1.0"
    project: Optional[str] = None
    fhir_version: str = Field(default="R4", alias="fhirVersion")
    rules: List[RuleDefinition] = Field(default_factory=list)
