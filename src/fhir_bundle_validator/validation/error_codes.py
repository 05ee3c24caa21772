"""Error code catalog and user-facing explanations."""

from typing import Any, Dict, Optional

# Input shape
EMPTY_BUNDLE = "EMPTY_BUNDLE"
INVALID_JSON = "INVALID_JSON"
INVALID_BUNDLE = "INVALID_BUNDLE"

# Business rules
FIELD_REQUIRED = "FIELD_REQUIRED"
FIXED_VALUE_MISMATCH = "FIXED_VALUE_MISMATCH"
VALUE_NOT_ALLOWED = "VALUE_NOT_ALLOWED"
PATTERN_MISMATCH = "PATTERN_MISMATCH"
ARRAY_LENGTH_VIOLATION = "ARRAY_LENGTH_VIOLATION"
CODESYSTEM_VIOLATION = "CODESYSTEM_VIOLATION"
RULE_CONFIGURATION_ERROR = "RULE_CONFIGURATION_ERROR"
RULE_DEFINITION_ERROR = "RULE_DEFINITION_ERROR"

# Reference integrity
REFERENCE_NOT_FOUND = "REFERENCE_NOT_FOUND"
REFERENCE_TYPE_MISMATCH = "REFERENCE_TYPE_MISMATCH"

# Screening domain
UNKNOWN_SCREENING_TYPE = "UNKNOWN_SCREENING_TYPE"
MISSING_QUESTION_CODE = "MISSING_QUESTION_CODE"
INVALID_QUESTION_CODE = "INVALID_QUESTION_CODE"
MULTIPLE_VALUES_NOT_ALLOWED = "MULTIPLE_VALUES_NOT_ALLOWED"
INVALID_ANSWER_VALUE = "INVALID_ANSWER_VALUE"

# Structural conformance
STRUCTURE_TYPE_MISMATCH = "STRUCTURE_TYPE_MISMATCH"
STRUCTURE_REQUIRED_MISSING = "STRUCTURE_REQUIRED_MISSING"
STRUCTURE_UNKNOWN_ELEMENT = "STRUCTURE_UNKNOWN_ELEMENT"
STRUCTURE_INVALID = "STRUCTURE_INVALID"

# Spec hints
MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"

# Pipeline
PIPELINE_STAGE_ERROR = "PIPELINE_STAGE_ERROR"
PIPELINE_ERROR = "PIPELINE_ERROR"

_MESSAGES: Dict[str, str] = {
    EMPTY_BUNDLE: "Bundle is empty or contains only whitespace",
    INVALID_JSON: "Bundle is not valid JSON",
    INVALID_BUNDLE: "Input is not a FHIR Bundle",
    FIELD_REQUIRED: "Required field is missing or empty",
    FIXED_VALUE_MISMATCH: "Value does not match the required fixed value",
    VALUE_NOT_ALLOWED: "Value is not one of the allowed values",
    PATTERN_MISMATCH: "Value does not match the required pattern",
    ARRAY_LENGTH_VIOLATION: "Number of items is outside the allowed range",
    CODESYSTEM_VIOLATION: "Coding does not use the required code system",
    RULE_CONFIGURATION_ERROR: "Rule is misconfigured and was not evaluated",
    RULE_DEFINITION_ERROR: "Rule expression could not be evaluated",
    REFERENCE_NOT_FOUND: "Referenced resource was not found in the Bundle",
    REFERENCE_TYPE_MISMATCH: "Referenced resource has an unexpected type",
    UNKNOWN_SCREENING_TYPE: "Observation uses an unknown screening type",
    MISSING_QUESTION_CODE: "Screening component has no question code",
    INVALID_QUESTION_CODE: "Question code is not defined for this screening type",
    MULTIPLE_VALUES_NOT_ALLOWED: "Question accepts a single answer only",
    INVALID_ANSWER_VALUE: "Answer is not allowed for this question",
    STRUCTURE_TYPE_MISMATCH: "Element has the wrong data type",
    STRUCTURE_REQUIRED_MISSING: "Mandatory element is missing",
    STRUCTURE_UNKNOWN_ELEMENT: "Element is not defined for this resource",
    STRUCTURE_INVALID: "Resource does not conform to the FHIR structure",
    MISSING_REQUIRED_FIELD: "Element required by HL7 FHIR is missing",
    PIPELINE_STAGE_ERROR: "A validation stage failed and its results are incomplete",
    PIPELINE_ERROR: "Validation failed unexpectedly",
}


def default_message(error_code: str) -> str:
    """Generic message for an error code."""
    return _MESSAGES.get(error_code, f"Validation failed: {error_code}")


def explain(rule_type: str, error_code: str, details: Optional[Dict[str, Any]] = None) -> str:
    """Explain a business rule violation in plain words.

    Args:
        rule_type: Rule type string as declared
        error_code: Emitted error code
        details: Violation details

    Returns:
        Explanation text
    """
    details = details or {}
    kind = (rule_type or "").strip().lower()
    path = details.get("path") or "this field"

    if error_code == RULE_CONFIGURATION_ERROR:
        missing = details.get("missingParams")
        if missing:
            return (
                f"The {rule_type} rule is missing required parameter(s) "
                f"{', '.join(missing)} and was skipped."
            )
        return f"The {rule_type} rule is misconfigured and was skipped."
    if error_code == RULE_DEFINITION_ERROR:
        return (
            "The rule's expression could not be evaluated. Check its path syntax; "
            "other rules were still applied."
        )
    if kind == "required":
        return f"{path} must be present and must not be empty."
    if kind == "fixedvalue":
        return f"{path} must always be '{details.get('expected')}'."
    if kind == "allowedvalues":
        return f"{path} must be one of the allowed values."
    if kind in ("regex", "pattern"):
        return f"{path} must match the pattern {details.get('pattern')}."
    if kind == "arraylength":
        if details.get("violation") == "min":
            return f"{path} needs at least {details.get('min')} item(s)."
        return f"{path} allows at most {details.get('max')} item(s)."
    if kind == "codesystem":
        if details.get("violation") == "code":
            return (
                f"{path} uses {details.get('expectedSystem')} but with a code "
                "outside the allowed list."
            )
        return f"{path} must include a coding from {details.get('expectedSystem')}."
    if kind == "customfhirpath":
        return "The resource does not satisfy this project rule's condition."
    return default_message(error_code)
