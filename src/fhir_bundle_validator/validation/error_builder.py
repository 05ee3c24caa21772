"""Unified error model builder.

Converts each layer's native issues into ``ValidationError`` records,
resolves their JSON pointers, removes duplicates and orders the result.
"""

import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fhir_bundle_validator.models.errors import (
    DomainIssue,
    ErrorSource,
    LintIssue,
    ReferenceIssue,
    RuleViolation,
    SpecHintIssue,
    StageFailure,
    StructuralIssue,
    ValidationError,
)
from fhir_bundle_validator.navigation.navigator import PathNavigator
from fhir_bundle_validator.utils.logging import get_logger
from fhir_bundle_validator.validation import error_codes
from fhir_bundle_validator.validation.severity import SeverityResolver

logger = get_logger(__name__)

_SEGMENT_SPLIT_RE = re.compile(r"[.\[\]()]")
_ENTRY_POINTER_RE = re.compile(r"^/entry/(\d+)(/|$)")

# Failures of these stages never make a Bundle invalid.
_ADVISORY_STAGES = (ErrorSource.LINT, ErrorSource.SPEC_HINT)


def map_severity(severity: Optional[str]) -> str:
    """Map any layer's severity name to error, warning or info."""
    value = (severity or "").strip().lower()
    if value in ("fatal", "error"):
        return "error"
    if value == "warning":
        return "warning"
    if value in ("information", "info"):
        return "info"
    return "error"


def extract_resource_type(location: Optional[str]) -> Optional[str]:
    """First capitalized, non-Bundle segment of a location expression."""
    if not location:
        return None
    for segment in _SEGMENT_SPLIT_RE.split(location):
        if segment and segment[0].isupper() and segment != "Bundle" and "/" not in segment:
            return segment
    return None


class ErrorModelBuilder:
    """Builds the canonical error list for a validation run."""

    def __init__(
        self,
        navigator: Optional[PathNavigator] = None,
        severity_resolver: Optional[SeverityResolver] = None,
    ):
        """Initialize builder.

        Args:
            navigator: Navigator used to resolve pointers
            severity_resolver: Resolver for business rule severities
        """
        self.navigator = navigator or PathNavigator()
        self.severity_resolver = severity_resolver or SeverityResolver()

    def from_lint_issues(self, issues: Iterable[LintIssue]) -> List[ValidationError]:
        """Convert advisory lint issues."""
        errors = []
        for issue in issues:
            details: Dict[str, Any] = dict(issue.details)
            details.update(
                {
                    "ruleId": issue.rule_id,
                    "category": issue.category,
                    "confidence": issue.confidence,
                    "title": issue.title,
                    "disclaimer": issue.disclaimer,
                }
            )
            errors.append(
                ValidationError(
                    source=ErrorSource.LINT,
                    severity=map_severity(issue.severity),
                    resource_type=issue.resource_type,
                    path=issue.fhir_path,
                    json_pointer=issue.json_pointer,
                    error_code=issue.rule_id,
                    message=issue.message,
                    details=details,
                    explanation=issue.description,
                )
            )
        return errors

    def from_spec_hint_issues(self, issues: Iterable[SpecHintIssue]) -> List[ValidationError]:
        """Convert missing-required-element hints; pointers are already exact."""
        errors = []
        for issue in issues:
            details: Dict[str, Any] = {
                "isConditional": issue.condition is not None,
                "appliesToEach": issue.applies_to_each,
            }
            if issue.condition is not None:
                details["condition"] = issue.condition
            if issue.entry_index is not None:
                details["entryIndex"] = issue.entry_index
            if issue.resource_id:
                details["resourceId"] = issue.resource_id
            errors.append(
                ValidationError(
                    source=ErrorSource.SPEC_HINT,
                    severity=map_severity(issue.severity),
                    resource_type=issue.resource_type,
                    path=issue.path,
                    json_pointer=issue.json_pointer,
                    error_code=error_codes.MISSING_REQUIRED_FIELD,
                    message=issue.reason,
                    details=details,
                    explanation=error_codes.default_message(
                        error_codes.MISSING_REQUIRED_FIELD
                    ),
                )
            )
        return errors

    def from_structural_issues(
        self, issues: Iterable[StructuralIssue], tree: Any
    ) -> List[ValidationError]:
        """Convert structural conformance issues, resolving their locations."""
        errors = []
        for issue in issues:
            resource_type = extract_resource_type(issue.location) or _entry_type(
                tree, issue.entry_index
            )
            pointer = None
            if issue.location:
                pointer = self.navigator.resolve(
                    tree, issue.location, resource_type, issue.entry_index
                )
            details = dict(issue.details)
            if issue.entry_index is not None:
                details["entryIndex"] = issue.entry_index
            errors.append(
                ValidationError(
                    source=ErrorSource.STRUCTURE,
                    severity=map_severity(issue.severity),
                    resource_type=resource_type,
                    path=issue.location,
                    json_pointer=pointer,
                    error_code=issue.code,
                    message=issue.message,
                    details=details,
                )
            )
        return errors

    def from_rule_violations(
        self, violations: Iterable[RuleViolation], tree: Any
    ) -> List[ValidationError]:
        """Convert business rule violations and apply severity resolution."""
        errors = []
        for violation in violations:
            pointer = violation.json_pointer
            if pointer is None and violation.entry_index is not None and violation.field_path:
                pointer = self.navigator.resolve(
                    tree,
                    violation.field_path,
                    violation.resource_type,
                    violation.entry_index,
                )
            severity, downgrade_reason = self.severity_resolver.resolve(
                violation.severity,
                violation.validation_class,
                is_heuristic=violation.is_heuristic,
                is_spec_hint=violation.is_spec_hint,
            )
            details = dict(violation.details)
            if violation.entry_index is not None:
                details["entryIndex"] = violation.entry_index
            if violation.resource_id:
                details["resourceId"] = violation.resource_id
            explanation = details.get("explanation")
            errors.append(
                ValidationError(
                    source=ErrorSource.BUSINESS,
                    severity=map_severity(severity),
                    configured_severity=violation.severity,
                    validation_class=violation.validation_class,
                    downgrade_reason=downgrade_reason,
                    resource_type=violation.resource_type,
                    path=_qualified_path(violation.resource_type, violation.field_path),
                    json_pointer=pointer,
                    error_code=violation.error_code,
                    message=violation.user_hint
                    or explanation
                    or error_codes.default_message(violation.error_code),
                    details=details,
                    explanation=explanation,
                )
            )
        return errors

    def from_domain_issues(
        self, issues: Iterable[DomainIssue], tree: Any
    ) -> List[ValidationError]:
        """Convert screening domain issues."""
        errors = []
        for issue in issues:
            pointer = self.navigator.resolve(
                tree, issue.path, issue.resource_type, issue.entry_index
            )
            details = dict(issue.details)
            if issue.entry_index is not None:
                details["entryIndex"] = issue.entry_index
            if issue.resource_id:
                details["resourceId"] = issue.resource_id
            errors.append(
                ValidationError(
                    source=ErrorSource.DOMAIN,
                    severity=map_severity(issue.severity),
                    resource_type=issue.resource_type,
                    path=issue.path,
                    json_pointer=pointer,
                    error_code=issue.error_code,
                    message=error_codes.default_message(issue.error_code),
                    details=details,
                )
            )
        return errors

    def from_reference_issues(
        self, issues: Iterable[ReferenceIssue], tree: Any
    ) -> List[ValidationError]:
        """Convert reference integrity issues."""
        errors = []
        for issue in issues:
            pointer = self.navigator.resolve(
                tree, issue.field_path, issue.resource_type, issue.entry_index
            )
            details = dict(issue.details)
            details.setdefault("reference", issue.reference)
            if issue.entry_index is not None:
                details["entryIndex"] = issue.entry_index
            if issue.resource_id:
                details["resourceId"] = issue.resource_id
            errors.append(
                ValidationError(
                    source=ErrorSource.REFERENCE,
                    severity=map_severity(issue.severity),
                    resource_type=issue.resource_type,
                    path=issue.field_path,
                    json_pointer=pointer,
                    error_code=issue.error_code,
                    message=f"{error_codes.default_message(issue.error_code)}: "
                    f"{issue.reference}",
                    details=details,
                )
            )
        return errors

    def from_stage_failures(
        self, failures: Iterable[StageFailure]
    ) -> List[ValidationError]:
        """One error per failed stage."""
        errors = []
        for failure in failures:
            source = ErrorSource(failure.stage)
            errors.append(
                ValidationError(
                    source=source,
                    severity="warning" if source in _ADVISORY_STAGES else "error",
                    error_code=error_codes.PIPELINE_STAGE_ERROR,
                    message=f"{source.name.title()} validation failed: "
                    f"{failure.exception_message}",
                    details={
                        "stage": source.name,
                        "exceptionType": failure.exception_type,
                        "exceptionMessage": failure.exception_message,
                    },
                )
            )
        return errors

    @staticmethod
    def input_error(
        error_code: str, message: str, details: Optional[Dict[str, Any]] = None
    ) -> ValidationError:
        """Error for input that cannot be validated at all."""
        return ValidationError(
            source=ErrorSource.STRUCTURE,
            severity="error",
            resource_type="Bundle",
            path="Bundle",
            json_pointer="" if error_code == error_codes.INVALID_BUNDLE else None,
            error_code=error_code,
            message=message,
            details=details or {},
        )

    @staticmethod
    def pipeline_error(exc: Exception) -> ValidationError:
        """Error for an unexpected failure outside any stage."""
        return ValidationError(
            source=ErrorSource.PIPELINE,
            severity="error",
            error_code=error_codes.PIPELINE_ERROR,
            message=f"{error_codes.default_message(error_codes.PIPELINE_ERROR)}: {exc}",
            details={
                "exceptionType": type(exc).__name__,
                "exceptionMessage": str(exc),
            },
        )

    def build(self, errors: Iterable[ValidationError]) -> List[ValidationError]:
        """Order errors deterministically and drop duplicates.

        Errors sharing an error code and a resolved pointer are duplicates;
        the one from the earliest stage is kept. Errors without a pointer are
        compared on code, path, entry and rule instead.
        """
        ordered = sorted(errors, key=_sort_key)
        seen = set()
        result = []
        for error in ordered:
            key = _dedup_key(error)
            if key in seen:
                continue
            seen.add(key)
            result.append(error)
        dropped = len(ordered) - len(result)
        if dropped:
            logger.debug("duplicate_errors_removed", count=dropped)
        return result


def _sort_key(error: ValidationError) -> Tuple[int, int, str, str]:
    return (
        ErrorSource(error.source).stage_order,
        _entry_index(error),
        error.path or "",
        error.json_pointer or "",
    )


def _entry_index(error: ValidationError) -> int:
    """Numeric entry position; Bundle-level errors sort first."""
    index = error.details.get("entryIndex")
    if isinstance(index, int) and not isinstance(index, bool):
        return index
    match = _ENTRY_POINTER_RE.match(error.json_pointer or "")
    if match:
        return int(match.group(1))
    return -1


def _dedup_key(error: ValidationError) -> Tuple[Any, ...]:
    if error.json_pointer is not None:
        return ("pointer", error.error_code, error.json_pointer)
    return (
        "path",
        error.error_code,
        error.path,
        error.details.get("entryIndex"),
        error.details.get("ruleId"),
        error.details.get("stage"),
    )


def _qualified_path(resource_type: Optional[str], field_path: Optional[str]) -> str:
    if resource_type and field_path:
        return f"{resource_type}.{field_path}"
    return field_path or resource_type or ""


def _entry_type(tree: Any, entry_index: Optional[int]) -> Optional[str]:
    if entry_index is None or not isinstance(tree, dict):
        return None
    entries = tree.get("entry")
    if not isinstance(entries, list) or not 0 <= entry_index < len(entries):
        return None
    entry = entries[entry_index]
    resource = entry.get("resource") if isinstance(entry, dict) else None
    if isinstance(resource, dict) and isinstance(resource.get("resourceType"), str):
        return resource["resourceType"]
    return None
