"""Advisory hints for elements HL7 FHIR marks as required.

Hints never block: they surface as warnings in debug mode so authors see
missing mandatory elements even when the structural validator cannot parse
the Bundle. A hint may be conditional (only checked when its condition holds)
and may apply to each item of a repeating parent element.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fhir_bundle_validator.collaborators.base import BaseSpecHintProvider
from fhir_bundle_validator.models.errors import SpecHintIssue
from fhir_bundle_validator.navigation.nodes import (
    enumerate_sequence,
    escape_pointer_token,
    is_empty_value,
)
from fhir_bundle_validator.navigation.parser import (
    Condition,
    PathStep,
    parse_condition,
    parse_path,
)
from fhir_bundle_validator.navigation.predicates import collect, matches
from fhir_bundle_validator.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SpecHint:
    """One required-element hint for a resource type."""

    path: str
    reason: str
    severity: str = "warning"
    condition: Optional[str] = None
    applies_to_each: bool = False

    def __post_init__(self) -> None:
        if self.applies_to_each and "." not in self.path:
            raise ValueError(f"Per-item hint needs a parent.child path: {self.path}")


def _required(resource_type: str, path: str) -> SpecHint:
    return SpecHint(path, f"{resource_type}.{path} is required (1..1) in FHIR R4")


def _each(resource_type: str, path: str) -> SpecHint:
    parent, child = path.split(".", 1)
    return SpecHint(
        path,
        f"Each {resource_type}.{parent} must have {child} (1..1) in FHIR R4",
        condition=f"{parent}.exists()",
        applies_to_each=True,
    )


R4_SPEC_HINTS: Dict[str, List[SpecHint]] = {
    "AllergyIntolerance": [_required("AllergyIntolerance", "patient")],
    "Condition": [_required("Condition", "subject")],
    "DiagnosticReport": [
        _required("DiagnosticReport", "status"),
        _required("DiagnosticReport", "code"),
    ],
    "Encounter": [
        _required("Encounter", "status"),
        _required("Encounter", "class"),
        _each("Encounter", "statusHistory.status"),
        _each("Encounter", "statusHistory.period"),
    ],
    "Immunization": [
        _required("Immunization", "status"),
        _required("Immunization", "vaccineCode"),
        _required("Immunization", "patient"),
    ],
    "MedicationRequest": [
        _required("MedicationRequest", "status"),
        _required("MedicationRequest", "intent"),
        _required("MedicationRequest", "subject"),
    ],
    "Observation": [
        _required("Observation", "status"),
        _required("Observation", "code"),
        _each("Observation", "component.code"),
    ],
    "Patient": [
        _each("Patient", "communication.language"),
        _each("Patient", "link.other"),
        _each("Patient", "link.type"),
    ],
    "Practitioner": [_each("Practitioner", "qualification.code")],
    "Procedure": [
        _required("Procedure", "status"),
        _required("Procedure", "subject"),
        _each("Procedure", "performer.actor"),
    ],
    "QuestionnaireResponse": [_required("QuestionnaireResponse", "status")],
}

_VERSION_ALIASES = {"R4": "R4", "4.0.1": "R4"}


@dataclass(frozen=True)
class _CompiledHint:
    hint: SpecHint
    parent: Optional[str]
    steps: Tuple[PathStep, ...]
    condition: Optional[Condition]


class CatalogSpecHintProvider(BaseSpecHintProvider):
    """Checks each entry's resource against a per-version hint catalog."""

    def __init__(self, catalogs: Optional[Dict[str, Dict[str, List[SpecHint]]]] = None):
        """Initialize provider.

        Args:
            catalogs: Hints per FHIR version, then per resource type

        Raises:
            PathParseError: If a catalog path or condition cannot be parsed
        """
        catalogs = catalogs if catalogs is not None else {"R4": R4_SPEC_HINTS}
        self._catalogs = {
            version: {
                resource_type: [_compile(hint) for hint in hints]
                for resource_type, hints in by_type.items()
            }
            for version, by_type in catalogs.items()
        }

    async def check(self, tree: Dict[str, Any], fhir_version: str) -> List[SpecHintIssue]:
        """Find missing required elements in each entry's resource."""
        version = _VERSION_ALIASES.get((fhir_version or "").upper(), fhir_version)
        catalog = self._catalogs.get(version)
        if not catalog:
            logger.debug("spec_hints_unavailable", fhir_version=fhir_version)
            return []

        entries = tree.get("entry")
        if not isinstance(entries, list):
            return []

        issues: List[SpecHintIssue] = []
        for index, entry in enumerate(entries):
            resource = entry.get("resource") if isinstance(entry, dict) else None
            if not isinstance(resource, dict):
                continue
            resource_type = resource.get("resourceType")
            if not isinstance(resource_type, str):
                continue
            for compiled in catalog.get(resource_type, []):
                issues.extend(_check_hint(compiled, resource, resource_type, index))
        return issues


def _compile(hint: SpecHint) -> _CompiledHint:
    parent = None
    path = hint.path
    if hint.applies_to_each:
        parent, path = hint.path.split(".", 1)
    return _CompiledHint(
        hint=hint,
        parent=parent,
        steps=parse_path(path).steps,
        condition=parse_condition(hint.condition) if hint.condition else None,
    )


def _check_hint(
    compiled: _CompiledHint, resource: Dict[str, Any], resource_type: str, index: int
) -> List[SpecHintIssue]:
    hint = compiled.hint
    if compiled.condition is not None and not matches(compiled.condition, resource):
        return []

    pointer = f"/entry/{index}/resource"
    if compiled.parent is None:
        if not _is_missing(resource, compiled.steps):
            return []
        return [_issue(hint, resource, resource_type, index, f"{resource_type}.{hint.path}", pointer)]

    issues = []
    child = hint.path.split(".", 1)[1]
    parent_pointer = f"{pointer}/{escape_pointer_token(compiled.parent)}"
    for position, item in enumerate_sequence(resource.get(compiled.parent)):
        if not _is_missing(item, compiled.steps):
            continue
        if position is None:
            path = f"{resource_type}.{compiled.parent}.{child}"
            item_pointer = parent_pointer
        else:
            path = f"{resource_type}.{compiled.parent}[{position}].{child}"
            item_pointer = f"{parent_pointer}/{position}"
        issues.append(_issue(hint, resource, resource_type, index, path, item_pointer))
    return issues


def _is_missing(node: Any, steps: Sequence[PathStep]) -> bool:
    return all(is_empty_value(value) for value in collect(node, steps))


def _issue(
    hint: SpecHint,
    resource: Dict[str, Any],
    resource_type: str,
    index: int,
    path: str,
    pointer: str,
) -> SpecHintIssue:
    resource_id = resource.get("id")
    return SpecHintIssue(
        resource_type=resource_type,
        path=path,
        reason=hint.reason,
        severity=hint.severity,
        json_pointer=pointer,
        entry_index=index,
        resource_id=resource_id if isinstance(resource_id, str) else None,
        condition=hint.condition,
        applies_to_each=hint.applies_to_each,
    )
