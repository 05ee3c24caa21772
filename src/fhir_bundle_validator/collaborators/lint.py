"""Best-effort JSON shape linter.

These checks catch common authoring mistakes before structural validation
runs. They are advisory: every issue carries the catalog disclaimer, and the
structural validator stays authoritative.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fhir_bundle_validator.collaborators.base import BaseShapeLinter
from fhir_bundle_validator.models.errors import LintIssue
from fhir_bundle_validator.navigation.nodes import escape_pointer_token
from fhir_bundle_validator.navigation.structure import StructureHints

DEFAULT_DISCLAIMER = (
    "This is a best-effort check. Final validation is performed by FHIR engine."
)

_DATE_RE = re.compile(r"^\d{4}(-\d{2}(-\d{2})?)?$")
_DATETIME_RE = re.compile(
    r"^\d{4}(-\d{2}(-\d{2}(T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:\d{2})?)?)?)?$"
)
_DATE_ELEMENTS = frozenset({"birthDate"})
_BOOLEAN_ELEMENTS = frozenset(
    {
        "active",
        "deceasedBoolean",
        "multipleBirthBoolean",
        "valueBoolean",
        "experimental",
        "preferred",
        "primary",
        "immutable",
        "inactive",
        "abstract",
    }
)


@dataclass(frozen=True)
class LintRuleDefinition:
    """Catalog metadata for one lint rule."""

    id: str
    category: str
    title: str
    description: str
    severity: str
    confidence: str
    disclaimer: str = DEFAULT_DISCLAIMER


def _rule(
    rule_id: str,
    category: str,
    title: str,
    description: str,
    severity: str = "Error",
    confidence: str = "High",
) -> LintRuleDefinition:
    return LintRuleDefinition(rule_id, category, title, description, severity, confidence)


LINT_RULES: Dict[str, LintRuleDefinition] = {
    rule.id: rule
    for rule in (
        _rule(
            "LINT_ROOT_NOT_OBJECT",
            "Json",
            "Root Must Be Object",
            "FHIR JSON root element must be a JSON object, not an array or primitive.",
        ),
        _rule(
            "LINT_MISSING_RESOURCE_TYPE",
            "Structure",
            "Missing resourceType",
            "FHIR resource is missing the required 'resourceType' property.",
        ),
        _rule(
            "LINT_RESOURCE_TYPE_NOT_STRING",
            "Structure",
            "resourceType Must Be String",
            "The 'resourceType' property must be a string.",
        ),
        _rule(
            "LINT_NOT_BUNDLE",
            "Structure",
            "Not a Bundle",
            "Expected a Bundle resource but found a different resourceType.",
        ),
        _rule(
            "LINT_ENTRY_NOT_ARRAY",
            "Structure",
            "Bundle.entry Must Be Array",
            "Bundle.entry must be a JSON array.",
        ),
        _rule(
            "LINT_ENTRY_NOT_OBJECT",
            "Structure",
            "Entry Must Be Object",
            "Each Bundle.entry item must be a JSON object.",
        ),
        _rule(
            "LINT_ENTRY_MISSING_RESOURCE",
            "Structure",
            "Entry Missing Resource",
            "Bundle entry has no 'resource' property.",
            severity="Warning",
        ),
        _rule(
            "LINT_RESOURCE_NOT_OBJECT",
            "Structure",
            "Resource Must Be Object",
            "Bundle.entry.resource must be a JSON object.",
        ),
        _rule(
            "LINT_RESOURCE_MISSING_TYPE",
            "Structure",
            "Resource Missing resourceType",
            "Resource inside a Bundle entry has no 'resourceType'.",
        ),
        _rule(
            "LINT_EXPECTED_ARRAY",
            "SchemaShape",
            "Expected Array",
            "This element repeats in FHIR and must be a JSON array, even with one item.",
            confidence="Medium",
        ),
        _rule(
            "LINT_INVALID_DATE",
            "Primitive",
            "Invalid Date Format",
            "FHIR dates use YYYY, YYYY-MM or YYYY-MM-DD.",
            confidence="Medium",
        ),
        _rule(
            "LINT_INVALID_DATETIME",
            "Primitive",
            "Invalid DateTime Format",
            "FHIR dateTimes use YYYY-MM-DDThh:mm:ss with an optional timezone.",
            confidence="Medium",
        ),
        _rule(
            "LINT_BOOLEAN_AS_STRING",
            "Primitive",
            "Boolean As String",
            "Boolean elements must be JSON true/false, not the strings \"true\"/\"false\".",
        ),
    )
}


class JsonShapeLinter(BaseShapeLinter):
    """Default shape linter working on the raw JSON tree."""

    def __init__(self, hints: Optional[StructureHints] = None):
        """Initialize linter.

        Args:
            hints: Repeating-element table for the expected-array check
        """
        self.hints = hints or StructureHints()

    async def lint(self, tree: Any, fhir_version: str) -> List[LintIssue]:
        """Lint a parsed document."""
        issues: List[LintIssue] = []

        if not isinstance(tree, dict):
            issues.append(_issue("LINT_ROOT_NOT_OBJECT", "", "Root of the document is not an object"))
            return issues

        resource_type = tree.get("resourceType")
        if resource_type is None:
            issues.append(_issue("LINT_MISSING_RESOURCE_TYPE", "/resourceType", "Missing resourceType"))
            return issues
        if not isinstance(resource_type, str):
            issues.append(
                _issue("LINT_RESOURCE_TYPE_NOT_STRING", "/resourceType", "resourceType is not a string")
            )
            return issues
        if resource_type != "Bundle":
            issues.append(
                _issue(
                    "LINT_NOT_BUNDLE",
                    "/resourceType",
                    f"Expected resourceType 'Bundle' but found '{resource_type}'",
                    details={"actualResourceType": resource_type},
                )
            )
            return issues

        entries = tree.get("entry")
        if entries is None:
            return issues
        if not isinstance(entries, list):
            issues.append(_issue("LINT_ENTRY_NOT_ARRAY", "/entry", "Bundle.entry is not an array"))
            return issues

        for index, entry in enumerate(entries):
            self._lint_entry(entry, index, issues)
        return issues

    def _lint_entry(self, entry: Any, index: int, issues: List[LintIssue]) -> None:
        pointer = f"/entry/{index}"
        if not isinstance(entry, dict):
            issues.append(_issue("LINT_ENTRY_NOT_OBJECT", pointer, f"Entry {index} is not an object"))
            return
        if "resource" not in entry:
            issues.append(
                _issue("LINT_ENTRY_MISSING_RESOURCE", pointer, f"Entry {index} has no resource")
            )
            return
        resource = entry["resource"]
        pointer = f"{pointer}/resource"
        if not isinstance(resource, dict):
            issues.append(
                _issue("LINT_RESOURCE_NOT_OBJECT", pointer, f"Entry {index} resource is not an object")
            )
            return
        resource_type = resource.get("resourceType")
        if not isinstance(resource_type, str):
            issues.append(
                _issue(
                    "LINT_RESOURCE_MISSING_TYPE",
                    f"{pointer}/resourceType",
                    f"Entry {index} resource has no resourceType",
                )
            )
            return
        self._lint_element(resource, resource_type, pointer, [], issues)

    def _lint_element(
        self,
        node: Dict[str, Any],
        resource_type: str,
        pointer: str,
        element_path: List[str],
        issues: List[LintIssue],
    ) -> None:
        for name, value in node.items():
            child_path = element_path + [name]
            child_pointer = f"{pointer}/{escape_pointer_token(name)}"
            fhir_path = ".".join([resource_type] + child_path)

            if isinstance(value, dict):
                if self.hints.is_repeating(resource_type, ".".join(child_path)):
                    issues.append(
                        _issue(
                            "LINT_EXPECTED_ARRAY",
                            child_pointer,
                            f"{fhir_path} should be an array but is an object",
                            resource_type=resource_type,
                            fhir_path=fhir_path,
                        )
                    )
                self._lint_element(value, resource_type, child_pointer, child_path, issues)
            elif isinstance(value, list):
                for i, item in enumerate(value):
                    if isinstance(item, dict):
                        self._lint_element(
                            item, resource_type, f"{child_pointer}/{i}", child_path, issues
                        )
            elif isinstance(value, str):
                self._lint_primitive(name, value, resource_type, child_pointer, fhir_path, issues)

    @staticmethod
    def _lint_primitive(
        name: str,
        value: str,
        resource_type: str,
        pointer: str,
        fhir_path: str,
        issues: List[LintIssue],
    ) -> None:
        rule_id = None
        if name in _BOOLEAN_ELEMENTS and value.lower() in ("true", "false"):
            rule_id = "LINT_BOOLEAN_AS_STRING"
            message = f"{fhir_path} is the string \"{value}\" instead of a boolean"
        elif name in _DATE_ELEMENTS and not _DATE_RE.match(value):
            rule_id = "LINT_INVALID_DATE"
            message = f"{fhir_path} is not a valid FHIR date: {value}"
        elif _is_datetime_element(name) and not _DATETIME_RE.match(value):
            rule_id = "LINT_INVALID_DATETIME"
            message = f"{fhir_path} is not a valid FHIR dateTime: {value}"
        if rule_id is None:
            return
        issues.append(
            _issue(
                rule_id,
                pointer,
                message,
                resource_type=resource_type,
                fhir_path=fhir_path,
                details={"actualValue": value},
            )
        )


def _is_datetime_element(name: str) -> bool:
    if name in _DATE_ELEMENTS:
        return False
    return name == "date" or name.endswith("DateTime") or name.endswith("Date")


def _issue(
    rule_id: str,
    pointer: str,
    message: str,
    resource_type: Optional[str] = None,
    fhir_path: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> LintIssue:
    rule = LINT_RULES[rule_id]
    return LintIssue(
        rule_id=rule.id,
        category=rule.category,
        severity=rule.severity,
        confidence=rule.confidence,
        title=rule.title,
        description=rule.description,
        message=message,
        disclaimer=rule.disclaimer,
        resource_type=resource_type,
        json_pointer=pointer,
        fhir_path=fhir_path,
        details=details or {},
    )
