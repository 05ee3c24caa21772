"""Screening code master validation for Observation question/answer pairs."""

from typing import Any, Dict, List, Optional, Tuple

from fhir_bundle_validator.collaborators.base import BaseDomainValidator
from fhir_bundle_validator.models.bundle import BundleDocument, BundleEntry
from fhir_bundle_validator.models.domain import (
    DomainDefinition,
    QuestionDefinition,
    ScreeningTypeDefinition,
)
from fhir_bundle_validator.models.errors import DomainIssue
from fhir_bundle_validator.navigation.nodes import as_sequence
from fhir_bundle_validator.utils.logging import get_logger
from fhir_bundle_validator.validation import error_codes

logger = get_logger(__name__)

# (path suffix, answer value) pairs extracted from one component
AnswerValues = List[Tuple[str, str]]


class ScreeningDomainValidator(BaseDomainValidator):
    """Validates Observation components against a screening code master.

    The Observation's first non-empty ``code.coding.code`` names the screening
    type. Each component's first coding names the question, and its value
    must be one of the question's allowed answers.
    """

    async def validate(
        self, bundle: BundleDocument, definition: DomainDefinition
    ) -> List[DomainIssue]:
        """Validate every Observation in the Bundle."""
        issues: List[DomainIssue] = []
        if definition is None or not definition.screening_types:
            return issues

        for entry in bundle.entries_of_type("Observation"):
            issues.extend(self._validate_observation(entry, definition))

        logger.debug("domain_validation_completed", issues=len(issues))
        return issues

    def _validate_observation(
        self, entry: BundleEntry, definition: DomainDefinition
    ) -> List[DomainIssue]:
        observation = entry.resource
        screening_code = _screening_type(observation)
        if not screening_code:
            return []

        screening = definition.screening_type(screening_code)
        if screening is None:
            return [
                _issue(
                    entry,
                    error_codes.UNKNOWN_SCREENING_TYPE,
                    "Observation.code",
                    {"screeningType": screening_code},
                )
            ]

        issues: List[DomainIssue] = []
        for index, component in enumerate(as_sequence(observation.get("component"))):
            if isinstance(component, dict):
                issues.extend(self._validate_component(entry, screening, component, index))
        return issues

    def _validate_component(
        self,
        entry: BundleEntry,
        screening: ScreeningTypeDefinition,
        component: Dict[str, Any],
        index: int,
    ) -> List[DomainIssue]:
        base = f"Observation.component[{index}]"
        question_code = _first_code(component.get("code"))
        if not question_code:
            return [_issue(entry, error_codes.MISSING_QUESTION_CODE, f"{base}.code")]

        question = screening.question(question_code)
        if question is None:
            return [
                _issue(
                    entry,
                    error_codes.INVALID_QUESTION_CODE,
                    f"{base}.code",
                    {"questionCode": question_code, "screeningType": screening.code},
                )
            ]
        return self._validate_answers(entry, question, component, base)

    @staticmethod
    def _validate_answers(
        entry: BundleEntry,
        question: QuestionDefinition,
        component: Dict[str, Any],
        base: str,
    ) -> List[DomainIssue]:
        allowed = question.allowed_codes
        if not question.allowed_answers:
            return []

        element, answers = _answer_values(component)
        issues: List[DomainIssue] = []
        if not question.multi_value and len(answers) > 1:
            issues.append(
                _issue(
                    entry,
                    error_codes.MULTIPLE_VALUES_NOT_ALLOWED,
                    f"{base}.{element}",
                    {"questionCode": question.code, "valueCount": len(answers)},
                )
            )

        for suffix, value in answers:
            if value not in allowed:
                issues.append(
                    _issue(
                        entry,
                        error_codes.INVALID_ANSWER_VALUE,
                        f"{base}.{element}{suffix}",
                        {
                            "questionCode": question.code,
                            "actualValue": value,
                            "allowedValues": allowed,
                        },
                    )
                )
        return issues


def _screening_type(observation: Dict[str, Any]) -> Optional[str]:
    code = observation.get("code")
    if not isinstance(code, dict):
        return None
    for coding in as_sequence(code.get("coding")):
        if isinstance(coding, dict) and isinstance(coding.get("code"), str) and coding["code"]:
            return coding["code"]
    return None


def _first_code(concept: Any) -> Optional[str]:
    if not isinstance(concept, dict):
        return None
    codings = as_sequence(concept.get("coding"))
    if not codings or not isinstance(codings[0], dict):
        return None
    value = codings[0].get("code")
    return value if isinstance(value, str) and value else None


def _answer_values(component: Dict[str, Any]) -> Tuple[str, AnswerValues]:
    """Extract the component's answers and the value[x] element they came from."""
    concept = component.get("valueCodeableConcept")
    if isinstance(concept, dict):
        answers = []
        codings = concept.get("coding")
        for index, coding in enumerate(as_sequence(codings)):
            if isinstance(coding, dict) and isinstance(coding.get("code"), str) and coding["code"]:
                suffix = f".coding[{index}]" if isinstance(codings, list) else ".coding"
                answers.append((suffix, coding["code"]))
        return "valueCodeableConcept", answers

    coding = component.get("valueCoding")
    if isinstance(coding, dict):
        value = coding.get("code")
        return "valueCoding", [("", value)] if isinstance(value, str) and value else []

    value = component.get("valueString")
    if isinstance(value, str):
        return "valueString", [("", value)] if value else []

    value = component.get("valueBoolean")
    if isinstance(value, bool):
        return "valueBoolean", [("", "true" if value else "false")]

    value = component.get("valueInteger")
    if isinstance(value, int):
        return "valueInteger", [("", str(value))]

    return "value", []


def _issue(
    entry: BundleEntry,
    error_code: str,
    path: str,
    details: Optional[Dict[str, Any]] = None,
) -> DomainIssue:
    return DomainIssue(
        severity="error",
        error_code=error_code,
        resource_type="Observation",
        path=path,
        entry_index=entry.index,
        resource_id=entry.resource_id,
        details=details or {},
    )
