"""Tests for bundle, rule, request and domain models."""

import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from fhir_bundle_validator.core.exceptions import InvalidBundleError
from fhir_bundle_validator.models import (
    BundleDocument,
    DomainDefinition,
    ErrorSource,
    FirstInstance,
    RuleDefinition,
    RuleSet,
    RuleType,
    ValidationClass,
    ValidationError,
    ValidationRequest,
)


class TestBundleDocument:
    """Read-only Bundle adapter."""

    @pytest.mark.parametrize("tree", [[], "Bundle", {"resourceType": "Patient"}, {}])
    def test_rejects_non_bundles(self, tree):
        """Only Bundle objects are accepted."""
        with pytest.raises(InvalidBundleError) as exc_info:
            BundleDocument(tree)
        assert exc_info.value.error_code == "INVALID_BUNDLE"

    def test_entries_keep_their_position(self):
        """Non-object entries are skipped without renumbering the rest."""
        bundle = BundleDocument(
            {
                "resourceType": "Bundle",
                "type": "transaction",
                "entry": [
                    "junk",
                    {"fullUrl": "urn:uuid:x", "resource": {"resourceType": "Patient", "id": "p"}},
                    {"request": {"method": "DELETE"}},
                ],
            }
        )
        assert len(bundle) == 2
        assert [e.index for e in bundle] == [1, 2]
        assert bundle.entry(0) is None
        assert bundle.entry(2).resource is None
        assert bundle.fhir_type == "transaction"
        assert [e.resource_id for e in bundle.entries_of_type("Patient")] == ["p"]

    def test_find_by_reference(self, patient_bundle_json):
        """Entries are found by fullUrl or Type/id."""
        bundle = BundleDocument.from_json(patient_bundle_json)
        assert bundle.find_by_reference("Practitioner/dr1").index == 1
        assert bundle.find_by_reference("urn:uuid:observation-1").resource_type == "Observation"
        assert bundle.find_by_reference("Patient/missing") is None


class TestRuleDefinition:
    """Rule parsing."""

    def test_wire_names(self):
        """Rules are read from their camelCase JSON form."""
        rule = RuleDefinition.model_validate(
            {
                "id": "r1",
                "type": "regex",
                "resourceType": "Patient",
                "fieldPath": "identifier.value",
                "instanceScope": "first",
                "severity": "Warning",
                "validationClass": "Contract",
                "errorCode": "BAD_ID",
                "params": {"pattern": "^S"},
                "isSpecHint": True,
            }
        )
        assert rule.rule_type is RuleType.REGEX
        assert rule.instance_scope == FirstInstance()
        assert rule.severity == "warning"
        assert rule.validation_class is ValidationClass.CONTRACT
        assert rule.is_spec_hint

    def test_defaults(self, make_rule):
        """Unset fields fall back to advisory, error, all instances."""
        rule = make_rule()
        assert rule.validation_class is ValidationClass.ADVISORY
        assert rule.severity == "error"
        assert rule.instance_scope.key == "all"
        assert rule.params == {}

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Pattern", RuleType.PATTERN),
            ("ARRAYLENGTH", RuleType.ARRAY_LENGTH),
            ("customfhirpath", RuleType.CUSTOM_FHIRPATH),
            ("Unsupported", RuleType.UNSUPPORTED),
            ("Magic", RuleType.UNSUPPORTED),
            ("", RuleType.UNSUPPORTED),
        ],
    )
    def test_rule_type_parsing(self, raw, expected):
        """Rule types match case-insensitively; anything else is unsupported."""
        assert RuleType.parse(raw) is expected

    def test_rules_are_frozen(self, make_rule):
        """Shared rules cannot be changed by a run."""
        with pytest.raises(PydanticValidationError):
            make_rule().field_path = "name"

    def test_rule_set(self):
        """A rule set carries its version and FHIR version."""
        rule_set = RuleSet.model_validate_json(
            json.dumps(
                {
                    "version": "2.1",
                    "fhirVersion": "R4",
                    "rules": [{"id": "a", "type": "Required", "resourceType": "Patient", "fieldPath": "gender"}],
                }
            )
        )
        assert rule_set.version == "2.1"
        assert [r.id for r in rule_set.rules] == ["a"]


class TestRequestAndResult:
    """Request parsing and error serialization."""

    def test_request_wire_names(self):
        """Requests are read from camelCase JSON."""
        request = ValidationRequest.model_validate(
            {
                "bundleJson": "{}",
                "validationMode": "debug",
                "validationSettings": {"referenceResolutionPolicy": "AllowExternal"},
            }
        )
        assert request.validation_mode == "debug"
        assert request.validation_settings.reference_resolution_policy == "AllowExternal"
        assert request.fhir_version is None
        assert request.rules is None

    @pytest.mark.parametrize(
        "data",
        [
            {"validationMode": "thorough"},
            {"validationSettings": {"referenceResolutionPolicy": "Anywhere"}},
        ],
    )
    def test_request_rejects_unknown_options(self, data):
        """Modes and policies are closed sets."""
        with pytest.raises(PydanticValidationError):
            ValidationRequest.model_validate(data)

    def test_error_serializes_with_aliases(self):
        """Errors use their wire names and plain source values."""
        error = ValidationError(
            source=ErrorSource.DOMAIN,
            severity="error",
            error_code="INVALID_ANSWER_VALUE",
            message="Invalid answer",
            json_pointer="/entry/2/resource/component/0/valueString",
        )
        dumped = error.model_dump(by_alias=True)
        assert dumped["source"] == "CodeMaster"
        assert dumped["errorCode"] == "INVALID_ANSWER_VALUE"
        assert dumped["jsonPointer"] == "/entry/2/resource/component/0/valueString"


class TestDomainDefinition:
    """Code master lookups."""

    def test_lookups(self, screening_definition):
        """Screening types and questions are found by code."""
        screening = screening_definition.screening_type("HS")
        assert screening.display == "Hearing Screening"
        question = screening.question("SQ-L2H9-00000002")
        assert question.multi_value
        assert question.allowed_codes == ["Left", "Right"]
        assert screening.question("nope") is None
        assert screening_definition.screening_type("XX") is None

    def test_blank_answer_codes_are_ignored(self):
        """Answers without a code never become allowed values."""
        definition = DomainDefinition.model_validate(
            {
                "screeningTypes": [
                    {
                        "code": "VS",
                        "questions": [
                            {"code": "Q1", "allowedAnswers": [{"code": ""}, {"code": "A"}]}
                        ],
                    }
                ]
            }
        )
        assert definition.screening_type("VS").question("Q1").allowed_codes == ["A"]
