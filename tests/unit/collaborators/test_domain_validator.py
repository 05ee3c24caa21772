"""Tests for screening code master validation."""

import pytest

from fhir_bundle_validator.collaborators.domain import ScreeningDomainValidator
from fhir_bundle_validator.models.bundle import BundleDocument
from fhir_bundle_validator.models.domain import DomainDefinition
from fhir_bundle_validator.validation import error_codes


@pytest.fixture
def validator():
    """Domain validator."""
    return ScreeningDomainValidator()


def _component(patient_bundle, index=0):
    return patient_bundle["entry"][2]["resource"]["component"][index]


async def _validate(validator, patient_bundle, definition):
    return await validator.validate(BundleDocument(patient_bundle), definition)


class TestScreeningTypes:
    """Observation screening type lookup."""

    @pytest.mark.asyncio
    async def test_valid_answers(self, validator, patient_bundle, screening_definition):
        """A known question with an allowed answer passes."""
        assert await _validate(validator, patient_bundle, screening_definition) == []

    @pytest.mark.asyncio
    async def test_empty_definition(self, validator, patient_bundle):
        """Nothing to check without screening types."""
        assert await _validate(validator, patient_bundle, None) == []
        assert await _validate(validator, patient_bundle, DomainDefinition()) == []

    @pytest.mark.asyncio
    async def test_unknown_screening_type(self, validator, patient_bundle, screening_definition):
        """An Observation code missing from the code master."""
        patient_bundle["entry"][2]["resource"]["code"] = {"coding": [{"code": "XX"}]}
        issues = await _validate(validator, patient_bundle, screening_definition)
        assert [(i.error_code, i.path) for i in issues] == [
            (error_codes.UNKNOWN_SCREENING_TYPE, "Observation.code")
        ]
        assert issues[0].entry_index == 2

    @pytest.mark.asyncio
    async def test_observation_without_code_is_skipped(
        self, validator, patient_bundle, screening_definition
    ):
        """Observations with no coded type are not screenings."""
        del patient_bundle["entry"][2]["resource"]["code"]
        assert await _validate(validator, patient_bundle, screening_definition) == []


class TestQuestions:
    """Component question codes."""

    @pytest.mark.asyncio
    async def test_missing_question_code(self, validator, patient_bundle, screening_definition):
        """A component without a coded question."""
        _component(patient_bundle)["code"] = {"text": "free text"}
        issues = await _validate(validator, patient_bundle, screening_definition)
        assert [(i.error_code, i.path) for i in issues] == [
            (error_codes.MISSING_QUESTION_CODE, "Observation.component[0].code")
        ]

    @pytest.mark.asyncio
    async def test_unknown_question(self, validator, patient_bundle, screening_definition):
        """A question code not defined for the screening type."""
        _component(patient_bundle)["code"] = {"coding": [{"code": "SQ-NOPE"}]}
        issues = await _validate(validator, patient_bundle, screening_definition)
        assert issues[0].error_code == error_codes.INVALID_QUESTION_CODE
        assert issues[0].details == {"questionCode": "SQ-NOPE", "screeningType": "HS"}


class TestAnswers:
    """Component answer values."""

    @pytest.mark.asyncio
    async def test_invalid_string_answer(self, validator, patient_bundle, screening_definition):
        """A string answer outside the allowed codes."""
        _component(patient_bundle)["valueString"] = "Maybe"
        issues = await _validate(validator, patient_bundle, screening_definition)
        assert [(i.error_code, i.path) for i in issues] == [
            (error_codes.INVALID_ANSWER_VALUE, "Observation.component[0].valueString")
        ]
        assert issues[0].details == {
            "questionCode": "SQ-L2H9-00000001",
            "actualValue": "Maybe",
            "allowedValues": ["Yes", "No"],
        }

    @pytest.mark.asyncio
    async def test_multiple_values_on_single_value_question(
        self, validator, patient_bundle, screening_definition
    ):
        """Several codings on a single-valued question, each checked by index."""
        component = _component(patient_bundle)
        del component["valueString"]
        component["valueCodeableConcept"] = {"coding": [{"code": "Yes"}, {"code": "Maybe"}]}
        issues = await _validate(validator, patient_bundle, screening_definition)
        assert [(i.error_code, i.path) for i in issues] == [
            (
                error_codes.MULTIPLE_VALUES_NOT_ALLOWED,
                "Observation.component[0].valueCodeableConcept",
            ),
            (
                error_codes.INVALID_ANSWER_VALUE,
                "Observation.component[0].valueCodeableConcept.coding[1]",
            ),
        ]

    @pytest.mark.asyncio
    async def test_multi_value_question(self, validator, patient_bundle, screening_definition):
        """Multi-valued questions accept several allowed codes."""
        patient_bundle["entry"][2]["resource"]["component"].append(
            {
                "code": {"coding": [{"code": "SQ-L2H9-00000002"}]},
                "valueCodeableConcept": {"coding": [{"code": "Left"}, {"code": "Right"}]},
            }
        )
        assert await _validate(validator, patient_bundle, screening_definition) == []

    @pytest.mark.asyncio
    async def test_question_without_answers_accepts_anything(
        self, validator, patient_bundle, screening_definition
    ):
        """Free-text questions are not checked."""
        patient_bundle["entry"][2]["resource"]["component"].append(
            {"code": {"coding": [{"code": "SQ-L2H9-00000003"}]}, "valueString": "anything"}
        )
        assert await _validate(validator, patient_bundle, screening_definition) == []

    @pytest.mark.asyncio
    async def test_boolean_answer(self, validator, patient_bundle, screening_definition):
        """Booleans are compared as their FHIR text."""
        component = _component(patient_bundle)
        del component["valueString"]
        component["valueBoolean"] = True
        issues = await _validate(validator, patient_bundle, screening_definition)
        assert issues[0].details["actualValue"] == "true"
        assert issues[0].path == "Observation.component[0].valueBoolean"
