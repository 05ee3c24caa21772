"""Test configuration for the FHIR Bundle Validator.

Bundles are built as plain dictionaries so each test gets a fresh copy it
can modify.
"""

import json
from typing import Any, Dict

import pytest

from fhir_bundle_validator.models.domain import DomainDefinition
from fhir_bundle_validator.models.rules import RuleDefinition


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "fhir_structure: test depends on the fhirclient R4 models"
    )
    config.addinivalue_line(
        "markers", "scenario: end-to-end behaviour on a whole Bundle"
    )


def build_patient_bundle() -> Dict[str, Any]:
    """A Patient and an Observation that reference each other correctly."""
    return {
        "resourceType": "Bundle",
        "type": "collection",
        "entry": [
            {
                "fullUrl": "urn:uuid:patient-1",
                "resource": {
                    "resourceType": "Patient",
                    "id": "p1",
                    "gender": "female",
                    "name": [{"family": "Tan", "given": ["Mei", "Ling"]}],
                    "identifier": [
                        {"system": "http://example.org/nric", "value": "S1234567A"},
                        {"system": "http://example.org/mrn", "value": "MRN-1"},
                    ],
                },
            },
            {
                "fullUrl": "urn:uuid:practitioner-1",
                "resource": {
                    "resourceType": "Practitioner",
                    "id": "dr1",
                    "name": [{"family": "Lim"}],
                },
            },
            {
                "fullUrl": "urn:uuid:observation-1",
                "resource": {
                    "resourceType": "Observation",
                    "id": "o1",
                    "status": "final",
                    "code": {
                        "coding": [{"system": "http://example.org/screening", "code": "HS"}]
                    },
                    "subject": {"reference": "Patient/p1"},
                    "performer": [{"reference": "Practitioner/dr1"}],
                    "component": [
                        {
                            "code": {"coding": [{"code": "SQ-L2H9-00000001"}]},
                            "valueString": "Yes",
                        }
                    ],
                },
            },
        ],
    }


def build_screening_definition() -> Dict[str, Any]:
    """Code master with one hearing screening type."""
    return {
        "screeningTypes": [
            {
                "code": "HS",
                "display": "Hearing Screening",
                "questions": [
                    {
                        "code": "SQ-L2H9-00000001",
                        "display": "Passed hearing test?",
                        "allowedAnswers": [
                            {"code": "Yes", "display": "Yes"},
                            {"code": "No", "display": "No"},
                        ],
                    },
                    {
                        "code": "SQ-L2H9-00000002",
                        "display": "Devices used",
                        "multiValue": True,
                        "allowedAnswers": [
                            {"code": "Left", "display": "Left ear"},
                            {"code": "Right", "display": "Right ear"},
                        ],
                    },
                    {"code": "SQ-L2H9-00000003", "display": "Remarks"},
                ],
            }
        ]
    }


@pytest.fixture
def patient_bundle() -> Dict[str, Any]:
    """Fresh valid Bundle."""
    return build_patient_bundle()


@pytest.fixture
def patient_bundle_json(patient_bundle) -> str:
    """The valid Bundle serialized."""
    return json.dumps(patient_bundle)


@pytest.fixture
def screening_definition() -> DomainDefinition:
    """Parsed code master."""
    return DomainDefinition.model_validate(build_screening_definition())


@pytest.fixture
def make_rule():
    """Factory for rule definitions with sensible defaults."""

    def _make_rule(**fields: Any) -> RuleDefinition:
        data: Dict[str, Any] = {
            "id": "rule-1",
            "type": "Required",
            "resourceType": "Patient",
            "fieldPath": "gender",
        }
        data.update(fields)
        return RuleDefinition.model_validate(data)

    return _make_rule
