"""Tests for the required-element hint provider."""

import pytest

from fhir_bundle_validator.collaborators.spec_hints import (
    R4_SPEC_HINTS,
    CatalogSpecHintProvider,
    SpecHint,
)


@pytest.fixture
def provider():
    """Provider with the R4 catalog."""
    return CatalogSpecHintProvider()


def _locations(issues):
    return [(issue.path, issue.json_pointer) for issue in issues]


class TestCatalog:
    """Hint catalog."""

    def test_catalog_compiles(self):
        """Every R4 hint parses and per-item hints are conditional."""
        CatalogSpecHintProvider()
        for hints in R4_SPEC_HINTS.values():
            for hint in hints:
                assert hint.reason
                if hint.applies_to_each:
                    assert hint.condition == f"{hint.path.split('.')[0]}.exists()"

    def test_per_item_hint_needs_parent(self):
        """A per-item hint without a parent element is rejected."""
        with pytest.raises(ValueError):
            SpecHint("status", "needs a parent", applies_to_each=True)


class TestCheck:
    """Hint evaluation over a Bundle."""

    @pytest.mark.asyncio
    async def test_valid_bundle_is_clean(self, provider, patient_bundle):
        """Nothing is reported when required elements are present."""
        assert await provider.check(patient_bundle, "R4") == []

    @pytest.mark.asyncio
    async def test_missing_required_element(self, provider, patient_bundle):
        """A missing Observation.status points at the resource."""
        del patient_bundle["entry"][2]["resource"]["status"]
        issues = await provider.check(patient_bundle, "4.0.1")
        assert _locations(issues) == [("Observation.status", "/entry/2/resource")]
        issue = issues[0]
        assert issue.severity == "warning"
        assert issue.entry_index == 2
        assert issue.resource_id == "o1"
        assert issue.condition is None
        assert not issue.applies_to_each

    @pytest.mark.asyncio
    async def test_blank_value_counts_as_missing(self, provider, patient_bundle):
        """A blank string does not satisfy a required element."""
        patient_bundle["entry"][2]["resource"]["status"] = "  "
        issues = await provider.check(patient_bundle, "R4")
        assert _locations(issues) == [("Observation.status", "/entry/2/resource")]

    @pytest.mark.asyncio
    async def test_each_item_is_checked(self, provider, patient_bundle):
        """Only the component without a code is reported."""
        components = patient_bundle["entry"][2]["resource"]["component"]
        components.append({"valueString": "No"})
        issues = await provider.check(patient_bundle, "R4")
        assert _locations(issues) == [
            ("Observation.component[1].code", "/entry/2/resource/component/1")
        ]
        assert issues[0].applies_to_each
        assert issues[0].condition == "component.exists()"

    @pytest.mark.asyncio
    async def test_bare_object_parent(self, provider, patient_bundle):
        """A single object where an array is expected is one item."""
        patient_bundle["entry"][0]["resource"]["link"] = {"type": "seealso"}
        issues = await provider.check(patient_bundle, "R4")
        assert _locations(issues) == [("Patient.link.other", "/entry/0/resource/link")]

    @pytest.mark.asyncio
    async def test_absent_parent_is_not_checked(self, provider, patient_bundle):
        """Per-item hints hold only when the parent element exists."""
        patient_bundle["entry"][0]["resource"]["communication"] = []
        assert await provider.check(patient_bundle, "R4") == []

    @pytest.mark.asyncio
    async def test_condition_gates_hint(self, patient_bundle):
        """A conditional hint is skipped when its condition does not hold."""
        provider = CatalogSpecHintProvider(
            {
                "R4": {
                    "Patient": [
                        SpecHint(
                            "birthDate",
                            "Deceased patients need a birth date",
                            condition="deceasedBoolean = true",
                        )
                    ]
                }
            }
        )
        assert await provider.check(patient_bundle, "R4") == []
        patient_bundle["entry"][0]["resource"]["deceasedBoolean"] = True
        issues = await provider.check(patient_bundle, "R4")
        assert _locations(issues) == [("Patient.birthDate", "/entry/0/resource")]
        assert issues[0].condition == "deceasedBoolean = true"

    @pytest.mark.asyncio
    async def test_unknown_version(self, provider, patient_bundle):
        """Versions without a catalog produce no hints."""
        del patient_bundle["entry"][2]["resource"]["status"]
        assert await provider.check(patient_bundle, "R5") == []

    @pytest.mark.asyncio
    async def test_malformed_entries_are_skipped(self, provider):
        """Entries without a typed resource are left to the linter."""
        tree = {
            "resourceType": "Bundle",
            "entry": [
                "oops",
                {"resource": None},
                {"resource": {"status": "final"}},
                {"resource": {"resourceType": "Condition", "id": "c1"}},
            ],
        }
        issues = await provider.check(tree, "R4")
        assert [(issue.path, issue.entry_index) for issue in issues] == [
            ("Condition.subject", 3)
        ]
        assert await provider.check({"resourceType": "Bundle", "entry": {}}, "R4") == []
