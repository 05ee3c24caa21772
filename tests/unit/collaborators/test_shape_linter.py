"""Tests for the best-effort JSON shape linter."""

import pytest

from fhir_bundle_validator.collaborators.lint import (
    DEFAULT_DISCLAIMER,
    LINT_RULES,
    JsonShapeLinter,
)


@pytest.fixture
def linter():
    """Linter with default hints."""
    return JsonShapeLinter()


def _ids(issues):
    return [issue.rule_id for issue in issues]


class TestCatalog:
    """Lint rule catalog."""

    def test_every_rule_has_metadata(self):
        """Each catalog entry is complete and keyed by its id."""
        for rule_id, rule in LINT_RULES.items():
            assert rule.id == rule_id
            assert rule.title
            assert rule.description
            assert rule.severity in ("Error", "Warning", "Info")
            assert rule.disclaimer == DEFAULT_DISCLAIMER


class TestDocumentShape:
    """Root and entry shape checks."""

    @pytest.mark.asyncio
    async def test_valid_bundle_is_clean(self, linter, patient_bundle):
        """A well-formed Bundle produces nothing."""
        assert await linter.lint(patient_bundle, "R4") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "tree,rule_id",
        [
            ([], "LINT_ROOT_NOT_OBJECT"),
            ({"type": "collection"}, "LINT_MISSING_RESOURCE_TYPE"),
            ({"resourceType": 7}, "LINT_RESOURCE_TYPE_NOT_STRING"),
            ({"resourceType": "Patient"}, "LINT_NOT_BUNDLE"),
            ({"resourceType": "Bundle", "entry": {}}, "LINT_ENTRY_NOT_ARRAY"),
        ],
    )
    async def test_root_problems(self, linter, tree, rule_id):
        """Root problems stop linting after one issue."""
        assert _ids(await linter.lint(tree, "R4")) == [rule_id]

    @pytest.mark.asyncio
    async def test_entry_problems(self, linter):
        """Entry problems are reported per entry with pointers."""
        tree = {
            "resourceType": "Bundle",
            "entry": [
                "oops",
                {"fullUrl": "urn:uuid:1"},
                {"resource": []},
                {"resource": {"id": "x"}},
            ],
        }
        issues = await linter.lint(tree, "R4")
        assert [(i.rule_id, i.json_pointer) for i in issues] == [
            ("LINT_ENTRY_NOT_OBJECT", "/entry/0"),
            ("LINT_ENTRY_MISSING_RESOURCE", "/entry/1"),
            ("LINT_RESOURCE_NOT_OBJECT", "/entry/2/resource"),
            ("LINT_RESOURCE_MISSING_TYPE", "/entry/3/resource/resourceType"),
        ]
        assert issues[1].severity == "Warning"


class TestElementShape:
    """Element-level checks inside resources."""

    @pytest.mark.asyncio
    async def test_object_where_array_expected(self, linter, patient_bundle):
        """A bare object in a repeating element is flagged with its path."""
        patient_bundle["entry"][2]["resource"]["performer"] = {"reference": "Practitioner/dr1"}
        issues = await linter.lint(patient_bundle, "R4")
        assert _ids(issues) == ["LINT_EXPECTED_ARRAY"]
        assert issues[0].json_pointer == "/entry/2/resource/performer"
        assert issues[0].fhir_path == "Observation.performer"
        assert issues[0].resource_type == "Observation"
        assert issues[0].confidence == "Medium"

    @pytest.mark.asyncio
    async def test_primitive_formats(self, linter, patient_bundle):
        """Dates, dateTimes and string booleans."""
        patient = patient_bundle["entry"][0]["resource"]
        patient["birthDate"] = "1990/01/01"
        patient["active"] = "true"
        patient_bundle["entry"][2]["resource"]["effectiveDateTime"] = "yesterday"
        issues = await linter.lint(patient_bundle, "R4")
        found = {(i.rule_id, i.json_pointer) for i in issues}
        assert found == {
            ("LINT_INVALID_DATE", "/entry/0/resource/birthDate"),
            ("LINT_BOOLEAN_AS_STRING", "/entry/0/resource/active"),
            ("LINT_INVALID_DATETIME", "/entry/2/resource/effectiveDateTime"),
        }

    @pytest.mark.asyncio
    async def test_valid_primitives(self, linter, patient_bundle):
        """Partial dates and zoned dateTimes are accepted."""
        patient = patient_bundle["entry"][0]["resource"]
        patient["birthDate"] = "1990-01"
        patient["active"] = True
        patient_bundle["entry"][2]["resource"]["effectiveDateTime"] = "2024-03-01T10:00:00+08:00"
        assert await linter.lint(patient_bundle, "R4") == []

    @pytest.mark.asyncio
    async def test_does_not_modify_tree(self, linter, patient_bundle):
        """Linting is read-only."""
        patient_bundle["entry"][2]["resource"]["performer"] = {"reference": "Practitioner/dr1"}
        snapshot = repr(patient_bundle)
        await linter.lint(patient_bundle, "R4")
        assert repr(patient_bundle) == snapshot
