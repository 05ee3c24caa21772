"""Tests for condition evaluation over raw JSON."""

import pytest

from fhir_bundle_validator.navigation.nodes import (
    as_sequence,
    enumerate_sequence,
    escape_pointer_token,
    is_empty_value,
    unescape_pointer_token,
    values_equal,
)
from fhir_bundle_validator.navigation.parser import parse_condition, parse_path
from fhir_bundle_validator.navigation.predicates import (
    collect,
    entry_matches_reference,
    matches,
)


@pytest.fixture
def patient():
    """Patient with repeating identifiers and a bare-object performer-style field."""
    return {
        "resourceType": "Patient",
        "id": "p1",
        "active": True,
        "identifier": [
            {"system": "http://example.org/nric", "value": "S1"},
            {"system": "http://example.org/mrn", "value": "M1"},
        ],
        "generalPractitioner": {"reference": "Practitioner/dr1"},
        "multipleBirthInteger": 2,
        "name": [],
    }


class TestNodes:
    """Tolerant sequence helpers."""

    def test_sequence_shapes(self):
        """Arrays, bare objects and missing nodes normalize to sequences."""
        assert as_sequence([1, None, 2]) == [1, 2]
        assert as_sequence({"a": 1}) == [{"a": 1}]
        assert as_sequence(None) == []
        assert enumerate_sequence(["x", "y"]) == [(0, "x"), (1, "y")]
        assert enumerate_sequence({"a": 1}) == [(None, {"a": 1})]

    def test_empty_values(self):
        """Blank strings and empty containers count as empty."""
        assert is_empty_value(None)
        assert is_empty_value("  ")
        assert is_empty_value([])
        assert is_empty_value({})
        assert not is_empty_value(0)
        assert not is_empty_value(False)

    def test_values_equal(self):
        """Numbers compare numerically, everything else by FHIR text."""
        assert values_equal(5, 5.0)
        assert values_equal(True, True)
        assert values_equal(5, "5")
        assert not values_equal(True, "True")
        assert not values_equal({"a": 1}, "a")

    def test_pointer_token_escaping(self):
        """~ and / are escaped per JSON pointer rules."""
        assert escape_pointer_token("a/b~c") == "a~1b~0c"
        assert unescape_pointer_token("a~1b~0c") == "a/b~c"


class TestMatches:
    """Condition matching."""

    def test_comparison_flattens_arrays(self, patient):
        """Any value reached by the path can satisfy the comparison."""
        assert matches(parse_condition("identifier.system = 'http://example.org/mrn'"), patient)
        assert not matches(parse_condition("identifier.system = 'http://other'"), patient)

    def test_bare_object_counts_as_one_item(self, patient):
        """A single object where an array is expected still matches."""
        condition = parse_condition("generalPractitioner.reference = 'Practitioner/dr1'")
        assert matches(condition, patient)

    def test_boolean_literal_matches_json_boolean(self, patient):
        """An unquoted true compares against a JSON boolean."""
        assert matches(parse_condition("active = true"), patient)
        assert not matches(parse_condition("active = false"), patient)

    def test_numeric_literal(self, patient):
        """Integers compare numerically."""
        assert matches(parse_condition("multipleBirthInteger = 2"), patient)

    def test_not_equals_needs_a_value(self, patient):
        """!= is false when the path reaches nothing."""
        assert matches(parse_condition("identifier.system != 'http://other'"), patient)
        assert not matches(parse_condition("gender != 'male'"), patient)

    def test_exists_and_empty(self, patient):
        """exists() needs a value; empty() holds when every value is empty."""
        assert matches(parse_condition("identifier.exists()"), patient)
        assert not matches(parse_condition("gender.exists()"), patient)
        assert matches(parse_condition("gender.empty()"), patient)
        assert matches(parse_condition("name.empty()"), patient)

    def test_exists_ignores_empty_values(self, patient):
        """Blank strings and empty objects do not make a field exist."""
        patient["gender"] = "  "
        patient["contact"] = [{}]
        assert not matches(parse_condition("gender.exists()"), patient)
        assert not matches(parse_condition("contact.exists()"), patient)
        assert matches(parse_condition("contact.empty()"), patient)

    def test_boolean_member(self, patient):
        """A bare path holds when it reaches only true values."""
        assert matches(parse_condition("active"), patient)
        assert not matches(parse_condition("deceasedBoolean"), patient)
        patient["active"] = False
        assert not matches(parse_condition("active"), patient)
        patient["active"] = "true"
        assert not matches(parse_condition("active"), patient)

    def test_and_or(self, patient):
        """Boolean combinations."""
        assert matches(parse_condition("active = true and identifier.exists()"), patient)
        assert not matches(parse_condition("active = false and identifier.exists()"), patient)
        assert matches(parse_condition("active = false or identifier.exists()"), patient)

    def test_collect_with_filter(self, patient):
        """Filters inside a path keep only matching items."""
        values = collect(patient, parse_path("identifier.where(system='http://example.org/mrn').value").steps)
        assert values == ["M1"]


class TestEntryReference:
    """Entry lookup by reference."""

    def test_by_full_url_and_type_id(self):
        """Both fullUrl and Type/id address an entry."""
        entry = {"fullUrl": "urn:uuid:1", "resource": {"resourceType": "Patient", "id": "p1"}}
        assert entry_matches_reference(entry, "urn:uuid:1")
        assert entry_matches_reference(entry, "Patient/p1")
        assert not entry_matches_reference(entry, "Patient/p2")
        assert not entry_matches_reference("not-an-entry", "Patient/p1")
