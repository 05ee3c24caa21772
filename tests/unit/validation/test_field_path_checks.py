"""Tests for static rule field path checks and instance scope selection."""

import pytest

from fhir_bundle_validator.core.exceptions import ScopeSelectionError
from fhir_bundle_validator.models.bundle import BundleDocument
from fhir_bundle_validator.models.instance_scope import (
    AllInstances,
    FilteredInstances,
    FirstInstance,
    parse_instance_scope,
)
from fhir_bundle_validator.validation.field_path_validator import check_field_path
from fhir_bundle_validator.validation.scope_selector import select_instances


class TestCheckFieldPath:
    """Field path rules."""

    @pytest.mark.parametrize(
        "path",
        [
            "gender",
            "name.family",
            "identifier.where(system='http://x').value",
            "component[0].code",
            "telecom.exists()",
            "identifier.where(system='http://mybundle.org/id').value",
            "identifier.where(system='http://fhir.bundle.example/id').value",
        ],
    )
    def test_accepts_resource_relative_paths(self, path):
        """Plain resource-relative paths pass."""
        assert check_field_path(path, "Patient") == (True, None)

    @pytest.mark.parametrize(
        "path,fragment",
        [
            ("", "empty"),
            ("   ", "empty"),
            ("Patient.gender", "resource type"),
            ("patient.gender", "resource type"),
            ("Patient", "resource type"),
            ("Patient[0].gender", "resource type"),
            ("name[*].family", "wildcard"),
            ("[0].gender", "array index"),
            ("where(active=true).gender", "where()"),
            (".where(active=true).gender", "where()"),
            ("Bundle.entry[0].resource.gender", "Bundle"),
            ("entry[0].resource.gender", "Bundle"),
            ("contained.bundle.id", "Bundle"),
        ],
    )
    def test_rejects(self, path, fragment):
        """Each rejected form names what is wrong."""
        valid, reason = check_field_path(path, "Patient")
        assert not valid
        assert fragment.lower() in reason.lower()

    def test_entry_allowed_for_list(self):
        """List.entry is a real element."""
        assert check_field_path("entry.item", "List") == (True, None)


class TestInstanceScope:
    """Scope parsing and checks."""

    def test_shorthands(self):
        """None and strings map to scope variants."""
        assert parse_instance_scope(None) == AllInstances()
        assert parse_instance_scope("all") == AllInstances()
        assert parse_instance_scope("First") == FirstInstance()
        scope = parse_instance_scope({"kind": "filter", "condition": "active = true"})
        assert scope == FilteredInstances(condition="active = true")
        assert scope.key == "filter:active = true"

    def test_unknown_shorthand(self):
        """Unknown scope strings are rejected."""
        with pytest.raises(ValueError):
            parse_instance_scope("last")

    @pytest.mark.parametrize(
        "condition",
        ["", "  ", "entry.resource.active = true", "Bundle.type = 'x'", "bundle.entry.resource.id = 'a'"],
    )
    def test_filter_check(self, condition):
        """Empty or Bundle-relative conditions are invalid."""
        valid, reason = FilteredInstances(condition=condition).check()
        assert not valid
        assert reason


class TestSelectInstances:
    """Selecting the resources a rule applies to."""

    @pytest.fixture
    def bundle(self):
        """Three patients, only the middle one active."""
        return BundleDocument(
            {
                "resourceType": "Bundle",
                "entry": [
                    {"resource": {"resourceType": "Patient", "id": "a", "active": False}},
                    {"resource": {"resourceType": "Observation", "id": "o"}},
                    {"resource": {"resourceType": "Patient", "id": "b", "active": True}},
                    {"resource": {"resourceType": "Patient", "id": "c"}},
                ],
            }
        )

    def test_all_keeps_bundle_order(self, bundle):
        """Every resource of the type, with real entry indices."""
        selected = select_instances(bundle, "Patient", AllInstances())
        assert [(s.entry_index, s.resource_id) for s in selected] == [(0, "a"), (2, "b"), (3, "c")]

    def test_first(self, bundle):
        """Only the first resource of the type."""
        selected = select_instances(bundle, "Patient", FirstInstance())
        assert [s.entry_index for s in selected] == [0]

    def test_filter_with_unquoted_boolean(self, bundle):
        """active = true matches JSON true only."""
        selected = select_instances(bundle, "Patient", FilteredInstances(condition="active = true"))
        assert [s.resource_id for s in selected] == ["b"]

    def test_filter_with_no_matches(self, bundle):
        """A filter may select nothing."""
        selected = select_instances(bundle, "Patient", FilteredInstances(condition="gender = 'male'"))
        assert selected == []

    def test_unparsable_filter(self, bundle):
        """A broken condition raises ScopeSelectionError."""
        with pytest.raises(ScopeSelectionError) as exc_info:
            select_instances(bundle, "Patient", FilteredInstances(condition="active = 'x"))
        assert exc_info.value.condition == "active = 'x"

    def test_bundle_relative_filter(self, bundle):
        """Bundle-relative conditions are refused before evaluation."""
        with pytest.raises(ScopeSelectionError):
            select_instances(bundle, "Patient", FilteredInstances(condition="entry.resource.id = 'a'"))

    def test_bundle_words_inside_literals(self):
        """Quoted values that mention a bundle or entry are plain data."""
        bundle = BundleDocument(
            {
                "resourceType": "Bundle",
                "entry": [
                    {"resource": {"resourceType": "Patient", "id": "a", "identifier": [{"system": "http://mybundle.org/id"}]}},
                    {"resource": {"resourceType": "Patient", "id": "b"}},
                ],
            }
        )
        scope = FilteredInstances(condition="identifier.system = 'http://mybundle.org/id'")
        assert scope.check() == (True, None)
        selected = select_instances(bundle, "Patient", scope)
        assert [s.resource_id for s in selected] == ["a"]
