"""Path parsing, condition evaluation and JSON navigation."""

from fhir_bundle_validator.navigation.navigator import PathMatch, PathNavigator
from fhir_bundle_validator.navigation.parser import (
    AllOf,
    AnyOf,
    ArrayIndex,
    Comparison,
    EntryReference,
    Existence,
    ExistsCheck,
    IsTrue,
    MemberAccess,
    PathExpression,
    PredicateFilter,
    normalize_path,
    parse_condition,
    parse_path,
)
from fhir_bundle_validator.navigation.predicates import collect, matches
from fhir_bundle_validator.navigation.structure import StructureHints

__all__ = [
    "AllOf",
    "AnyOf",
    "ArrayIndex",
    "Comparison",
    "EntryReference",
    "Existence",
    "ExistsCheck",
    "IsTrue",
    "MemberAccess",
    "PathExpression",
    "PathMatch",
    "PathNavigator",
    "PredicateFilter",
    "StructureHints",
    "collect",
    "matches",
    "normalize_path",
    "parse_condition",
    "parse_path",
]
