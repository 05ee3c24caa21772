"""Condition evaluation over raw JSON nodes.

Conditions are evaluated with collection semantics: each path step flattens
arrays, and a bare object where an array was expected counts as a
one-element array.
"""

from typing import Any, List, Sequence

from fhir_bundle_validator.navigation.nodes import (
    as_sequence,
    is_empty_value,
    values_equal,
)
from fhir_bundle_validator.navigation.parser import (
    AllOf,
    AnyOf,
    ArrayIndex,
    Comparison,
    Condition,
    EntryReference,
    Existence,
    ExistsCheck,
    IsTrue,
    MemberAccess,
    PathStep,
    PredicateFilter,
)


def collect(node: Any, steps: Sequence[PathStep]) -> List[Any]:
    """Evaluate path steps against a node and return every value reached."""
    current = as_sequence(node)
    for step in steps:
        if isinstance(step, MemberAccess):
            reached: List[Any] = []
            for item in current:
                if isinstance(item, dict):
                    reached.extend(as_sequence(item.get(step.name)))
            current = reached
        elif isinstance(step, ArrayIndex):
            current = current[step.index : step.index + 1]
        elif isinstance(step, PredicateFilter):
            current = [item for item in current if matches(step.condition, item)]
        elif isinstance(step, EntryReference):
            current = [
                item for item in current if entry_matches_reference(item, step.reference)
            ]
        elif isinstance(step, ExistsCheck):
            break
    return current


def matches(condition: Condition, node: Any) -> bool:
    """Check whether a node satisfies a parsed condition."""
    if isinstance(condition, Comparison):
        values = collect(node, condition.steps)
        equal = any(values_equal(value, condition.literal) for value in values)
        if condition.operator == "!=":
            return bool(values) and not equal
        return equal
    if isinstance(condition, Existence):
        values = collect(node, condition.steps)
        if condition.negated:
            return all(is_empty_value(value) for value in values)
        return any(not is_empty_value(value) for value in values)
    if isinstance(condition, IsTrue):
        values = collect(node, condition.steps)
        return bool(values) and all(value is True for value in values)
    if isinstance(condition, AllOf):
        return all(matches(operand, node) for operand in condition.operands)
    if isinstance(condition, AnyOf):
        return any(matches(operand, node) for operand in condition.operands)
    raise TypeError(f"Unknown condition type: {type(condition).__name__}")


def entry_matches_reference(entry: Any, reference: str) -> bool:
    """Check a raw Bundle entry against a ``Type/id`` or fullUrl reference."""
    if not isinstance(entry, dict):
        return False
    if entry.get("fullUrl") == reference:
        return True
    resource = entry.get("resource")
    if isinstance(resource, dict):
        resource_type = resource.get("resourceType")
        resource_id = resource.get("id")
        if resource_type and resource_id:
            return reference == f"{resource_type}/{resource_id}"
    return False
