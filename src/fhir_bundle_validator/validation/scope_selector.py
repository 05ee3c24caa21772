"""Instance scope selector."""

from dataclasses import dataclass
from typing import Any, Dict, List, Union

from fhir_bundle_validator.core.exceptions import PathParseError, ScopeSelectionError
from fhir_bundle_validator.models.bundle import BundleDocument
from fhir_bundle_validator.models.instance_scope import (
    AllInstances,
    FilteredInstances,
    FirstInstance,
)
from fhir_bundle_validator.navigation.parser import parse_condition
from fhir_bundle_validator.navigation.predicates import matches


@dataclass(frozen=True)
class SelectedInstance:
    """A resource a rule applies to, with its Bundle position."""

    resource: Dict[str, Any]
    entry_index: int

    @property
    def resource_id(self) -> Any:
        """Logical id of the resource, if any."""
        return self.resource.get("id")


def select_instances(
    bundle: BundleDocument,
    resource_type: str,
    scope: Union[AllInstances, FirstInstance, FilteredInstances],
) -> List[SelectedInstance]:
    """Select the resources a rule applies to, in Bundle order.

    Args:
        bundle: Bundle being validated
        resource_type: Rule resource type
        scope: Instance scope of the rule

    Returns:
        Selected resources with their entry indices

    Raises:
        ScopeSelectionError: If a filter condition is invalid or cannot be parsed
    """
    candidates = [
        SelectedInstance(resource=entry.resource, entry_index=entry.index)
        for entry in bundle.entries_of_type(resource_type)
        if entry.resource is not None
    ]

    if isinstance(scope, FirstInstance):
        return candidates[:1]

    if isinstance(scope, FilteredInstances):
        valid, reason = scope.check()
        if not valid:
            raise ScopeSelectionError(reason or "Invalid filter condition", scope.condition)
        try:
            condition = parse_condition(scope.condition)
        except PathParseError as e:
            raise ScopeSelectionError(
                f"Failed to evaluate filter condition '{scope.condition}': {e}",
                scope.condition,
            ) from e
        return [c for c in candidates if matches(condition, c.resource)]

    return candidates
