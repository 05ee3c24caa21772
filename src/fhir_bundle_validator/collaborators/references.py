"""Reference integrity checks across Bundle entries."""

from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple

from fhir_bundle_validator.collaborators.base import BaseReferenceValidator
from fhir_bundle_validator.config import get_settings
from fhir_bundle_validator.models.bundle import BundleDocument
from fhir_bundle_validator.models.errors import ReferenceIssue
from fhir_bundle_validator.models.request import ValidationSettings
from fhir_bundle_validator.utils.logging import get_logger
from fhir_bundle_validator.validation import error_codes

logger = get_logger(__name__)

# Checked in order; the first element name found in the path decides.
INFERRED_TARGET_TYPES: Tuple[Tuple[Tuple[str, ...], Tuple[str, ...]], ...] = (
    ((".subject",), ("Patient", "Group", "Device", "Location")),
    ((".performer", ".practitioner"), ("Practitioner", "PractitionerRole", "Organization")),
    ((".encounter",), ("Encounter",)),
    ((".location",), ("Location",)),
)

_SKIPPED_ELEMENTS = frozenset({"contained"})


class ReferenceTarget(NamedTuple):
    """A resource a reference can point to."""

    resource_type: str
    resource_id: str
    entry_index: int


class BundleReferenceValidator(BaseReferenceValidator):
    """Checks that references resolve inside the Bundle and hit the right type."""

    async def validate(
        self, bundle: BundleDocument, settings: Optional[ValidationSettings] = None
    ) -> List[ReferenceIssue]:
        """Find dangling and mistyped references."""
        policy = _policy(settings)
        lookup = build_lookup(bundle)
        issues: List[ReferenceIssue] = []

        for entry in bundle:
            resource = entry.resource
            if resource is None or entry.resource_type is None:
                continue
            seen = set()
            for path, reference in find_references(resource, entry.resource_type):
                target = reference.get("reference")
                if target in seen:
                    continue
                seen.add(target)
                issue = self._check(entry.index, entry.resource_type, entry.resource_id,
                                    path, reference, lookup, policy)
                if issue is not None:
                    issues.append(issue)

        logger.debug("reference_validation_completed", policy=policy, issues=len(issues))
        return issues

    @staticmethod
    def _check(
        entry_index: int,
        resource_type: str,
        resource_id: Optional[str],
        path: str,
        reference: Dict[str, Any],
        lookup: Dict[str, ReferenceTarget],
        policy: str,
    ) -> Optional[ReferenceIssue]:
        value = reference["reference"]
        target = lookup.get(value)

        if target is None:
            external_allowed = policy.lower() == "allowexternal"
            return ReferenceIssue(
                severity="warning" if external_allowed else "error",
                error_code=error_codes.REFERENCE_NOT_FOUND,
                resource_type=resource_type,
                field_path=path,
                reference=value,
                entry_index=entry_index,
                resource_id=resource_id,
                details={"reference": value, "policy": policy},
            )

        expected = expected_target_types(reference, path)
        if expected and target.resource_type not in expected:
            return ReferenceIssue(
                severity="error",
                error_code=error_codes.REFERENCE_TYPE_MISMATCH,
                resource_type=resource_type,
                field_path=path,
                reference=value,
                entry_index=entry_index,
                resource_id=resource_id,
                details={
                    "reference": value,
                    "expectedTypes": expected,
                    "actualType": target.resource_type,
                },
            )
        return None


def build_lookup(bundle: BundleDocument) -> Dict[str, ReferenceTarget]:
    """Index entries by fullUrl and by ``Type/id``."""
    lookup: Dict[str, ReferenceTarget] = {}
    for entry in bundle:
        resource_type = entry.resource_type
        if resource_type is None:
            continue
        resource_id = entry.resource_id or ""
        target = ReferenceTarget(resource_type, resource_id, entry.index)
        if entry.full_url:
            lookup[entry.full_url] = target
        if resource_id:
            lookup[f"{resource_type}/{resource_id}"] = target
    return lookup


def find_references(node: Any, path: str) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """Yield ``(path, reference)`` for every Reference element below a node.

    Paths carry array indices, e.g. ``Observation.performer[1]``. Contained
    references (``#id``) are skipped.
    """
    if isinstance(node, list):
        for index, item in enumerate(node):
            yield from find_references(item, f"{path}[{index}]")
        return
    if not isinstance(node, dict):
        return

    value = node.get("reference")
    if isinstance(value, str) and value and not value.startswith("#"):
        yield path, node

    for name, child in node.items():
        if name in _SKIPPED_ELEMENTS or not isinstance(child, (dict, list)):
            continue
        yield from find_references(child, f"{path}.{name}")


def expected_target_types(reference: Dict[str, Any], path: str) -> List[str]:
    """Types a reference may point to: its declared ``type`` plus path inference."""
    types: List[str] = []
    declared = reference.get("type")
    if isinstance(declared, str) and declared:
        types.append(declared)

    lowered = path.lower()
    for markers, inferred in INFERRED_TARGET_TYPES:
        if any(marker in lowered for marker in markers):
            types.extend(inferred)
            break
    return types


def _policy(settings: Optional[ValidationSettings]) -> str:
    if settings is not None and settings.reference_resolution_policy:
        return settings.reference_resolution_policy
    return get_settings().default_reference_policy
