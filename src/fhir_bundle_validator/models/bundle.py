"""Indexed, read-only view over a FHIR Bundle document."""

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from fhir_bundle_validator.core.exceptions import InvalidBundleError
from fhir_bundle_validator.navigation.predicates import entry_matches_reference


@dataclass(frozen=True)
class BundleEntry:
    """One Bundle entry and its position."""

    index: int
    raw: Dict[str, Any]

    @property
    def full_url(self) -> Optional[str]:
        """Stable entry id, if the entry carries one."""
        value = self.raw.get("fullUrl")
        return value if isinstance(value, str) else None

    @property
    def resource(self) -> Optional[Dict[str, Any]]:
        """Raw resource JSON, or None when the entry has no object resource."""
        value = self.raw.get("resource")
        return value if isinstance(value, dict) else None

    @property
    def resource_type(self) -> Optional[str]:
        """The resource's declared resourceType."""
        resource = self.resource
        if resource is None:
            return None
        value = resource.get("resourceType")
        return value if isinstance(value, str) else None

    @property
    def resource_id(self) -> Optional[str]:
        """The resource's logical id."""
        resource = self.resource
        if resource is None:
            return None
        value = resource.get("id")
        return value if isinstance(value, str) else None

    def matches_reference(self, reference: str) -> bool:
        """Check whether a ``Type/id`` or fullUrl reference addresses this entry."""
        return entry_matches_reference(self.raw, reference)


class BundleDocument:
    """Bundle adapter addressing entries by their position.

    Entry order is the addressing key used for every JSON pointer
    (``/entry/{i}/resource/...``). The adapter never modifies the tree it
    wraps.
    """

    def __init__(self, tree: Dict[str, Any]):
        """Wrap an already parsed Bundle dictionary.

        Args:
            tree: Parsed Bundle JSON

        Raises:
            InvalidBundleError: If the tree is not a Bundle object
        """
        if not isinstance(tree, dict):
            raise InvalidBundleError("Bundle root must be a JSON object")
        if tree.get("resourceType") != "Bundle":
            raise InvalidBundleError(
                f"Expected resourceType 'Bundle', found {tree.get('resourceType')!r}"
            )
        self._tree = tree
        raw_entries = tree.get("entry")
        entries: List[BundleEntry] = []
        if isinstance(raw_entries, list):
            for index, raw in enumerate(raw_entries):
                if isinstance(raw, dict):
                    entries.append(BundleEntry(index=index, raw=raw))
        self._entries = tuple(entries)

    @classmethod
    def from_json(cls, bundle_json: str) -> "BundleDocument":
        """Parse raw JSON text into a document."""
        return cls(json.loads(bundle_json))

    @property
    def tree(self) -> Dict[str, Any]:
        """The underlying JSON tree."""
        return self._tree

    @property
    def fhir_type(self) -> Optional[str]:
        """Bundle.type (collection, transaction, ...)."""
        value = self._tree.get("type")
        return value if isinstance(value, str) else None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[BundleEntry]:
        return iter(self._entries)

    def entry(self, index: int) -> Optional[BundleEntry]:
        """Get the entry at a Bundle position, if it is an object."""
        for candidate in self._entries:
            if candidate.index == index:
                return candidate
        return None

    def entries_of_type(self, resource_type: str) -> List[BundleEntry]:
        """Entries whose resource has the given type, in Bundle order."""
        return [e for e in self._entries if e.resource_type == resource_type]

    def find_by_reference(self, reference: str) -> Optional[BundleEntry]:
        """Resolve a ``Type/id`` or fullUrl reference inside the Bundle."""
        for candidate in self._entries:
            if candidate.matches_reference(reference):
                return candidate
        return None
