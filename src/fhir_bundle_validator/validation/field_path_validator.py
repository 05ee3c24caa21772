"""Static checks for rule field paths."""

import re
from typing import Optional, Tuple

from fhir_bundle_validator.navigation.parser import strip_literals

_LEADING_INDEX_RE = re.compile(r"^\[\d+\]")
_LEADING_WHERE_RE = re.compile(r"^\.?where\s*\(", re.IGNORECASE)
_BUNDLE_RE = re.compile(r"(^|\.)bundle(\.|\[|$)", re.IGNORECASE)
_LEADING_ENTRY_RE = re.compile(r"^entry(\.|\[|$)", re.IGNORECASE)


def check_field_path(
    field_path: Optional[str], resource_type: Optional[str]
) -> Tuple[bool, Optional[str]]:
    """Check a rule field path before any resource is touched.

    Field paths are resource-relative: ``gender``, ``name.family``,
    ``identifier.where(system='x').value``.

    Args:
        field_path: Path as written in the rule
        resource_type: The rule's resource type

    Returns:
        (True, None) when valid, otherwise (False, reason)
    """
    path = (field_path or "").strip()
    if not path:
        return False, "Field path cannot be empty"

    if resource_type:
        lowered = path.lower()
        prefix = resource_type.lower()
        if lowered == prefix or lowered.startswith(prefix + ".") or lowered.startswith(
            prefix + "["
        ):
            return (
                False,
                f"Field path must not start with the resource type '{resource_type}'; "
                f"use a path relative to {resource_type}",
            )

    if "[*]" in path:
        return False, "Field path must not contain wildcard array markers '[*]'"

    if _LEADING_INDEX_RE.match(path):
        return False, "Field path must not start with an array index"

    if _LEADING_WHERE_RE.match(path):
        return (
            False,
            "Field path must not start with a where() filter; use the instance "
            "scope to select resources",
        )

    # List.entry is a real element; everywhere else a leading entry is Bundle.entry.
    if _BUNDLE_RE.search(strip_literals(path)) or (
        _LEADING_ENTRY_RE.match(path) and resource_type != "List"
    ):
        return False, "Field path must not reference Bundle structure (Bundle/entry)"

    return True, None

