"""Helpers for working with raw JSON nodes."""

from typing import Any, List, Optional, Tuple


def enumerate_sequence(node: Any) -> List[Tuple[Optional[int], Any]]:
    """Normalize a node to an indexable sequence.

    An array yields its non-null items with their indices, a bare object or
    scalar yields itself with index ``None`` (a one-element sequence), and a
    missing node yields nothing.
    """
    if node is None:
        return []
    if isinstance(node, list):
        return [(i, item) for i, item in enumerate(node) if item is not None]
    return [(None, node)]


def as_sequence(node: Any) -> List[Any]:
    """Items of ``enumerate_sequence`` without their indices."""
    return [item for _, item in enumerate_sequence(node)]


def to_text(value: Any) -> Optional[str]:
    """Render a JSON primitive the way FHIR serializes it.

    Objects and arrays have no text form and return ``None``.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, str)):
        return str(value)
    return None


def values_equal(actual: Any, expected: Any) -> bool:
    """Compare a JSON value with a literal."""
    if _is_number(actual) and _is_number(expected):
        return float(actual) == float(expected)
    if isinstance(actual, (dict, list)) or isinstance(expected, (dict, list)):
        return actual == expected
    actual_text = to_text(actual)
    return actual_text is not None and actual_text == to_text(expected)


def is_empty_value(value: Any) -> bool:
    """True for null, blank strings and empty containers."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def escape_pointer_token(token: str) -> str:
    """Escape one JSON pointer reference token."""
    return token.replace("~", "~0").replace("/", "~1")


def unescape_pointer_token(token: str) -> str:
    """Undo ``escape_pointer_token``."""
    return token.replace("~1", "/").replace("~0", "~")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
