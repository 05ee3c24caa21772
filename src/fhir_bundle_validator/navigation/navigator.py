"""Path navigator.

Maps logical field paths onto JSON pointers inside a Bundle tree, reads
pointers back, and selects the values a rule evaluates.

Two kinds of ``where()`` are distinguished by position:

- a predicate directly after the (optional) resource type, e.g.
  ``Observation.where(code.coding.code='HS').performer``, selects which Bundle
  entry the path applies to when no entry index is given; with an entry index
  it only guards that entry
- a predicate after a member, e.g. ``identifier.where(system='x').value``,
  filters that array inside the already selected resource
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from fhir_bundle_validator.core.exceptions import PathParseError
from fhir_bundle_validator.navigation.nodes import (
    enumerate_sequence,
    escape_pointer_token,
    unescape_pointer_token,
)
from fhir_bundle_validator.navigation.parser import (
    ArrayIndex,
    EntryReference,
    ExistsCheck,
    MemberAccess,
    PathExpression,
    PathStep,
    PredicateFilter,
    normalize_path,
    parse_path,
)
from fhir_bundle_validator.navigation.predicates import entry_matches_reference, matches
from fhir_bundle_validator.navigation.structure import StructureHints
from fhir_bundle_validator.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PathMatch:
    """A value reached by a path and the pointer addressing it."""

    value: Any
    pointer: str


class PathNavigator:
    """Stateless path resolver shared by every validation layer."""

    def __init__(self, hints: Optional[StructureHints] = None):
        """Initialize navigator.

        Args:
            hints: Repeating-element table used for bare-object tolerance
        """
        self.hints = hints or StructureHints()

    def resolve(
        self,
        tree: Any,
        path: str,
        resource_type: Optional[str] = None,
        entry_index: Optional[int] = None,
    ) -> Optional[str]:
        """Resolve a path to a JSON pointer within a Bundle tree.

        Args:
            tree: Parsed Bundle JSON
            path: Resource-relative path, optionally prefixed with the resource
                type, or a ``Bundle.entry...`` location
            resource_type: Resource type used when the path has no prefix
            entry_index: Entry to resolve in; when unset the first entry of the
                type (or the first matching a leading ``where()``) is used

        Returns:
            The pointer, or None when any part of the path does not resolve
        """
        if not isinstance(tree, dict) or not path:
            return None
        try:
            expression = parse_path(normalize_path(path))
        except PathParseError as e:
            logger.debug("path_not_parsed", path=path, error=str(e))
            return None

        steps = list(expression.steps)
        first = steps[0]
        if isinstance(first, MemberAccess) and first.name == "entry":
            return self._walk(tree, steps, "", None)

        if isinstance(first, MemberAccess) and first.name[:1].isupper():
            resource_type = first.name
            steps = steps[1:]
        if not resource_type:
            return None

        selected = self._select_entry(tree, steps, resource_type, entry_index)
        if selected is None:
            return None
        index, resource, steps = selected
        return self._walk(resource, steps, f"/entry/{index}/resource", resource_type)

    def read_pointer(self, tree: Any, pointer: str) -> Tuple[bool, Any]:
        """Read the value a pointer addresses.

        A ``0`` token on a bare object reads the object itself, matching the
        tolerance used when the pointer was produced.

        Returns:
            (found, value)
        """
        if pointer == "":
            return True, tree
        if not pointer or not pointer.startswith("/"):
            return False, None
        node = tree
        for raw_token in pointer[1:].split("/"):
            token = unescape_pointer_token(raw_token)
            if isinstance(node, list):
                if not token.isdigit() or int(token) >= len(node):
                    return False, None
                node = node[int(token)]
            elif isinstance(node, dict):
                if token in node:
                    node = node[token]
                elif token != "0":
                    return False, None
            else:
                return False, None
        return True, node

    def select(
        self,
        resource: Dict[str, Any],
        path: Union[str, PathExpression],
        resource_type: Optional[str] = None,
        base_pointer: str = "",
    ) -> List[PathMatch]:
        """Select every value a path reaches inside one resource.

        Arrays are flattened at each member step. A trailing ``exists()`` or
        ``empty()`` is ignored here; callers inspect the returned matches.

        Raises:
            PathParseError: If the path cannot be parsed
        """
        expression = parse_path(path) if isinstance(path, str) else path
        resource_type = resource_type or resource.get("resourceType")
        steps = expression.steps
        current = [PathMatch(resource, base_pointer)]
        element_path: List[str] = []

        for position, step in enumerate(steps):
            is_last = position == len(steps) - 1 or isinstance(
                steps[position + 1], ExistsCheck
            )
            if isinstance(step, MemberAccess):
                element_path.append(step.name)
                repeating = self.hints.is_repeating(resource_type, ".".join(element_path))
                reached: List[PathMatch] = []
                for match in current:
                    if not isinstance(match.value, dict):
                        continue
                    child_pointer = f"{match.pointer}/{escape_pointer_token(step.name)}"
                    for index, item in enumerate_sequence(match.value.get(step.name)):
                        if index is not None:
                            reached.append(PathMatch(item, f"{child_pointer}/{index}"))
                        elif isinstance(item, dict) and repeating and not is_last:
                            reached.append(PathMatch(item, f"{child_pointer}/0"))
                        else:
                            reached.append(PathMatch(item, child_pointer))
                current = reached
            elif isinstance(step, ArrayIndex):
                current = current[step.index : step.index + 1]
            elif isinstance(step, PredicateFilter):
                current = [m for m in current if matches(step.condition, m.value)]
            elif isinstance(step, EntryReference):
                current = [
                    m for m in current if entry_matches_reference(m.value, step.reference)
                ]
            elif isinstance(step, ExistsCheck):
                break
        return current

    def _select_entry(
        self,
        tree: Dict[str, Any],
        steps: List[PathStep],
        resource_type: str,
        entry_index: Optional[int],
    ) -> Optional[Tuple[int, Dict[str, Any], List[PathStep]]]:
        entries = tree.get("entry")
        if not isinstance(entries, list):
            return None

        guard = None
        if steps and isinstance(steps[0], PredicateFilter):
            guard = steps[0]
            steps = steps[1:]

        if entry_index is not None:
            resource = _entry_resource(entries, entry_index)
            if resource is None:
                return None
            if guard is not None and not matches(guard.condition, resource):
                return None
            return entry_index, resource, steps

        for index in range(len(entries)):
            resource = _entry_resource(entries, index)
            if resource is None or resource.get("resourceType") != resource_type:
                continue
            if guard is None or matches(guard.condition, resource):
                return index, resource, steps
        return None

    def _walk(
        self,
        node: Any,
        steps: Sequence[PathStep],
        pointer: str,
        resource_type: Optional[str],
    ) -> Optional[str]:
        element_path: List[str] = []
        position = 0
        while position < len(steps):
            step = steps[position]
            following = steps[position + 1] if position + 1 < len(steps) else None

            if isinstance(step, ExistsCheck):
                return pointer

            if isinstance(step, MemberAccess):
                if not isinstance(node, dict) or node.get(step.name) is None:
                    return None
                child = node[step.name]
                child_pointer = f"{pointer}/{escape_pointer_token(step.name)}"
                if step.name == "resource" and isinstance(child, dict):
                    resource_type = child.get("resourceType")
                    element_path = []
                else:
                    element_path.append(step.name)
                repeating = self.hints.is_repeating(resource_type, ".".join(element_path))

                located = self._enter(child, child_pointer, following, repeating)
                if located is None:
                    return None
                node, pointer, consumed = located
                position += 1 + consumed
                continue

            # Index or filter applied to the current node rather than a member.
            located = self._apply_to_node(node, pointer, step)
            if located is None:
                return None
            node, pointer = located
            position += 1
        return pointer

    def _enter(
        self,
        child: Any,
        child_pointer: str,
        following: Optional[PathStep],
        repeating: bool,
    ) -> Optional[Tuple[Any, str, int]]:
        """Step into a member value, consuming an index or filter that follows.

        Returns:
            (node, pointer, extra steps consumed), or None when not found
        """
        terminal = following is None or isinstance(following, ExistsCheck)
        items = enumerate_sequence(child)

        if isinstance(following, (ArrayIndex, PredicateFilter, EntryReference)):
            for offset, (index, item) in enumerate(items):
                if isinstance(following, ArrayIndex):
                    hit = (index if index is not None else offset) == following.index
                elif isinstance(following, PredicateFilter):
                    hit = matches(following.condition, item)
                else:
                    hit = entry_matches_reference(item, following.reference)
                if hit:
                    return item, self._item_pointer(child_pointer, index, item, repeating), 1
            return None

        if terminal or not isinstance(child, (list, dict)):
            return child, child_pointer, 0
        if not items:
            return None
        index, item = items[0]
        return item, self._item_pointer(child_pointer, index, item, repeating), 0

    def _apply_to_node(
        self, node: Any, pointer: str, step: PathStep
    ) -> Optional[Tuple[Any, str]]:
        for offset, (index, item) in enumerate(enumerate_sequence(node)):
            if isinstance(step, ArrayIndex):
                hit = (index if index is not None else offset) == step.index
            elif isinstance(step, PredicateFilter):
                hit = matches(step.condition, item)
            elif isinstance(step, EntryReference):
                hit = entry_matches_reference(item, step.reference)
            else:
                hit = False
            if hit:
                return item, pointer if index is None else f"{pointer}/{index}"
        return None

    @staticmethod
    def _item_pointer(
        child_pointer: str, index: Optional[int], item: Any, repeating: bool
    ) -> str:
        if index is not None:
            return f"{child_pointer}/{index}"
        if isinstance(item, dict) and repeating:
            return f"{child_pointer}/0"
        return child_pointer


def _entry_resource(entries: List[Any], index: int) -> Optional[Dict[str, Any]]:
    if not 0 <= index < len(entries):
        return None
    entry = entries[index]
    if not isinstance(entry, dict):
        return None
    resource = entry.get("resource")
    return resource if isinstance(resource, dict) else None
