"""Path expression parser.

Parses the small FHIRPath subset used by rule field paths and filter
conditions:

- dotted member access (``name.given``)
- bracket indices (``name[0]``) and ``first()``
- filters (``identifier.where(system='http://x').value``) whose condition is
  an equality, an inequality, an existence check or a boolean member,
  optionally joined with ``and`` / ``or``
- a terminal ``exists()`` or ``empty()``

Anything else raises ``PathParseError``.
"""

import re
from dataclasses import dataclass
from typing import Any, List, Tuple, Union

from fhir_bundle_validator.core.exceptions import ConditionSyntaxError, PathParseError

_IDENTIFIER = r"[A-Za-z_][A-Za-z0-9_]*"
_MEMBER_RE = re.compile(rf"({_IDENTIFIER})?((?:\[[^\[\]]*\])*)")
_BRACKET_RE = re.compile(r"\[([^\[\]]*)\]")
_FUNCTION_RE = re.compile(rf"({_IDENTIFIER})\((.*)\)", re.DOTALL)
_INTEGER_RE = re.compile(r"-?\d+")
_DECIMAL_RE = re.compile(r"-?\d+\.\d+")
_BARE_TOKEN_RE = re.compile(r"[A-Za-z0-9_\-:/.|]+")


@dataclass(frozen=True)
class MemberAccess:
    """Step into an object property."""

    name: str


@dataclass(frozen=True)
class ArrayIndex:
    """Pick one item of the current sequence."""

    index: int


@dataclass(frozen=True)
class EntryReference:
    """Pick the Bundle entry addressed by ``Type/id`` or fullUrl."""

    reference: str


@dataclass(frozen=True)
class PredicateFilter:
    """Keep the items of the current sequence matching a condition."""

    condition: "Condition"
    source: str


@dataclass(frozen=True)
class ExistsCheck:
    """Terminal ``exists()`` (or ``empty()`` when negated)."""

    negated: bool = False


PathStep = Union[MemberAccess, ArrayIndex, EntryReference, PredicateFilter, ExistsCheck]


@dataclass(frozen=True)
class PathExpression:
    """Parsed path: ordered steps plus the text they came from."""

    steps: Tuple[PathStep, ...]
    source: str

    @property
    def is_existence_check(self) -> bool:
        """True when the path ends with ``exists()`` or ``empty()``."""
        return bool(self.steps) and isinstance(self.steps[-1], ExistsCheck)


@dataclass(frozen=True)
class Comparison:
    """``path = literal`` or ``path != literal``."""

    steps: Tuple[PathStep, ...]
    operator: str
    literal: Any


@dataclass(frozen=True)
class Existence:
    """``path.exists()`` or ``path.empty()``."""

    steps: Tuple[PathStep, ...]
    negated: bool = False


@dataclass(frozen=True)
class IsTrue:
    """A bare boolean path: every value reached must be ``true``."""

    steps: Tuple[PathStep, ...]


@dataclass(frozen=True)
class AllOf:
    """Conditions joined with ``and``."""

    operands: Tuple["Condition", ...]


@dataclass(frozen=True)
class AnyOf:
    """Conditions joined with ``or``."""

    operands: Tuple["Condition", ...]


Condition = Union[Comparison, Existence, IsTrue, AllOf, AnyOf]


def normalize_path(path: str) -> str:
    """Strip legacy Bundle-rooted forms from a path.

    ``Bundle.entry...`` paths keep working for locations reported by the
    structural validator; rule field paths using them are rejected separately.
    """
    normalized = (path or "").strip()
    normalized = normalized.replace(".ofType(Bundle)", "")
    if normalized.startswith("Bundle."):
        normalized = normalized[len("Bundle.") :]
    elif normalized == "Bundle":
        normalized = ""
    return normalized


def strip_literals(text: str) -> str:
    """Replace every quoted string literal with an empty one.

    Structural checks on a path or condition run on the result, so a URL
    such as ``'http://mybundle.org'`` is never mistaken for path syntax.
    """
    stripped: List[str] = []
    quote = ""
    i = 0
    while i < len(text):
        char = text[i]
        if quote:
            if char == "\\":
                i += 2
                continue
            if char == quote:
                stripped.append(quote * 2)
                quote = ""
        elif char in ("'", '"'):
            quote = char
        else:
            stripped.append(char)
        i += 1
    if quote:
        stripped.append(quote)
    return "".join(stripped)


def split_top_level(text: str, separator: str = ".") -> List[str]:
    """Split on a one-character separator outside quotes, parens and brackets.

    Raises:
        PathParseError: On unbalanced quotes or brackets
    """
    parts: List[str] = []
    depth = 0
    quote = ""
    start = 0
    i = 0
    while i < len(text):
        char = text[i]
        if quote:
            if char == "\\":
                i += 2
                continue
            if char == quote:
                quote = ""
        elif char in ("'", '"'):
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            depth -= 1
            if depth < 0:
                raise PathParseError(f"Unbalanced '{char}'", text, i)
        elif char == separator and depth == 0:
            parts.append(text[start:i])
            start = i + 1
        i += 1
    if quote:
        raise PathParseError("Unterminated string literal", text, len(text))
    if depth != 0:
        raise PathParseError("Unbalanced brackets", text, len(text))
    parts.append(text[start:])
    return parts


def parse_path(path: str) -> PathExpression:
    """Parse a path expression into ordered steps.

    Args:
        path: Path text, for example ``name.where(use='official').family``

    Returns:
        The parsed expression

    Raises:
        PathParseError: If the path is empty or uses unsupported syntax
    """
    text = (path or "").strip()
    if not text:
        raise PathParseError("Path cannot be empty", path or "")

    steps: List[PathStep] = []
    segments = split_top_level(text, ".")
    for position, segment in enumerate(segments):
        segment = segment.strip()
        if not segment:
            raise PathParseError("Empty path segment", text, position)
        steps.extend(_parse_segment(segment, text))

    for step in steps[:-1]:
        if isinstance(step, ExistsCheck):
            raise PathParseError("exists()/empty() must end the path", text)
    return PathExpression(steps=tuple(steps), source=text)


def _parse_segment(segment: str, path: str) -> List[PathStep]:
    function = _FUNCTION_RE.fullmatch(segment)
    if function:
        name, argument = function.group(1), function.group(2).strip()
        if name == "where":
            if not argument:
                raise ConditionSyntaxError("where() needs a condition", path)
            return [PredicateFilter(condition=parse_condition(argument), source=argument)]
        if name in ("exists", "empty"):
            if argument:
                raise PathParseError(f"{name}() takes no arguments", path)
            return [ExistsCheck(negated=name == "empty")]
        if name == "first":
            if argument:
                raise PathParseError("first() takes no arguments", path)
            return [ArrayIndex(0)]
        raise PathParseError(f"Unsupported function: {name}()", path)

    member = _MEMBER_RE.fullmatch(segment)
    if not member or not (member.group(1) or member.group(2)):
        raise PathParseError(f"Invalid path segment: {segment!r}", path)

    steps: List[PathStep] = []
    name = member.group(1)
    if name:
        steps.append(MemberAccess(name))
    for bracket in _BRACKET_RE.findall(member.group(2)):
        content = bracket.strip()
        if content.isdigit():
            steps.append(ArrayIndex(int(content)))
        elif content == "*":
            raise PathParseError("Wildcard indices are not supported", path)
        elif name == "entry" and content:
            steps.append(EntryReference(content))
        else:
            raise PathParseError(f"Invalid index: [{bracket}]", path)
    return steps


def parse_condition(text: str) -> Condition:
    """Parse a filter condition.

    Supported forms are ``path = literal``, ``path != literal``,
    ``path.exists()``, ``path.empty()``, a bare boolean path such as
    ``active`` and ``and`` / ``or`` combinations of them, with parentheses
    for grouping. ``$this`` refers to the item itself.

    Raises:
        ConditionSyntaxError: If the condition cannot be parsed
    """
    condition = (text or "").strip()
    if not condition:
        raise ConditionSyntaxError("Condition cannot be empty", text or "")

    try:
        while _is_wrapped(condition):
            condition = condition[1:-1].strip()

        alternatives = _split_keyword(condition, "or")
        if len(alternatives) > 1:
            return AnyOf(tuple(parse_condition(part) for part in alternatives))
        conjuncts = _split_keyword(condition, "and")
        if len(conjuncts) > 1:
            return AllOf(tuple(parse_condition(part) for part in conjuncts))

        operator_at, operator = _find_operator(condition)
        if operator_at >= 0:
            left = condition[:operator_at].strip()
            right = condition[operator_at + len(operator) :].strip()
            return Comparison(
                steps=_parse_operand_path(left, condition),
                operator="!=" if operator == "!=" else "=",
                literal=_parse_literal(right, condition),
            )

        expression = parse_path(condition)
    except ConditionSyntaxError:
        raise
    except PathParseError as e:
        raise ConditionSyntaxError(str(e), condition, e.position) from e

    if not expression.is_existence_check:
        if not any(isinstance(step, MemberAccess) for step in expression.steps):
            raise ConditionSyntaxError(
                "Condition must be a comparison, an exists()/empty() check or a boolean path",
                condition,
            )
        return IsTrue(steps=expression.steps)
    final = expression.steps[-1]
    return Existence(
        steps=expression.steps[:-1], negated=getattr(final, "negated", False)
    )


def _is_wrapped(text: str) -> bool:
    """True when the whole text sits inside one pair of parentheses."""
    if not (text.startswith("(") and text.endswith(")")):
        return False
    depth = 0
    quote = ""
    for i, char in enumerate(text):
        if quote:
            if char == quote:
                quote = ""
            continue
        if char in ("'", '"'):
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0 and i != len(text) - 1:
                return False
    return depth == 0


def _split_keyword(text: str, keyword: str) -> List[str]:
    """Split on a whitespace-delimited keyword at the top level."""
    pattern = re.compile(rf"\s+{keyword}\s+")
    parts: List[str] = []
    depth = 0
    quote = ""
    start = 0
    i = 0
    while i < len(text):
        char = text[i]
        if quote:
            if char == quote:
                quote = ""
        elif char in ("'", '"'):
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            depth -= 1
        elif depth == 0 and char.isspace():
            match = pattern.match(text, i)
            if match:
                parts.append(text[start:i].strip())
                i = match.end()
                start = i
                continue
        i += 1
    parts.append(text[start:].strip())
    if len(parts) > 1 and not all(parts):
        raise ConditionSyntaxError(f"Dangling '{keyword}'", text)
    return parts


def _find_operator(text: str) -> Tuple[int, str]:
    """Locate the first top-level ``!=``, ``==`` or ``=``."""
    depth = 0
    quote = ""
    for i, char in enumerate(text):
        if quote:
            if char == quote:
                quote = ""
            continue
        if char in ("'", '"'):
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            depth -= 1
        elif depth == 0:
            if text.startswith("!=", i):
                return i, "!="
            if text.startswith("==", i):
                return i, "=="
            if char == "=":
                return i, "="
    return -1, ""


def _parse_operand_path(text: str, condition: str) -> Tuple[PathStep, ...]:
    if text == "$this":
        return ()
    if not text:
        raise ConditionSyntaxError("Comparison is missing its left-hand path", condition)
    expression = parse_path(text)
    if expression.is_existence_check:
        raise ConditionSyntaxError("exists()/empty() cannot be compared", condition)
    return expression.steps


def _parse_literal(text: str, condition: str) -> Any:
    if not text:
        raise ConditionSyntaxError("Comparison is missing its value", condition)
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        body = text[1:-1]
        if re.search(rf"(?<!\\){text[0]}", body):
            raise ConditionSyntaxError("Malformed string literal", condition)
        return body.replace(f"\\{text[0]}", text[0]).replace("\\\\", "\\")
    if text[0] in ("'", '"'):
        raise ConditionSyntaxError("Unterminated string literal", condition)
    if text == "true":
        return True
    if text == "false":
        return False
    if _INTEGER_RE.fullmatch(text):
        return int(text)
    if _DECIMAL_RE.fullmatch(text):
        return float(text)
    if _BARE_TOKEN_RE.fullmatch(text):
        return text
    raise ConditionSyntaxError(f"Invalid literal: {text}", condition)
