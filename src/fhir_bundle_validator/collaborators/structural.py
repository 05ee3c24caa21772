"""Structural conformance using the fhirclient R4 models."""

import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

from fhirclient.models.bundle import Bundle, BundleEntry
from fhirclient.models.fhirabstractbase import FHIRValidationError

from fhir_bundle_validator.collaborators.base import BaseStructuralValidator
from fhir_bundle_validator.core.exceptions import CollaboratorError
from fhir_bundle_validator.models.errors import StructuralIssue
from fhir_bundle_validator.utils.logging import get_logger
from fhir_bundle_validator.validation import error_codes

logger = get_logger(__name__)

_QUOTED_NAME_RE = re.compile(r'"([^"]+)"')

SUPPORTED_VERSIONS = ("R4",)


class FhirClientStructuralValidator(BaseStructuralValidator):
    """Validates a Bundle by parsing it into strict fhirclient models.

    fhirclient stops at the first list item that fails, so the Bundle shell
    and each entry are parsed on their own. Each nested
    ``FHIRValidationError`` is flattened into one issue per problem with a
    ``Bundle.entry[i]...`` location.
    """

    async def validate(self, tree: Dict[str, Any], fhir_version: str) -> List[StructuralIssue]:
        """Validate a parsed Bundle."""
        if fhir_version not in SUPPORTED_VERSIONS:
            logger.warning(
                "structural_version_unsupported",
                fhir_version=fhir_version,
                validating_as="R4",
            )

        entries = tree.get("entry")
        shell = tree
        if isinstance(entries, list):
            shell = {key: value for key, value in tree.items() if key != "entry"}
        else:
            entries = []

        issues: List[StructuralIssue] = []
        issues.extend(self._parse(Bundle, shell, None))
        for index, entry in enumerate(entries):
            issues.extend(self._parse(BundleEntry, entry, f"entry.{index}"))

        if issues:
            logger.debug("structural_issues_found", count=len(issues))
        return issues

    @staticmethod
    def _parse(model: type, data: Any, prefix: Optional[str]) -> List[StructuralIssue]:
        try:
            model(jsondict=data, strict=True)
        except FHIRValidationError as e:
            return list(flatten_validation_error(e.prefixed(prefix) if prefix else e))
        except (TypeError, ValueError) as e:
            raise CollaboratorError(f"fhirclient could not parse the Bundle: {e}") from e
        return []


def flatten_validation_error(error: FHIRValidationError) -> Iterator[StructuralIssue]:
    """Turn a nested fhirclient validation error into structural issues.

    fhirclient already puts the property name in the path of a type
    mismatch; missing and unknown elements only name it in the message.
    """
    for path, leaf in _walk(error, []):
        element = _element_name(leaf)
        parts = list(path)
        if element and (not parts or parts[-1] != element):
            parts.append(element)
        location, entry_index = _to_location(parts)
        yield StructuralIssue(
            severity="error",
            code=_code_for(leaf),
            message=_message_for(leaf),
            location=location,
            entry_index=entry_index,
            details={"exceptionType": type(leaf).__name__},
        )


def _walk(error: FHIRValidationError, prefix: List[str]) -> Iterator[Tuple[List[str], Any]]:
    path = prefix + (error.path.split(".") if error.path else [])
    inner_errors = error.errors if isinstance(error.errors, list) else [error.errors]
    for inner in inner_errors:
        if isinstance(inner, FHIRValidationError):
            yield from _walk(inner, path)
        else:
            yield path, inner


def _element_name(leaf: Any) -> Optional[str]:
    if isinstance(leaf, (TypeError, KeyError, AttributeError)):
        match = _QUOTED_NAME_RE.search(_message_for(leaf))
        if match:
            return match.group(1)
    return None


def _to_location(parts: List[str]) -> Tuple[str, Optional[int]]:
    """Build ``Bundle.entry[1].resource.gender`` from ``entry.1.resource.gender``."""
    location = "Bundle"
    entry_index = None
    previous = None
    for part in parts:
        if part.isdigit():
            location += f"[{part}]"
            if previous == "entry" and entry_index is None:
                entry_index = int(part)
        else:
            # fhirclient suffixes Python keywords (class_, import_).
            location += "." + part.rstrip("_")
        previous = part
    return location, entry_index


def _code_for(leaf: Any) -> str:
    if isinstance(leaf, KeyError):
        return error_codes.STRUCTURE_REQUIRED_MISSING
    if isinstance(leaf, AttributeError):
        return error_codes.STRUCTURE_UNKNOWN_ELEMENT
    if isinstance(leaf, TypeError):
        return error_codes.STRUCTURE_TYPE_MISMATCH
    return error_codes.STRUCTURE_INVALID


def _message_for(leaf: Any) -> str:
    if isinstance(leaf, BaseException) and leaf.args:
        return str(leaf.args[0])
    return str(leaf)
