"""Known repeating FHIR R4 elements.

Producers sometimes send a single object where FHIR declares an array
(``"performer": {...}`` instead of ``"performer": [{...}]``). Navigation
tolerates that shape, and uses these hints to address such an object as
item ``0`` of the array it should have been.
"""

from typing import Dict, FrozenSet, Iterable, Mapping, Optional

# Elements that repeat wherever they appear.
_ALWAYS_REPEATING = frozenset({"coding", "extension", "modifierextension", "contained"})

_REPEATING_BY_TYPE: Dict[str, FrozenSet[str]] = {
    "Observation": frozenset(
        {
            "identifier",
            "basedOn",
            "partOf",
            "category",
            "focus",
            "performer",
            "interpretation",
            "note",
            "referenceRange",
            "hasMember",
            "derivedFrom",
            "component",
            "component.interpretation",
            "component.referenceRange",
        }
    ),
    "Patient": frozenset(
        {
            "identifier",
            "name",
            "name.given",
            "name.prefix",
            "name.suffix",
            "telecom",
            "address",
            "address.line",
            "photo",
            "contact",
            "contact.telecom",
            "communication",
            "generalPractitioner",
            "link",
        }
    ),
    "Practitioner": frozenset(
        {
            "identifier",
            "name",
            "name.given",
            "telecom",
            "address",
            "address.line",
            "photo",
            "qualification",
            "communication",
        }
    ),
    "Organization": frozenset(
        {"identifier", "type", "alias", "telecom", "address", "contact", "endpoint"}
    ),
    "Encounter": frozenset(
        {
            "identifier",
            "statusHistory",
            "classHistory",
            "type",
            "episodeOfCare",
            "basedOn",
            "participant",
            "participant.type",
            "appointment",
            "reasonCode",
            "reasonReference",
            "diagnosis",
            "account",
            "location",
        }
    ),
    "Procedure": frozenset(
        {
            "identifier",
            "instantiatesCanonical",
            "instantiatesUri",
            "basedOn",
            "partOf",
            "reasonCode",
            "reasonReference",
            "bodySite",
            "performer",
            "report",
            "complication",
            "complicationDetail",
            "followUp",
            "note",
            "focalDevice",
            "usedReference",
            "usedCode",
        }
    ),
    "DiagnosticReport": frozenset(
        {
            "identifier",
            "basedOn",
            "category",
            "performer",
            "resultsInterpreter",
            "specimen",
            "result",
            "imagingStudy",
            "media",
            "conclusionCode",
            "presentedForm",
        }
    ),
    "Condition": frozenset(
        {"identifier", "category", "severity", "bodySite", "stage", "evidence", "note"}
    ),
    "Medication": frozenset({"identifier", "ingredient"}),
    "ServiceRequest": frozenset(
        {
            "identifier",
            "instantiatesCanonical",
            "instantiatesUri",
            "basedOn",
            "replaces",
            "category",
            "orderDetail",
            "performer",
            "locationCode",
            "locationReference",
            "reasonCode",
            "reasonReference",
            "insurance",
            "supportingInfo",
            "specimen",
            "bodySite",
            "note",
            "relevantHistory",
        }
    ),
}


class StructureHints:
    """Answers whether an element path is declared as repeating."""

    def __init__(self, repeating: Optional[Mapping[str, Iterable[str]]] = None):
        """Initialize with per-resource-type repeating element paths.

        Args:
            repeating: Resource type to dotted element paths; defaults to the
                built-in R4 table
        """
        table = repeating if repeating is not None else _REPEATING_BY_TYPE
        self._repeating = {
            resource_type: frozenset(p.lower() for p in paths)
            for resource_type, paths in table.items()
        }

    def is_repeating(self, resource_type: Optional[str], element_path: str) -> bool:
        """Check whether ``element_path`` repeats in ``resource_type``.

        Args:
            resource_type: Resource type such as ``Observation``
            element_path: Dotted element path without indices, e.g. ``code.coding``
        """
        if not element_path:
            return False
        path = element_path.lower()
        if path.rsplit(".", 1)[-1] in _ALWAYS_REPEATING:
            return True
        if not resource_type:
            return False
        return path in self._repeating.get(resource_type, frozenset())
