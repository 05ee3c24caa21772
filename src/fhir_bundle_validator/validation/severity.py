"""Severity resolution for business rule findings."""

from typing import Optional, Tuple, Union

from fhir_bundle_validator.models.rules import ValidationClass


class SeverityResolver:
    """Decide the effective severity of a rule finding.

    Contract and Structural rules always keep their configured severity.
    Advisory rules based on standard guidance (spec hints) or low-confidence
    heuristics are downgraded from error to warning.
    """

    def resolve(
        self,
        configured_severity: str,
        validation_class: Union[ValidationClass, str, None],
        is_heuristic: bool = False,
        is_spec_hint: bool = False,
    ) -> Tuple[str, Optional[str]]:
        """Resolve a severity.

        Returns:
            (effective severity, downgrade reason or None)
        """
        severity = (configured_severity or "error").lower()
        try:
            resolved_class = ValidationClass(validation_class or ValidationClass.ADVISORY)
        except ValueError:
            resolved_class = ValidationClass.ADVISORY

        if resolved_class in (ValidationClass.CONTRACT, ValidationClass.STRUCTURAL):
            return severity, None

        if severity == "error":
            if is_spec_hint:
                return "warning", "SpecHint advisory: HL7 required field guidance"
            if is_heuristic:
                return "warning", "Low confidence heuristic validation"
        return severity, None
