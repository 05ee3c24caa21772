"""Collaborator interfaces consumed by the validation pipeline.

Each validation layer outside the rule engine is an async collaborator so
implementations backed by remote services fit the same pipeline.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from fhir_bundle_validator.models.bundle import BundleDocument
from fhir_bundle_validator.models.domain import DomainDefinition
from fhir_bundle_validator.models.errors import (
    DomainIssue,
    LintIssue,
    ReferenceIssue,
    SpecHintIssue,
    StructuralIssue,
)
from fhir_bundle_validator.models.request import ValidationSettings


class BaseShapeLinter(ABC):
    """Best-effort JSON shape checks."""

    @abstractmethod
    async def lint(self, tree: Any, fhir_version: str) -> List[LintIssue]:
        """Lint a parsed document.

        Args:
            tree: Parsed JSON, which may not even be an object
            fhir_version: FHIR version tag such as ``R4``

        Returns:
            Advisory issues
        """


class BaseSpecHintProvider(ABC):
    """Advisory hints for elements HL7 FHIR requires."""

    @abstractmethod
    async def check(self, tree: Dict[str, Any], fhir_version: str) -> List[SpecHintIssue]:
        """Find missing required elements in each entry's resource.

        Args:
            tree: Parsed Bundle JSON
            fhir_version: FHIR version tag

        Returns:
            Advisory issues; never blocking
        """


class BaseStructuralValidator(ABC):
    """Standards-based structural and type conformance."""

    @abstractmethod
    async def validate(self, tree: Dict[str, Any], fhir_version: str) -> List[StructuralIssue]:
        """Validate a Bundle against the FHIR structure definitions.

        Args:
            tree: Parsed Bundle JSON
            fhir_version: FHIR version tag

        Returns:
            Structural issues with location expressions
        """


class BaseReferenceValidator(ABC):
    """Cross-resource reference integrity."""

    @abstractmethod
    async def validate(
        self, bundle: BundleDocument, settings: Optional[ValidationSettings] = None
    ) -> List[ReferenceIssue]:
        """Find dangling and mistyped references.

        Args:
            bundle: Bundle to check
            settings: Request settings carrying the reference policy

        Returns:
            Reference issues
        """


class BaseDomainValidator(ABC):
    """Domain-specific answer validation."""

    @abstractmethod
    async def validate(
        self, bundle: BundleDocument, definition: DomainDefinition
    ) -> List[DomainIssue]:
        """Validate resources against a domain definition.

        Args:
            bundle: Bundle to check
            definition: Domain code master

        Returns:
            Domain violations
        """
