"""Instance scope: which resource instances a rule applies to."""

import re
from typing import Annotated, Any, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from fhir_bundle_validator.navigation.parser import strip_literals

_BUNDLE_STRUCTURE_RE = re.compile(r"(^|[^A-Za-z0-9_])(Bundle|entry)\s*[.\[]")


class AllInstances(BaseModel):
    """Apply the rule to every resource of the rule's type."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["all"] = "all"

    @property
    def key(self) -> str:
        """Stable key used for grouping and display."""
        return "all"

    def check(self) -> Tuple[bool, Optional[str]]:
        """Nothing to check for this scope."""
        return True, None


class FirstInstance(BaseModel):
    """Apply the rule to the first resource of the rule's type only."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["first"] = "first"

    @property
    def key(self) -> str:
        """Stable key used for grouping and display."""
        return "first"

    def check(self) -> Tuple[bool, Optional[str]]:
        """Nothing to check for this scope."""
        return True, None


class FilteredInstances(BaseModel):
    """Apply the rule to resources matching a resource-relative condition."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["filter"] = "filter"
    condition: str = ""

    @property
    def key(self) -> str:
        """Stable key used for grouping and display."""
        return f"filter:{self.condition}"

    def check(self) -> Tuple[bool, Optional[str]]:
        """Check the condition is usable.

        Returns:
            (True, None) when valid, otherwise (False, reason)
        """
        condition = (self.condition or "").strip()
        if not condition:
            return False, "Filter condition cannot be empty"
        if _BUNDLE_STRUCTURE_RE.search(strip_literals(condition)):
            return (
                False,
                "Filter condition must be resource-relative and must not "
                "reference Bundle or entry structure",
            )
        return True, None


InstanceScope = Annotated[
    Union[AllInstances, FirstInstance, FilteredInstances],
    Field(discriminator="kind"),
]

_scope_adapter: TypeAdapter = TypeAdapter(InstanceScope)


def parse_instance_scope(raw: Any) -> Union[AllInstances, FirstInstance, FilteredInstances]:
    """Build an instance scope from its JSON form.

    Accepts ``None`` (all instances), the shorthand strings ``"all"`` and
    ``"first"``, or an object with a ``kind`` discriminator.
    """
    if raw is None:
        return AllInstances()
    if isinstance(raw, (AllInstances, FirstInstance, FilteredInstances)):
        return raw
    if isinstance(raw, str):
        shorthand = raw.strip().lower()
        if shorthand in ("", "all"):
            return AllInstances()
        if shorthand == "first":
            return FirstInstance()
        raise ValueError(f"Unknown instance scope: {raw!r}")
    return _scope_adapter.validate_python(raw)
