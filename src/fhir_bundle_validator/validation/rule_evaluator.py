"""Business rule evaluation.

Each rule goes through the same steps:

1. static field path check
2. instance scope check
3. parameter check
4. instance selection
5. per-instance evaluation

A rule that fails steps 1-3, or whose scope cannot be applied, produces one
``RULE_CONFIGURATION_ERROR``. A rule whose expression fails while being
evaluated produces one ``RULE_DEFINITION_ERROR``. Neither affects other rules.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Pattern

from fhir_bundle_validator.core.exceptions import (
    PathParseError,
    RuleConfigurationError,
    RuleEvaluationError,
    ScopeSelectionError,
)
from fhir_bundle_validator.models.bundle import BundleDocument
from fhir_bundle_validator.models.errors import RuleViolation
from fhir_bundle_validator.models.rules import RuleDefinition, RuleType
from fhir_bundle_validator.navigation.navigator import PathMatch, PathNavigator
from fhir_bundle_validator.navigation.nodes import is_empty_value, to_text, values_equal
from fhir_bundle_validator.navigation.parser import (
    Condition,
    PathExpression,
    parse_condition,
    parse_path,
)
from fhir_bundle_validator.navigation.predicates import matches
from fhir_bundle_validator.utils.logging import get_logger
from fhir_bundle_validator.validation import error_codes
from fhir_bundle_validator.validation.field_path_validator import check_field_path
from fhir_bundle_validator.validation.scope_selector import (
    SelectedInstance,
    select_instances,
)

logger = get_logger(__name__)

# Parameters each rule type cannot run without.
REQUIRED_PARAMS: Dict[RuleType, List[str]] = {
    RuleType.FIXED_VALUE: ["value"],
    RuleType.ALLOWED_VALUES: ["values"],
    RuleType.REGEX: ["pattern"],
    RuleType.PATTERN: ["pattern"],
    RuleType.CODE_SYSTEM: ["system"],
}


@dataclass
class _RuleContext:
    """Per-rule state prepared once before instances are visited."""

    rule: RuleDefinition
    expression: Optional[PathExpression] = None
    condition: Optional[Condition] = None
    pattern: Optional[Pattern[str]] = None
    min_count: Optional[int] = None
    max_count: Optional[int] = None


class RuleEvaluator:
    """Evaluates project rules against a Bundle.

    The evaluator holds no per-run state; one instance can serve concurrent
    validations.
    """

    def __init__(self, navigator: Optional[PathNavigator] = None):
        """Initialize rule evaluator.

        Args:
            navigator: Shared path navigator
        """
        self.navigator = navigator or PathNavigator()
        self._handlers: Dict[
            RuleType, Callable[[_RuleContext, SelectedInstance], List[RuleViolation]]
        ] = {
            RuleType.REQUIRED: self._evaluate_required,
            RuleType.FIXED_VALUE: self._evaluate_fixed_value,
            RuleType.ALLOWED_VALUES: self._evaluate_allowed_values,
            RuleType.REGEX: self._evaluate_regex,
            RuleType.PATTERN: self._evaluate_regex,
            RuleType.ARRAY_LENGTH: self._evaluate_array_length,
            RuleType.CODE_SYSTEM: self._evaluate_code_system,
            RuleType.CUSTOM_FHIRPATH: self._evaluate_custom,
        }

    def evaluate(
        self, bundle: BundleDocument, rules: Iterable[RuleDefinition]
    ) -> List[RuleViolation]:
        """Evaluate every rule and collect all violations.

        Args:
            bundle: Bundle to validate
            rules: Rules to apply

        Returns:
            Violations in rule order, then instance order
        """
        violations: List[RuleViolation] = []
        for rule in rules:
            violations.extend(self.evaluate_rule(bundle, rule))
        return violations

    def evaluate_rule(
        self, bundle: BundleDocument, rule: RuleDefinition
    ) -> List[RuleViolation]:
        """Evaluate a single rule against every instance it applies to."""
        rule_type = rule.rule_type
        custom_expression = self._custom_expression(rule)

        if not (rule_type is RuleType.CUSTOM_FHIRPATH and not rule.field_path):
            valid, reason = check_field_path(rule.field_path, rule.resource_type)
            if not valid:
                logger.info(
                    "rule_field_path_rejected",
                    rule_id=rule.id,
                    field_path=rule.field_path,
                    reason=reason,
                )
                return [self._configuration_error(rule, reason=reason)]

        valid, reason = rule.instance_scope.check()
        if not valid:
            return [
                self._configuration_error(
                    rule, reason=reason, instanceScope=rule.instance_scope.key
                )
            ]

        if rule_type is RuleType.UNSUPPORTED:
            return [
                self._definition_error(
                    rule,
                    expression=rule.field_path,
                    exception_type="UnsupportedRuleType",
                    message=f"Unsupported rule type: {rule.type}",
                    category="UNSUPPORTED_RULE_TYPE",
                    suggestion=(
                        "Use one of: "
                        + ", ".join(
                            t.value for t in RuleType if t is not RuleType.UNSUPPORTED
                        )
                    ),
                )
            ]

        missing = self._missing_params(rule, rule_type)
        if missing:
            logger.info(
                "rule_configuration_error", rule_id=rule.id, missing_params=missing
            )
            return [self._configuration_error(rule, missingParams=missing)]

        if rule_type is RuleType.CUSTOM_FHIRPATH and not rule.error_code:
            return [
                self._definition_error(
                    rule,
                    expression=custom_expression,
                    exception_type="MissingErrorCode",
                    message="CustomFHIRPath rules must declare an errorCode",
                    category="RULE_DEFINITION",
                    suggestion="Add an errorCode to the rule",
                )
            ]

        context = _RuleContext(rule=rule)
        try:
            if rule_type is RuleType.CUSTOM_FHIRPATH:
                context.condition = parse_condition(custom_expression)
            else:
                context.expression = parse_path(rule.field_path)
        except PathParseError as e:
            return [
                self._definition_error(
                    rule,
                    expression=custom_expression or rule.field_path,
                    exception_type=type(e).__name__,
                    message=str(e),
                    category="FHIRPATH_SYNTAX",
                    suggestion="Check the expression syntax",
                )
            ]

        try:
            self._prepare_params(context, rule_type)
        except RuleConfigurationError as e:
            logger.info(
                "rule_configuration_error", rule_id=rule.id, invalid_params=e.invalid_params
            )
            return [
                self._configuration_error(
                    rule, invalidParams=e.invalid_params, reason=str(e)
                )
            ]

        try:
            instances = select_instances(bundle, rule.resource_type, rule.instance_scope)
        except ScopeSelectionError as e:
            logger.info("rule_scope_rejected", rule_id=rule.id, error=str(e))
            return [
                self._configuration_error(
                    rule, reason=str(e), instanceScope=rule.instance_scope.key
                )
            ]

        handler = self._handlers[rule_type]
        violations: List[RuleViolation] = []
        for instance in instances:
            try:
                violations.extend(handler(context, instance))
            except Exception as e:
                logger.warning(
                    "rule_evaluation_failed",
                    rule_id=rule.id,
                    entry_index=instance.entry_index,
                    exc_info=True,
                )
                return [
                    self._definition_error(
                        rule,
                        expression=custom_expression or rule.field_path,
                        exception_type=type(e).__name__,
                        message=str(e),
                        category="FHIRPATH_RUNTIME",
                        suggestion="Check the expression against the resource structure",
                    )
                ]
        return violations

    # Parameter handling

    @staticmethod
    def _custom_expression(rule: RuleDefinition) -> str:
        expression = rule.params.get("expression")
        if isinstance(expression, str) and expression.strip():
            return expression.strip()
        return rule.field_path

    @staticmethod
    def _missing_params(rule: RuleDefinition, rule_type: RuleType) -> List[str]:
        if rule_type is RuleType.ARRAY_LENGTH:
            if _is_missing(rule.params.get("min")) and _is_missing(rule.params.get("max")):
                return ["min or max"]
            return []
        return [
            key for key in REQUIRED_PARAMS.get(rule_type, []) if _is_missing(rule.params.get(key))
        ]

    @staticmethod
    def _prepare_params(context: _RuleContext, rule_type: RuleType) -> None:
        """Compile patterns and coerce bounds once per rule.

        Raises:
            RuleConfigurationError: If a parameter is present but unusable
        """
        rule = context.rule
        if rule_type in (RuleType.REGEX, RuleType.PATTERN):
            try:
                context.pattern = re.compile(str(rule.params["pattern"]))
            except re.error as e:
                raise RuleConfigurationError(f"Invalid pattern: {e}", ["pattern"]) from e
        elif rule_type is RuleType.ARRAY_LENGTH:
            try:
                context.min_count = _as_count(rule.params.get("min"))
                context.max_count = _as_count(rule.params.get("max"))
            except (TypeError, ValueError) as e:
                raise RuleConfigurationError(str(e), ["min", "max"]) from e

    # Rule type handlers

    def _select(self, context: _RuleContext, instance: SelectedInstance) -> List[PathMatch]:
        return self.navigator.select(
            instance.resource,
            context.expression,
            context.rule.resource_type,
            base_pointer=f"/entry/{instance.entry_index}/resource",
        )

    def _evaluate_required(
        self, context: _RuleContext, instance: SelectedInstance
    ) -> List[RuleViolation]:
        found = self._select(context, instance)
        if not found:
            return [
                self._violation(
                    context,
                    instance,
                    context.rule.error_code or error_codes.FIELD_REQUIRED,
                    {"isMissing": True, "isAllEmpty": False},
                )
            ]
        if all(is_empty_value(match.value) for match in found):
            return [
                self._violation(
                    context,
                    instance,
                    context.rule.error_code or error_codes.FIELD_REQUIRED,
                    {"isMissing": False, "isAllEmpty": True},
                    pointer=found[0].pointer,
                )
            ]
        return []

    def _evaluate_fixed_value(
        self, context: _RuleContext, instance: SelectedInstance
    ) -> List[RuleViolation]:
        expected = context.rule.params["value"]
        violations = []
        for match in self._select(context, instance):
            if not values_equal(match.value, expected):
                violations.append(
                    self._violation(
                        context,
                        instance,
                        error_codes.FIXED_VALUE_MISMATCH,
                        {"expected": expected, "actual": match.value},
                        pointer=match.pointer,
                    )
                )
        return violations

    def _evaluate_allowed_values(
        self, context: _RuleContext, instance: SelectedInstance
    ) -> List[RuleViolation]:
        allowed = context.rule.params["values"]
        if not isinstance(allowed, list):
            allowed = [allowed]
        violations = []
        for match in self._select(context, instance):
            if is_empty_value(match.value):
                continue
            if not any(values_equal(match.value, candidate) for candidate in allowed):
                violations.append(
                    self._violation(
                        context,
                        instance,
                        error_codes.VALUE_NOT_ALLOWED,
                        {"actual": match.value, "allowed": allowed},
                        pointer=match.pointer,
                    )
                )
        return violations

    def _evaluate_regex(
        self, context: _RuleContext, instance: SelectedInstance
    ) -> List[RuleViolation]:
        pattern = context.pattern
        violations = []
        for match in self._select(context, instance):
            text = to_text(match.value)
            if not text:
                continue
            if pattern is not None and not pattern.search(text):
                # PATTERN_MISMATCH regardless of the rule's errorCode.
                violations.append(
                    self._violation(
                        context,
                        instance,
                        error_codes.PATTERN_MISMATCH,
                        {"actual": text, "pattern": pattern.pattern},
                        pointer=match.pointer,
                    )
                )
        return violations

    def _evaluate_array_length(
        self, context: _RuleContext, instance: SelectedInstance
    ) -> List[RuleViolation]:
        count = len(self._select(context, instance))
        violation = None
        if context.min_count is not None and count < context.min_count:
            violation = "min"
        elif context.max_count is not None and count > context.max_count:
            violation = "max"
        if violation is None:
            return []

        details: Dict[str, Any] = {"count": count, "actual": count, "violation": violation}
        if context.min_count is not None:
            details["min"] = context.min_count
        if context.max_count is not None:
            details["max"] = context.max_count
        return [
            self._violation(context, instance, error_codes.ARRAY_LENGTH_VIOLATION, details)
        ]

    def _evaluate_code_system(
        self, context: _RuleContext, instance: SelectedInstance
    ) -> List[RuleViolation]:
        rule = context.rule
        expected_system = rule.params["system"]
        allowed_codes = rule.params.get("codes") or []
        if not isinstance(allowed_codes, list):
            allowed_codes = [allowed_codes]
        error_code = rule.error_code or error_codes.CODESYSTEM_VIOLATION

        found = self._select(context, instance)
        codings = _codings(found)
        if not codings:
            return []

        if not any(coding.value.get("system") == expected_system for coding in codings):
            return [
                self._violation(
                    context,
                    instance,
                    error_code,
                    {
                        "violation": "system",
                        "expectedSystem": expected_system,
                        "actualSystems": [c.value.get("system") for c in codings],
                    },
                    pointer=found[0].pointer,
                )
            ]

        violations = []
        if allowed_codes:
            for coding in codings:
                if coding.value.get("system") != expected_system:
                    continue
                code = coding.value.get("code")
                if code not in allowed_codes:
                    violations.append(
                        self._violation(
                            context,
                            instance,
                            error_code,
                            {
                                "violation": "code",
                                "expectedSystem": expected_system,
                                "actualCode": code,
                                "actualDisplay": coding.value.get("display"),
                                "allowedCodes": allowed_codes,
                            },
                            pointer=coding.pointer,
                        )
                    )
        return violations

    def _evaluate_custom(
        self, context: _RuleContext, instance: SelectedInstance
    ) -> List[RuleViolation]:
        try:
            satisfied = matches(context.condition, instance.resource)
        except TypeError as e:
            raise RuleEvaluationError(f"Cannot evaluate custom condition: {e}") from e
        if satisfied:
            return []
        return [
            self._violation(
                context,
                instance,
                context.rule.error_code or error_codes.RULE_DEFINITION_ERROR,
                {"expression": self._custom_expression(context.rule), "result": False},
                pointer=f"/entry/{instance.entry_index}/resource",
            )
        ]

    # Violation builders

    @staticmethod
    def _base_details(rule: RuleDefinition) -> Dict[str, Any]:
        return {
            "source": "ProjectRule",
            "resourceType": rule.resource_type,
            "path": rule.field_path,
            "ruleType": rule.type,
            "ruleId": rule.id,
        }

    def _violation(
        self,
        context: _RuleContext,
        instance: SelectedInstance,
        error_code: str,
        extra: Dict[str, Any],
        pointer: Optional[str] = None,
    ) -> RuleViolation:
        rule = context.rule
        details = self._base_details(rule)
        details.update(extra)
        details["explanation"] = error_codes.explain(rule.type, error_code, details)
        if rule.user_hint:
            details["userHint"] = rule.user_hint
        return RuleViolation(
            rule_id=rule.id,
            rule_type=rule.type,
            resource_type=rule.resource_type,
            field_path=rule.field_path,
            error_code=error_code,
            severity=rule.severity,
            entry_index=instance.entry_index,
            resource_id=instance.resource_id,
            details=details,
            json_pointer=pointer,
            validation_class=rule.validation_class.value,
            is_heuristic=rule.is_heuristic,
            is_spec_hint=rule.is_spec_hint,
            user_hint=rule.user_hint,
        )

    def _configuration_error(self, rule: RuleDefinition, **extra: Any) -> RuleViolation:
        details = self._base_details(rule)
        details.update({k: v for k, v in extra.items() if v is not None})
        details["explanation"] = error_codes.explain(
            rule.type, error_codes.RULE_CONFIGURATION_ERROR, details
        )
        return RuleViolation(
            rule_id=rule.id,
            rule_type=rule.type,
            resource_type=rule.resource_type,
            field_path=rule.field_path,
            error_code=error_codes.RULE_CONFIGURATION_ERROR,
            severity="error",
            details=details,
            validation_class=rule.validation_class.value,
        )

    def _definition_error(
        self,
        rule: RuleDefinition,
        expression: str,
        exception_type: str,
        message: str,
        category: str,
        suggestion: str,
    ) -> RuleViolation:
        details = self._base_details(rule)
        details.update(
            {
                "expression": expression,
                "exceptionType": exception_type,
                "exceptionMessage": message,
                "errorCategory": category,
                "suggestion": suggestion,
            }
        )
        details["explanation"] = error_codes.explain(
            rule.type, error_codes.RULE_DEFINITION_ERROR, details
        )
        return RuleViolation(
            rule_id=rule.id,
            rule_type=rule.type,
            resource_type=rule.resource_type,
            field_path=rule.field_path,
            error_code=error_codes.RULE_DEFINITION_ERROR,
            severity="error",
            details=details,
            validation_class=rule.validation_class.value,
        )


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    return False


def _as_count(value: Any) -> Optional[int]:
    if _is_missing(value):
        return None
    if isinstance(value, bool):
        raise TypeError("Array length bounds must be integers")
    count = int(value)
    if count < 0:
        raise ValueError("Array length bounds must not be negative")
    return count


def _codings(found: List[PathMatch]) -> List[PathMatch]:
    """Flatten CodeableConcepts into their codings; Codings pass through."""
    codings: List[PathMatch] = []
    for match in found:
        if not isinstance(match.value, dict):
            continue
        if "coding" in match.value:
            coding = match.value["coding"]
            if isinstance(coding, list):
                codings.extend(
                    PathMatch(item, f"{match.pointer}/coding/{i}")
                    for i, item in enumerate(coding)
                    if isinstance(item, dict)
                )
            elif isinstance(coding, dict):
                codings.append(PathMatch(coding, f"{match.pointer}/coding/0"))
        elif "system" in match.value or "code" in match.value:
            codings.append(match)
    return codings
