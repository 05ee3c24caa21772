"""Validation Pipeline.

Runs the validation layers over one Bundle and merges their findings into a
single ordered error list:

1. shape lint (debug mode only)
2. required-element hints (debug mode only)
3. structural conformance
4. business rules
5. screening domain rules
6. reference integrity

A stage that raises is reported as one ``PIPELINE_STAGE_ERROR`` and never
stops the stages after it.
"""

import asyncio
import json
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from fhir_bundle_validator.collaborators.base import (
    BaseDomainValidator,
    BaseReferenceValidator,
    BaseShapeLinter,
    BaseSpecHintProvider,
    BaseStructuralValidator,
)
from fhir_bundle_validator.collaborators.domain import ScreeningDomainValidator
from fhir_bundle_validator.collaborators.lint import JsonShapeLinter
from fhir_bundle_validator.collaborators.references import BundleReferenceValidator
from fhir_bundle_validator.collaborators.spec_hints import CatalogSpecHintProvider
from fhir_bundle_validator.collaborators.structural import FhirClientStructuralValidator
from fhir_bundle_validator.config import Settings, get_settings
from fhir_bundle_validator.core.exceptions import InvalidBundleError
from fhir_bundle_validator.models.bundle import BundleDocument
from fhir_bundle_validator.models.errors import ErrorSource, StageFailure, ValidationError
from fhir_bundle_validator.models.request import (
    ValidationMetadata,
    ValidationRequest,
    ValidationResult,
    ValidationSummary,
)
from fhir_bundle_validator.utils.logging import get_logger, validation_context
from fhir_bundle_validator.utils.monitoring import ValidationMetrics, get_metrics
from fhir_bundle_validator.validation import error_codes
from fhir_bundle_validator.validation.error_builder import ErrorModelBuilder
from fhir_bundle_validator.validation.rule_evaluator import RuleEvaluator

logger = get_logger(__name__)

StageRunner = Callable[[], Awaitable[List[ValidationError]]]


class ValidationPipeline:
    """Validates FHIR Bundles.

    The pipeline keeps no per-run state, so one instance can serve any number
    of concurrent validations.
    """

    def __init__(
        self,
        structural_validator: Optional[BaseStructuralValidator] = None,
        linter: Optional[BaseShapeLinter] = None,
        reference_validator: Optional[BaseReferenceValidator] = None,
        domain_validator: Optional[BaseDomainValidator] = None,
        rule_evaluator: Optional[RuleEvaluator] = None,
        error_builder: Optional[ErrorModelBuilder] = None,
        settings: Optional[Settings] = None,
        metrics: Optional[ValidationMetrics] = None,
        spec_hint_provider: Optional[BaseSpecHintProvider] = None,
    ):
        """Initialize validation pipeline.

        Args:
            structural_validator: Structural conformance layer
            linter: Shape linter used in debug mode
            reference_validator: Reference integrity layer
            domain_validator: Screening code master layer
            rule_evaluator: Business rule evaluator
            error_builder: Unified error model builder
            settings: Defaults for fields a request leaves unset
            metrics: Prometheus metrics sink
            spec_hint_provider: Required-element hints used in debug mode
        """
        self.structural_validator = structural_validator or FhirClientStructuralValidator()
        self.linter = linter or JsonShapeLinter()
        self.reference_validator = reference_validator or BundleReferenceValidator()
        self.domain_validator = domain_validator or ScreeningDomainValidator()
        self.rule_evaluator = rule_evaluator or RuleEvaluator()
        self.error_builder = error_builder or ErrorModelBuilder(
            navigator=self.rule_evaluator.navigator
        )
        self.settings = settings or get_settings()
        self.metrics = metrics or get_metrics()
        self.spec_hint_provider = spec_hint_provider or CatalogSpecHintProvider()

    def validate(self, request: ValidationRequest) -> ValidationResult:
        """Validate synchronously.

        Must not be called from a running event loop; use ``validate_async``
        there.
        """
        return asyncio.run(self.validate_async(request))

    async def validate_async(self, request: ValidationRequest) -> ValidationResult:
        """Validate a Bundle.

        Args:
            request: Bundle JSON, rules, code master and settings

        Returns:
            Ordered errors with summary and metadata

        Raises:
            ValueError: If request is None
            asyncio.CancelledError: If the run is cancelled between stages
        """
        if request is None:
            raise ValueError("Validation request cannot be None")

        started = time.perf_counter()
        fhir_version = request.fhir_version or self.settings.default_fhir_version
        mode = request.validation_mode or self.settings.default_validation_mode
        with validation_context(mode, fhir_version):
            logger.info("validation_started")
            with self.metrics.track_duration():
                try:
                    errors = await self._run(request, fhir_version, mode)
                except Exception as e:
                    logger.error("validation_failed", error=str(e), exc_info=True)
                    errors = [self.error_builder.pipeline_error(e)]

            summary = summarize(errors)
            result = ValidationResult(
                errors=errors,
                summary=summary,
                metadata=ValidationMetadata(
                    fhir_version=fhir_version,
                    validation_mode=mode,
                    processing_time_ms=int((time.perf_counter() - started) * 1000),
                    timestamp=datetime.now(timezone.utc),
                ),
            )
            self.metrics.record_run(mode, _counts_by_source(errors))
            logger.info(
                "validation_completed",
                total_errors=summary.total_errors,
                error_count=summary.error_count,
                warning_count=summary.warning_count,
                processing_time_ms=result.metadata.processing_time_ms,
            )
        return result

    async def _run(
        self, request: ValidationRequest, fhir_version: str, mode: str
    ) -> List[ValidationError]:
        builder = self.error_builder

        text = request.bundle_json
        if text is None or not text.strip():
            return [
                builder.input_error(
                    error_codes.EMPTY_BUNDLE,
                    error_codes.default_message(error_codes.EMPTY_BUNDLE),
                    {"reason": "NullOrEmpty"},
                )
            ]
        try:
            tree = json.loads(text)
        except json.JSONDecodeError as e:
            logger.info("bundle_json_invalid", line=e.lineno, column=e.colno)
            return [
                builder.input_error(
                    error_codes.INVALID_JSON,
                    f"Invalid JSON: {e.msg}",
                    {
                        "exceptionType": type(e).__name__,
                        "lineNumber": e.lineno,
                        "position": e.colno,
                    },
                )
            ]
        try:
            bundle = BundleDocument(tree)
        except InvalidBundleError as e:
            return [builder.input_error(e.error_code, str(e), _shape_details(tree))]

        errors: List[ValidationError] = []
        failures: List[StageFailure] = []

        async def lint() -> List[ValidationError]:
            issues = await self.linter.lint(tree, fhir_version)
            return builder.from_lint_issues(issues)

        async def spec_hints() -> List[ValidationError]:
            issues = await self.spec_hint_provider.check(tree, fhir_version)
            return builder.from_spec_hint_issues(issues)

        async def structure() -> List[ValidationError]:
            issues = await self.structural_validator.validate(tree, fhir_version)
            return builder.from_structural_issues(issues, tree)

        async def business() -> List[ValidationError]:
            violations = self.rule_evaluator.evaluate(bundle, request.rules.rules)
            return builder.from_rule_violations(violations, tree)

        async def domain() -> List[ValidationError]:
            issues = await self.domain_validator.validate(bundle, request.code_master)
            return builder.from_domain_issues(issues, tree)

        async def references() -> List[ValidationError]:
            issues = await self.reference_validator.validate(
                bundle, request.validation_settings
            )
            return builder.from_reference_issues(issues, tree)

        stages: List[Tuple[ErrorSource, StageRunner, bool]] = [
            (ErrorSource.LINT, lint, mode == "debug"),
            (ErrorSource.SPEC_HINT, spec_hints, mode == "debug"),
            (ErrorSource.STRUCTURE, structure, True),
            (ErrorSource.BUSINESS, business, bool(request.rules and request.rules.rules)),
            (ErrorSource.DOMAIN, domain, request.code_master is not None),
            (ErrorSource.REFERENCE, references, True),
        ]
        for stage, runner, enabled in stages:
            # Cancellation surfaces here, between stages.
            await asyncio.sleep(0)
            if enabled:
                errors.extend(await self._run_stage(stage, runner, failures))

        errors.extend(builder.from_stage_failures(failures))
        return builder.build(errors)

    async def _run_stage(
        self, stage: ErrorSource, runner: StageRunner, failures: List[StageFailure]
    ) -> List[ValidationError]:
        """Run one stage, containing any exception it raises."""
        try:
            return await runner()
        except Exception as e:
            logger.warning(
                "stage_failed", stage=stage.name, error=str(e), exc_info=True
            )
            self.metrics.record_stage_failure(stage.name)
            failures.append(
                StageFailure(
                    stage=stage.value,
                    exception_type=type(e).__name__,
                    exception_message=str(e),
                )
            )
            return []


def summarize(errors: List[ValidationError]) -> ValidationSummary:
    """Count errors by severity and by source."""
    by_source: Dict[str, int] = {}
    for error in errors:
        by_source[error.source] = by_source.get(error.source, 0) + 1
    return ValidationSummary(
        total_errors=len(errors),
        error_count=sum(1 for e in errors if e.severity == "error"),
        warning_count=sum(1 for e in errors if e.severity == "warning"),
        info_count=sum(1 for e in errors if e.severity == "info"),
        by_source=by_source,
    )


def _counts_by_source(errors: List[ValidationError]) -> Dict[str, Dict[str, int]]:
    counts: Dict[str, Dict[str, int]] = {}
    for error in errors:
        by_severity = counts.setdefault(error.source, {})
        by_severity[error.severity] = by_severity.get(error.severity, 0) + 1
    return counts


def _shape_details(tree: Any) -> Dict[str, Any]:
    if not isinstance(tree, dict):
        return {"actualType": type(tree).__name__}
    return {"actualResourceType": tree.get("resourceType")}
