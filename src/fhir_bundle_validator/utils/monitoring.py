"""Monitoring and observability utilities."""

from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

from fhir_bundle_validator.config import get_settings
from fhir_bundle_validator.utils.logging import get_logger

logger = get_logger(__name__)


class ValidationMetrics:
    """Prometheus metrics for validation runs."""

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        """Create the collectors on the given registry."""
        registry = registry if registry is not None else REGISTRY

        self.runs_total = Counter(
            "fhir_validation_runs_total",
            "Total number of bundle validation runs",
            ["mode"],
            registry=registry,
        )
        self.errors_total = Counter(
            "fhir_validation_errors_total",
            "Validation errors reported, by source and severity",
            ["source", "severity"],
            registry=registry,
        )
        self.stage_failures_total = Counter(
            "fhir_validation_stage_failures_total",
            "Pipeline stages that raised instead of returning issues",
            ["stage"],
            registry=registry,
        )
        self.duration_seconds = Histogram(
            "fhir_validation_duration_seconds",
            "Bundle validation latency",
            registry=registry,
        )

    def record_run(self, mode: str, counts: Dict[str, Dict[str, int]]) -> None:
        """Record one finished run.

        Args:
            mode: Validation mode of the run
            counts: Error counts keyed by source, then severity
        """
        if not get_settings().enable_metrics:
            return
        self.runs_total.labels(mode=mode).inc()
        for source, by_severity in counts.items():
            for severity, count in by_severity.items():
                if count:
                    self.errors_total.labels(source=source, severity=severity).inc(
                        count
                    )

    def record_stage_failure(self, stage: str) -> None:
        """Count a stage that was contained after raising."""
        if get_settings().enable_metrics:
            self.stage_failures_total.labels(stage=stage).inc()

    @contextmanager
    def track_duration(self) -> Iterator[None]:
        """Time the enclosed block."""
        if not get_settings().enable_metrics:
            yield
            return
        with self.duration_seconds.time():
            yield


_metrics: Optional[ValidationMetrics] = None


def get_metrics() -> ValidationMetrics:
    """Get the process-wide metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = ValidationMetrics()
        logger.debug("validation_metrics_registered")
    return _metrics
