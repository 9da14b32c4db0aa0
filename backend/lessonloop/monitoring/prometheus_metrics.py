"""
Prometheus metrics for LessonLoop.

Service timings come from ``@BaseService.measure_operation``; the domain
counters below are incremented by the generator, billing and lesson services.
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "lessonloop_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "lessonloop_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "lessonloop_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

lessons_generated_total = Counter(
    "lessonloop_lessons_generated_total",
    "Lessons materialized from recurring slots",
    registry=REGISTRY,
)

billing_records_created_total = Counter(
    "lessonloop_billing_records_created_total",
    "Monthly billing records created",
    registry=REGISTRY,
)

version_conflicts_total = Counter(
    "lessonloop_version_conflicts_total",
    "Optimistic-lock conflicts on lesson updates",
    ["outcome"],
    registry=REGISTRY,
)

batch_job_runs_total = Counter(
    "lessonloop_batch_job_runs_total",
    "Background batch runs by job and outcome",
    ["job", "outcome"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Thin facade so callers do not touch metric objects directly."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'RecurringSlotService')
            operation: Operation/method name (e.g., 'book_recurring_slot')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_lessons_generated(count: int) -> None:
        if count > 0:
            lessons_generated_total.inc(count)

    @staticmethod
    def record_billing_records_created(count: int) -> None:
        if count > 0:
            billing_records_created_total.inc(count)

    @staticmethod
    def record_version_conflict(outcome: str) -> None:
        """``outcome`` is ``retried`` or ``surfaced``."""
        version_conflicts_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_batch_run(job: str, success: bool) -> None:
        batch_job_runs_total.labels(job=job, outcome="success" if success else "partial").inc()

    @staticmethod
    def get_metrics() -> bytes:
        return generate_latest(REGISTRY)

    @staticmethod
    def get_content_type() -> str:
        return str(CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
