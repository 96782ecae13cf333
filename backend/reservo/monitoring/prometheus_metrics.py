"""
Prometheus metrics module for the Reservo booking engine.

Exposes service-operation timings recorded by @measure_operation plus a few
admission-specific counters. All metrics live in a dedicated registry so the
engine can be embedded next to other instrumented code.
"""

from threading import Lock
from time import monotonic
from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "reservo_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "reservo_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "reservo_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

admission_decisions_total = Counter(
    "reservo_admission_decisions_total",
    "Booking admission decisions by outcome",
    ["outcome", "code"],  # outcome: admitted | validation | not_found | admission | conflict
    registry=REGISTRY,
)

admission_commit_retries_total = Counter(
    "reservo_admission_commit_retries_total",
    "Availability re-checks triggered by a lost commit race",
    ["mode"],  # capacity | resource
    registry=REGISTRY,
)

notification_failures_total = Counter(
    "reservo_notification_failures_total",
    "Notification events that could not be handed to the sink",
    ["event_type"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

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
            service: Service name (e.g., 'BookingAdmissionService')
            operation: Operation/method name (e.g., 'attempt_booking')
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
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_admission_decision(outcome: str, code: str = "") -> None:
        """Count an admission decision (admitted or the rejection kind)."""
        admission_decisions_total.labels(outcome=outcome, code=code).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_commit_retry(mode: str) -> None:
        """Count a re-check after a commit-time constraint violation."""
        admission_commit_retries_total.labels(mode=mode).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_notification_failure(event_type: str) -> None:
        notification_failures_total.labels(event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        now = monotonic()
        with PrometheusMetrics._cache_lock:
            payload = PrometheusMetrics._cache_payload
            ts = PrometheusMetrics._cache_ts
            if payload is not None and ts is not None and (now - ts) <= PrometheusMetrics._cache_ttl_seconds:
                return payload
            payload = generate_latest(REGISTRY)
            PrometheusMetrics._cache_payload = payload
            PrometheusMetrics._cache_ts = now
            return payload

    @staticmethod
    def get_content_type() -> str:
        return CONTENT_TYPE_LATEST

    @staticmethod
    def _invalidate_cache() -> None:
        """Invalidate cached metrics so next scrape refreshes."""

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


prometheus_metrics = PrometheusMetrics()
