"""
Metrics Collection with Prometheus.

Exposes submission, verification and ledger metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    PLATFORM = "platform"
    OUTCOME = "outcome"
    ERROR_KIND = "error_kind"
    ERROR_TYPE = "error_type"


class EntitlementMetrics:
    """
    Centralized metrics for the entitlement service.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Purchase submissions by outcome and error kind
    - Platform verification latency
    - Ledger writes and background log write failures
    """

    def __init__(self) -> None:
        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info("entitlement_service", "Service information")
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "entitlement_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "entitlement_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "entitlement_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Submission Metrics
        # ====================================================================
        self.submissions_total = Counter(
            "entitlement_submissions_total",
            "Purchase submissions by terminal outcome",
            [MetricLabels.PLATFORM, MetricLabels.OUTCOME, MetricLabels.ERROR_KIND],
        )

        self.submission_duration_seconds = Histogram(
            "entitlement_submission_duration_seconds",
            "End-to-end submission duration in seconds",
            [MetricLabels.PLATFORM],
            buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        # ====================================================================
        # Verification Metrics
        # ====================================================================
        self.verification_duration_seconds = Histogram(
            "entitlement_verification_duration_seconds",
            "Receipt verification duration in seconds",
            [MetricLabels.PLATFORM],
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        # ====================================================================
        # Ledger Metrics
        # ====================================================================
        self.purchases_recorded_total = Counter(
            "entitlement_purchases_recorded_total",
            "Ledger writes by whether a new row was created",
            [MetricLabels.PLATFORM, "created"],
        )

        self.log_write_failures_total = Counter(
            "entitlement_log_write_failures_total",
            "Transaction log entries that could not be written",
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "entitlement_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_submission(
        self, platform: str, success: bool, error_kind: str | None, duration: float
    ) -> None:
        """Record a terminal submission outcome."""
        self.submissions_total.labels(
            platform=platform,
            outcome="success" if success else "failure",
            error_kind=error_kind or "none",
        ).inc()
        self.submission_duration_seconds.labels(platform=platform).observe(duration)

    def record_verification(self, platform: str, duration: float) -> None:
        self.verification_duration_seconds.labels(platform=platform).observe(duration)

    def record_purchase(self, platform: str, created: bool) -> None:
        self.purchases_recorded_total.labels(platform=platform, created=str(created)).inc()

    def record_log_write_failure(self) -> None:
        self.log_write_failures_total.inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = EntitlementMetrics()
