"""
Metrics Collection with Prometheus.

Exposes ticketing and system metrics for monitoring.
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
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class TicketingMetrics:
    """
    Centralized metrics for the ticketing API.

    Covers:
    - HTTP requests (rate, duration, in-flight)
    - Redemptions and scans by outcome
    - Optimistic-concurrency conflicts
    - Document store round trips
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "ticketing_service",
            "Service information",
        )
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
            "ticketing_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "ticketing_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "ticketing_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Workflow Metrics
        # ====================================================================
        self.redemptions_total = Counter(
            "ticketing_redemptions_total",
            "Access key redemptions by outcome",
            [MetricLabels.OUTCOME],
        )

        self.scans_total = Counter(
            "ticketing_scans_total",
            "Ticket scans by outcome",
            [MetricLabels.OUTCOME],
        )

        self.access_keys_issued_total = Counter(
            "ticketing_access_keys_issued_total",
            "Access keys issued by administrators",
        )

        self.conflicts_total = Counter(
            "ticketing_conditional_update_conflicts_total",
            "Conditional updates that lost a race",
            [MetricLabels.OPERATION],
        )

        # ====================================================================
        # Store Metrics
        # ====================================================================
        self.store_operations_total = Counter(
            "ticketing_store_operations_total",
            "Total document store operations",
            [MetricLabels.OPERATION, "success"],
        )

        self.store_operation_duration_seconds = Histogram(
            "ticketing_store_operation_duration_seconds",
            "Document store operation duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "ticketing_errors_total",
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

    def record_redemption(self, outcome: str) -> None:
        """Record a redemption attempt ("success" or the error class name)."""
        self.redemptions_total.labels(outcome=outcome).inc()

    def record_scan(self, outcome: str) -> None:
        """Record a scan attempt ("success" or the error class name)."""
        self.scans_total.labels(outcome=outcome).inc()

    def record_conflict(self, operation: str) -> None:
        self.conflicts_total.labels(operation=operation).inc()

    def record_store_operation(self, operation: str, success: bool, duration: float) -> None:
        """Record document store round trip."""
        self.store_operations_total.labels(operation=operation, success=str(success)).inc()
        self.store_operation_duration_seconds.labels(operation=operation).observe(duration)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = TicketingMetrics()
