"""
Metrics Collection with Prometheus.

Exposes purchase and HTTP metrics for monitoring.
"""

from enum import StrEnum

from prometheus_client import Counter, Gauge, Histogram, Info


class MetricLabels(StrEnum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class PurchaseMetrics:
    """
    Centralized metrics for the recipe pack billing API.

    Covers:
    - HTTP requests (rate, duration, in-flight)
    - Checkout creation (success/failure)
    - Payment notifications (by outcome)
    - Purchase store operations (rate, duration, failures)
    - Errors by type
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "purchases_service",
            "Service information",
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "purchases_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "purchases_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "purchases_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Purchase Metrics
        # ====================================================================
        self.checkouts_total = Counter(
            "purchases_checkouts_total",
            "Total checkout creation attempts",
            ["success"],
        )

        self.notifications_total = Counter(
            "purchases_notifications_total",
            "Total payment notifications processed",
            [MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Store Metrics
        # ====================================================================
        self.store_operations_total = Counter(
            "purchases_store_operations_total",
            "Total purchase store operations",
            [MetricLabels.OPERATION, "success"],
        )

        self.store_operation_duration_seconds = Histogram(
            "purchases_store_operation_duration_seconds",
            "Purchase store operation duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "purchases_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def set_service_info(self, version: str, service_name: str) -> None:
        """Publish service name and version."""
        self.service_info.info({"version": version, "service_name": service_name})

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

    def record_checkout(self, success: bool) -> None:
        """Record checkout creation metrics."""
        self.checkouts_total.labels(success=str(success)).inc()

    def record_notification(self, outcome: str) -> None:
        """Record payment notification outcome."""
        self.notifications_total.labels(outcome=outcome).inc()

    def record_store_operation(self, operation: str, success: bool, duration: float) -> None:
        """Record purchase store operation metrics."""
        self.store_operations_total.labels(operation=operation, success=str(success)).inc()
        self.store_operation_duration_seconds.labels(operation=operation).observe(duration)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance (Prometheus collectors register once per process)
metrics = PurchaseMetrics()
