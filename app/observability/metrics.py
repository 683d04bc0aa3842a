"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

import time
from enum import Enum
from typing import Callable

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    MODEL = "model"
    OUTCOME = "outcome"
    ORDER_KIND = "order_kind"
    ERROR_TYPE = "error_type"


class ConfluxMetrics:
    """
    Centralized metrics for the Conflux API.

    - HTTP requests (rate, duration, in flight)
    - Chat requests by outcome and fan-out width
    - Provider calls by model and outcome, with latency
    - Credits debited and added, accounts created
    - Orders created and settled
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "conflux_service",
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
            "conflux_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "conflux_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
        )

        self.http_requests_in_progress = Gauge(
            "conflux_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Chat Metrics
        # ====================================================================
        self.chat_requests_total = Counter(
            "conflux_chat_requests_total",
            "Chat requests by outcome",
            [MetricLabels.OUTCOME],
        )

        self.chat_fan_out_width = Histogram(
            "conflux_chat_fan_out_width",
            "Number of models per settled chat request",
            buckets=(1, 2, 3, 4, 5, 6),
        )

        # ====================================================================
        # Provider Metrics
        # ====================================================================
        self.provider_calls_total = Counter(
            "conflux_provider_calls_total",
            "Upstream LLM calls by model and outcome",
            [MetricLabels.MODEL, MetricLabels.OUTCOME],
        )

        self.provider_call_duration_seconds = Histogram(
            "conflux_provider_call_duration_seconds",
            "Upstream LLM call duration in seconds",
            [MetricLabels.MODEL],
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0),
        )

        # ====================================================================
        # Entitlement Metrics
        # ====================================================================
        self.credits_debited_total = Counter(
            "conflux_credits_debited_total",
            "Total credits spent on chat requests",
        )

        self.credits_added_total = Counter(
            "conflux_credits_added_total",
            "Total credits granted by purchases",
        )

        self.models_unlocked_total = Counter(
            "conflux_models_unlocked_total",
            "Premium model unlocks granted",
            [MetricLabels.MODEL],
        )

        self.accounts_created_total = Counter(
            "conflux_accounts_created_total",
            "Total accounts created",
        )

        # ====================================================================
        # Order Metrics
        # ====================================================================
        self.orders_created_total = Counter(
            "conflux_orders_created_total",
            "Hosted payment orders created",
            [MetricLabels.ORDER_KIND],
        )

        self.orders_settled_total = Counter(
            "conflux_orders_settled_total",
            "Orders reaching a terminal status",
            [MetricLabels.ORDER_KIND, MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "conflux_errors_total",
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

    def record_provider_call(self, model: str, outcome: str, duration: float) -> None:
        """Record one upstream call (outcome: success, error, timeout, unknown_model)."""
        self.provider_calls_total.labels(model=model, outcome=outcome).inc()
        self.provider_call_duration_seconds.labels(model=model).observe(duration)

    def record_chat_request(self, outcome: str, width: int = 0) -> None:
        """Record chat request outcome; width is observed for settled requests."""
        self.chat_requests_total.labels(outcome=outcome).inc()
        if width:
            self.chat_fan_out_width.observe(width)

    def record_order_settled(self, kind: str, outcome: str) -> None:
        """Record an order transition to success or failed."""
        self.orders_settled_total.labels(order_kind=kind, outcome=outcome).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = ConfluxMetrics()


class track_http_request:
    """
    Context manager for tracking HTTP requests.

    Usage:
        with track_http_request("/v1/chat", "POST") as tracker:
            # ... process request
            tracker.set_status_code(200)
    """

    def __init__(self, endpoint: str, method: str) -> None:
        self.endpoint = endpoint
        self.method = method
        self.status_code = 200
        self.start_time: float = 0.0

    def set_status_code(self, status_code: int) -> None:
        """Set the response status code."""
        self.status_code = status_code

    def __enter__(self) -> "track_http_request":
        """Start tracking."""
        self.start_time = time.time()
        metrics.http_requests_in_progress.labels(
            endpoint=self.endpoint, method=self.method
        ).inc()
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Record metrics."""
        duration = time.time() - self.start_time
        if exc_type is not None:
            self.status_code = 500
        metrics.record_http_request(self.endpoint, self.method, self.status_code, duration)
        metrics.http_requests_in_progress.labels(
            endpoint=self.endpoint, method=self.method
        ).dec()


def get_metrics_handler() -> Callable[[], bytes]:
    """Get Prometheus exposition handler."""
    from prometheus_client import REGISTRY, generate_latest

    def metrics_endpoint() -> bytes:
        return generate_latest(REGISTRY)

    return metrics_endpoint
