"""
Metrics Collection with Prometheus.

Exposes purchase, restore and catalog metrics for monitoring.
"""

from enum import Enum
from typing import Callable

from prometheus_client import Counter, Gauge, Histogram, Info

from iap_manager.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    OPERATION = "operation"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"
    EVENT_TYPE = "event_type"


class PurchaseMetrics:
    """
    Centralized metrics for the purchase manager.

    Covers:
    - Purchases (rate by outcome, duration)
    - Restores (rate by outcome, restored count)
    - Product requests (backend calls, cache hits/misses)
    - Busy indicator (in-flight operations)
    - Errors and subscriber failures
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "iap_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.service_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # Purchase Metrics
        # ====================================================================
        self.purchases_total = Counter(
            "iap_purchases_total",
            "Purchase outcomes",
            [MetricLabels.OUTCOME],
        )

        self.purchase_duration_seconds = Histogram(
            "iap_purchase_duration_seconds",
            "Time from submission to first backend outcome",
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
        )

        # ====================================================================
        # Restore Metrics
        # ====================================================================
        self.restores_total = Counter(
            "iap_restores_total",
            "Restore outcomes",
            [MetricLabels.OUTCOME],
        )

        self.restored_transactions = Histogram(
            "iap_restored_transactions",
            "Number of transactions returned by a restore",
            buckets=(0, 1, 2, 5, 10, 25, 50, 100),
        )

        # ====================================================================
        # Product Catalog Metrics
        # ====================================================================
        self.product_requests_total = Counter(
            "iap_product_requests_total",
            "Backend product requests",
            ["success"],
        )

        self.product_cache_lookups_total = Counter(
            "iap_product_cache_lookups_total",
            "Product cache lookups per identifier",
            ["hit"],
        )

        # ====================================================================
        # Busy Indicator
        # ====================================================================
        self.operations_in_progress = Gauge(
            "iap_operations_in_progress",
            "Number of store operations currently in flight",
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "iap_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

        self.handler_failures_total = Counter(
            "iap_event_handler_failures_total",
            "Subscriber handlers that raised during dispatch",
            [MetricLabels.EVENT_TYPE],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_purchase(self, outcome: str, duration: float | None = None) -> None:
        """Record a purchase outcome."""
        if not settings.metrics_enabled:
            return
        self.purchases_total.labels(outcome=outcome).inc()
        if duration is not None:
            self.purchase_duration_seconds.observe(duration)

    def record_restore(self, outcome: str, count: int = 0) -> None:
        """Record a restore outcome."""
        if not settings.metrics_enabled:
            return
        self.restores_total.labels(outcome=outcome).inc()
        if outcome != "failed":
            self.restored_transactions.observe(count)

    def record_product_request(self, success: bool) -> None:
        """Record a backend product request."""
        if not settings.metrics_enabled:
            return
        self.product_requests_total.labels(success=str(success)).inc()

    def record_cache_lookup(self, hits: int, misses: int) -> None:
        """Record per-identifier cache hits and misses."""
        if not settings.metrics_enabled:
            return
        if hits:
            self.product_cache_lookups_total.labels(hit="True").inc(hits)
        if misses:
            self.product_cache_lookups_total.labels(hit="False").inc(misses)

    def set_operations_in_progress(self, count: int) -> None:
        """Mirror the busy counter."""
        if not settings.metrics_enabled:
            return
        self.operations_in_progress.set(count)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        if not settings.metrics_enabled:
            return
        self.errors_total.labels(error_type=error_type, operation=operation).inc()

    def record_handler_failure(self, event_type: str) -> None:
        """Record a subscriber that raised."""
        if not settings.metrics_enabled:
            return
        self.handler_failures_total.labels(event_type=event_type).inc()


# Global metrics instance
metrics = PurchaseMetrics()


def get_metrics_handler() -> Callable[[], bytes]:
    """
    Get a Prometheus exposition handler.

    Usage:
        render = get_metrics_handler()
        body = render()
    """
    from prometheus_client import REGISTRY, generate_latest

    def metrics_endpoint() -> bytes:
        return generate_latest(REGISTRY)

    return metrics_endpoint
