"""Prometheus metrics for webhook processing.

Metrics Defined:
- reconciler_webhooks_total: Counter of webhooks handled, by type and result
- reconciler_webhook_errors_total: Counter of failed webhooks, by error type
- reconciler_webhook_duration_seconds: Histogram of processing time

Metrics are exposed at the `/metrics` endpoint in Prometheus format.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


logger = logging.getLogger(__name__)


# Webhook handling is a lookup plus one or two single-record writes
DEFAULT_DURATION_BUCKETS = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
)


class WebhookMetrics:
    """Container for all webhook Prometheus metrics.

    Supports custom registries for testing.

    Attributes:
        registry: The Prometheus registry for these metrics.
        webhooks_total: Counter for handled webhooks.
        webhook_errors_total: Counter for failed webhooks.
        webhook_duration_seconds: Histogram for processing duration.

    Example:
        >>> metrics = WebhookMetrics(registry=CollectorRegistry())
        >>> metrics.record_webhook("jira", success=True)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.webhooks_total = Counter(
            "reconciler_webhooks_total",
            "Total number of webhooks handled",
            labelnames=["webhook_type", "result"],
            registry=self.registry,
        )

        self.webhook_errors_total = Counter(
            "reconciler_webhook_errors_total",
            "Total number of webhooks that failed, by error type",
            labelnames=["webhook_type", "error_type"],
            registry=self.registry,
        )

        self.webhook_duration_seconds = Histogram(
            "reconciler_webhook_duration_seconds",
            "Time spent handling webhooks in seconds",
            labelnames=["webhook_type"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_webhook(
        self,
        webhook_type: str,
        success: bool,
        error_type: Optional[str] = None,
    ) -> None:
        """Record the outcome of one webhook.

        Args:
            webhook_type: The webhook type label.
            success: Whether the webhook was processed without error.
            error_type: Exception class name for failures.
        """
        result = "success" if success else "error"
        self.webhooks_total.labels(webhook_type=webhook_type, result=result).inc()
        if not success:
            self.webhook_errors_total.labels(
                webhook_type=webhook_type,
                error_type=error_type or "unknown",
            ).inc()

    def record_duration(self, webhook_type: str, duration_seconds: float) -> None:
        if duration_seconds < 0:
            logger.warning("Ignoring negative duration: %s", duration_seconds)
            return
        self.webhook_duration_seconds.labels(webhook_type=webhook_type).observe(
            duration_seconds
        )

    def generate(self) -> bytes:
        """Render all metrics in Prometheus text format."""
        return generate_latest(self.registry)
