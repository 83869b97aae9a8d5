"""Outermost webhook boundary.

handle_webhook() is the single place where errors raised anywhere in
validation, dispatch, mapping or persistence are caught. Every call
returns a well-formed WebhookResponse; error detail travels only in the
message body.
"""

import logging
import time
from typing import Optional

from src.reconciler.metrics import WebhookMetrics
from src.reconciler.webhook.models import WebhookRequest, WebhookResponse, WebhookStatus
from src.reconciler.webhook.registry import WebhookTypeRegistry, extract_webhook_type


logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Webhook processed successfully"


async def handle_webhook(
    registry: WebhookTypeRegistry,
    path: str,
    request: WebhookRequest,
    metrics: Optional[WebhookMetrics] = None,
) -> WebhookResponse:
    """Dispatch a webhook and convert the outcome into a response.

    Args:
        registry: Registry used to select the processor.
        path: The request path the webhook was received on.
        request: The raw webhook request.
        metrics: Optional metrics container to record the outcome.

    Returns:
        ``success`` with a fixed message, or ``error`` with the error text.
        Unknown events and no-op deletes also report success.
    """
    webhook_type = extract_webhook_type(path)
    # Unregistered tokens come straight from the URL; keep label cardinality bounded
    metric_label = webhook_type if registry.get(webhook_type) is not None else "unsupported"
    started = time.monotonic()

    try:
        await registry.dispatch(webhook_type, request)
    except Exception as e:
        logger.exception(
            "Webhook processing failed",
            extra={"webhook_type": webhook_type, "error_type": type(e).__name__},
        )
        if metrics is not None:
            metrics.record_webhook(metric_label, success=False, error_type=type(e).__name__)
            metrics.record_duration(metric_label, time.monotonic() - started)
        return WebhookResponse(status=WebhookStatus.ERROR, message=str(e))

    if metrics is not None:
        metrics.record_webhook(metric_label, success=True)
        metrics.record_duration(metric_label, time.monotonic() - started)
    return WebhookResponse(status=WebhookStatus.SUCCESS, message=SUCCESS_MESSAGE)
