"""Webhook type registry and dispatch.

This module maps webhook type names to their processors. The type name is
derived from the request path by the transport layer; adding a source
system means registering another processor, not touching dispatch.
"""

import logging
from typing import Dict, List, Optional

from src.reconciler.errors import MissingDiscriminatorError, UnsupportedWebhookTypeError
from src.reconciler.records.reconcile import Reconciler
from src.reconciler.webhook.models import WebhookRequest
from src.reconciler.webhook.processor import JiraWebhookProcessor, WebhookProcessor


logger = logging.getLogger(__name__)

WEBHOOK_PATH_SEGMENT = "/webhook/"


def extract_webhook_type(path: Optional[str]) -> str:
    """Reduce a request path to its lower-cased webhook type token.

    Takes everything after the literal ``/webhook/`` segment up to, but not
    including, the next ``/``.

    Args:
        path: The request path, e.g. ``/services/webhook/Jira/v1``.

    Returns:
        The type token (``"jira"`` for the example), or ``""`` when the path
        is empty or has no ``/webhook/`` segment.
    """
    if not path:
        return ""

    start = path.find(WEBHOOK_PATH_SEGMENT)
    if start == -1:
        return ""

    remainder = path[start + len(WEBHOOK_PATH_SEGMENT):]
    return remainder.split("/", 1)[0].lower()


class WebhookTypeRegistry:
    """Registry of webhook processors keyed by webhook type name.

    Attributes:
        validate_before_process: When True, dispatch calls the processor's
            validate() first and rejects requests that fail it. Disabled by
            default: processors run unconditionally and validate internally.
    """

    def __init__(self, validate_before_process: bool = False):
        self.validate_before_process = validate_before_process
        self._processors: Dict[str, WebhookProcessor] = {}

    def register(self, webhook_type: str, processor: WebhookProcessor) -> None:
        """Register a processor for a webhook type (case-insensitive)."""
        self._processors[webhook_type.lower()] = processor

    def get(self, webhook_type: str) -> Optional[WebhookProcessor]:
        return self._processors.get(webhook_type)

    def webhook_types(self) -> List[str]:
        return sorted(self._processors)

    async def dispatch(self, webhook_type: str, request: WebhookRequest) -> None:
        """Route a request to the processor registered for its type.

        Args:
            webhook_type: Lower-cased type token from extract_webhook_type().
            request: The raw webhook request.

        Raises:
            UnsupportedWebhookTypeError: If no processor is registered.
            MissingDiscriminatorError: If validation gating is enabled and
                the request fails validation.
        """
        processor = self.get(webhook_type)
        if processor is None:
            logger.warning(
                "No processor registered for webhook type",
                extra={"webhook_type": webhook_type},
            )
            raise UnsupportedWebhookTypeError(webhook_type)

        if self.validate_before_process and not processor.validate(request):
            raise MissingDiscriminatorError(
                f"Webhook payload for '{webhook_type}' failed validation"
            )

        await processor.process(request)


def create_webhook_registry(
    reconciler: Reconciler,
    validate_before_process: bool = False,
) -> WebhookTypeRegistry:
    """Factory function to create a registry with the default processors.

    Args:
        reconciler: Reconciler shared by the registered processors.
        validate_before_process: Gate process() on validate().

    Returns:
        A registry with the ``jira`` processor registered.
    """
    registry = WebhookTypeRegistry(validate_before_process=validate_before_process)
    registry.register("jira", JiraWebhookProcessor(reconciler))
    return registry
