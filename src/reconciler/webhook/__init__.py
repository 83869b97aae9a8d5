"""Tracker webhook handling.

This package receives raw tracker webhooks and routes them to processors:
- models: typed payload decoding and the request/response shapes
- processor: payload parsing, validation and event routing
- registry: webhook type name -> processor lookup and dispatch
- handler: the outermost boundary producing the webhook response

Requests are not authenticated or signature-verified.
"""

from .models import (
    IssueEvent,
    ProjectEvent,
    WebhookEventType,
    WebhookRequest,
    WebhookResponse,
    WebhookStatus,
)

__all__ = [
    "IssueEvent",
    "ProjectEvent",
    "WebhookEventType",
    "WebhookRequest",
    "WebhookResponse",
    "WebhookStatus",
]
