"""Webhook processors: payload parsing, validation and event routing.

A processor implements two capabilities for one source system:
- validate(request): advisory pre-flight check, never raises
- process(request): parse, decode and route the event, raising on failure

The Jira processor recognises six event discriminators. Anything else is
accepted as a no-op so the tracker does not retry events this service has
no interest in.

Note: no authentication or payload-signature verification is performed
here. Any caller able to reach the endpoint can create, mutate or delete
records.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from src.reconciler.errors import MalformedPayloadError, MappingError
from src.reconciler.records.models import Record
from src.reconciler.records.reconcile import EVENT_ROUTES, PROJECT, Reconciler
from src.reconciler.webhook.models import (
    DISCRIMINATOR_FIELD,
    IssueEvent,
    ProjectEvent,
    WebhookEventType,
    WebhookRequest,
)


logger = logging.getLogger(__name__)


def parse_payload(body: bytes) -> Dict[str, Any]:
    """Parse a raw request body into a JSON object.

    Args:
        body: The raw request body.

    Returns:
        The decoded JSON object.

    Raises:
        MalformedPayloadError: If the body is not valid UTF-8 JSON or its
            top-level value is not an object.
    """
    try:
        document = json.loads(body)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedPayloadError(f"Malformed webhook payload: {e}") from e

    if not isinstance(document, dict):
        raise MalformedPayloadError(
            f"Malformed webhook payload: expected a JSON object, got {type(document).__name__}"
        )
    return document


class WebhookProcessor(ABC):
    """Abstract base for source-specific webhook processors."""

    @abstractmethod
    def validate(self, request: WebhookRequest) -> bool:
        """Return True if the request has the minimum shape to be processed."""

    @abstractmethod
    async def process(self, request: WebhookRequest) -> None:
        """Process the request, raising a ReconcilerError on failure."""


class JiraWebhookProcessor(WebhookProcessor):
    """Processor for Jira issue and project webhooks.

    Attributes:
        reconciler: Applies decoded events to the record store.
    """

    def __init__(self, reconciler: Reconciler):
        self.reconciler = reconciler

    def validate(self, request: WebhookRequest) -> bool:
        try:
            document = parse_payload(request.body)
        except MalformedPayloadError as e:
            logger.debug("Webhook failed validation: %s", e)
            return False

        if DISCRIMINATOR_FIELD not in document:
            logger.debug("Webhook failed validation: missing '%s'", DISCRIMINATOR_FIELD)
            return False
        return True

    async def process(self, request: WebhookRequest) -> None:
        document = parse_payload(request.body)

        event_type = self._parse_event_type(document.get(DISCRIMINATOR_FIELD))
        if event_type is None:
            logger.info(
                "Ignoring unsupported webhook event",
                extra={"webhook_event": document.get(DISCRIMINATOR_FIELD)},
            )
            return

        payload = self._decode(event_type, document)
        try:
            record = await self.reconciler.apply(event_type, payload)
        except Exception as e:
            logger.error(
                "Failed to reconcile webhook event",
                extra={"webhook_event": event_type.value, "error": str(e)},
            )
            raise

        logger.info(
            "Processed webhook event",
            extra={
                "webhook_event": event_type.value,
                "record_id": record.id if isinstance(record, Record) else None,
            },
        )

    def _parse_event_type(self, value: Any) -> Optional[WebhookEventType]:
        if not isinstance(value, str):
            return None
        try:
            return WebhookEventType(value)
        except ValueError:
            return None

    def _decode(self, event_type: WebhookEventType, document: Dict[str, Any]) -> BaseModel:
        """Decode the event document and return its issue or project sub-document.

        Raises:
            MappingError: If the required sub-document is missing or malformed.
        """
        _, kind = EVENT_ROUTES[event_type]
        model: Type[BaseModel] = ProjectEvent if kind is PROJECT else IssueEvent
        try:
            event = model.model_validate(document)
        except ValidationError as e:
            logger.error(
                "Failed to decode webhook event",
                extra={"webhook_event": event_type.value, "error": str(e)},
            )
            raise MappingError(
                f"Invalid {event_type.value} payload: {_summarize(e)}"
            ) from e

        return event.project if isinstance(event, ProjectEvent) else event.issue


def _summarize(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )
