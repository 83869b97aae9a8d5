"""Typed webhook payload models for issue-tracker events.

This module decodes the untyped JSON document of an inbound webhook into
per-event-kind structures with explicit optional fields. Decoding happens
once at the processor boundary; handlers and mappers only see these models.

Jira webhook payload structure (issue events):
{
  "webhookEvent": "jira:issue_updated",
  "issue": {
    "id": "10001",
    "key": "ENG-42",
    "fields": {
      "summary": "Fix login",
      "description": "Users cannot log in",
      "status": {"name": "In Progress"},
      "issuetype": {"name": "Bug"},
      "project": {"id": "101", "key": "ENG"}
    }
  }
}

Project events carry a top-level "project" object with id, key, name and
description. Field presence (not truthiness) drives partial updates, so
models keep pydantic's ``model_fields_set`` intact.
"""

from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

DISCRIMINATOR_FIELD = "webhookEvent"


class WebhookEventType(str, Enum):
    """Event discriminators recognised by the Jira processor.

    Issue events carry the ``jira:`` namespace prefix while project events
    do not; the values match the tracker's vocabulary exactly and are
    compared case-sensitively.
    """

    ISSUE_CREATED = "jira:issue_created"
    ISSUE_UPDATED = "jira:issue_updated"
    ISSUE_DELETED = "jira:issue_deleted"
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"
    PROJECT_DELETED = "project_deleted"


def _coerce_identifier(value: Any) -> Any:
    # Jira sends numeric ids as JSON numbers on project events and as
    # strings inside issue fields.
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


ExternalId = Annotated[str, BeforeValidator(_coerce_identifier)]


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class NamedRef(_Payload):
    """A nested object identified by its display name (status, issue type)."""

    name: Optional[str] = None


class ProjectRef(_Payload):
    """Reference to the owning project nested in an issue's fields."""

    id: Optional[ExternalId] = None
    key: Optional[str] = None


class IssueFields(_Payload):
    """The ``issue.fields`` sub-document. Every field is optional."""

    summary: Optional[str] = None
    description: Optional[str] = None
    status: Optional[NamedRef] = None
    issue_type: Optional[NamedRef] = Field(default=None, alias="issuetype")
    project: Optional[ProjectRef] = None


class IssuePayload(_Payload):
    """The ``issue`` sub-document of an issue event."""

    id: Optional[ExternalId] = None
    key: str = Field(..., min_length=1)
    fields: Optional[IssueFields] = None


class ProjectPayload(_Payload):
    """The ``project`` sub-document of a project event."""

    id: ExternalId = Field(..., min_length=1)
    key: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None


class IssueEvent(_Payload):
    """Decoded ``jira:issue_*`` event."""

    webhook_event: WebhookEventType = Field(..., alias=DISCRIMINATOR_FIELD)
    issue: IssuePayload


class ProjectEvent(_Payload):
    """Decoded ``project_*`` event."""

    webhook_event: WebhookEventType = Field(..., alias=DISCRIMINATOR_FIELD)
    project: ProjectPayload


class WebhookRequest(BaseModel):
    """Raw inbound webhook request as handed over by the transport layer."""

    body: bytes = b""
    headers: dict[str, str] = Field(default_factory=dict)


class WebhookStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class WebhookResponse(BaseModel):
    """Two-field response returned for every webhook call."""

    status: WebhookStatus
    message: str
