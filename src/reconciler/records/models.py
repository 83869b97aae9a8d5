"""Local record models for reconciled Issues and Projects.

This module defines the persisted representation of remote tracker
entities:
- IssueRecord: local copy of a remote issue, keyed by its issue key
- ProjectRecord: local copy of a remote project, keyed by its numeric id
- WriteOptions: per-write flags threaded explicitly through store calls

Each record class names its reconciliation key via ``unique_field``. The
``id`` field is the local identity assigned by the store on insert and
never participates in reconciliation.
"""

from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field


class WriteOptions(BaseModel):
    """Options passed explicitly to every store write.

    Attributes:
        suppress_downstream_automation: When True, automation reacting to
            record changes (database triggers, change listeners) should not
            fire for this write.
    """

    model_config = ConfigDict(frozen=True)

    suppress_downstream_automation: bool = Field(
        default=True,
        description="Skip downstream automation for webhook-driven writes",
    )


class Record(BaseModel):
    """Base class for records keyed by a stable external identifier."""

    model_config = ConfigDict(validate_assignment=True)

    entity: ClassVar[str] = "record"
    unique_field: ClassVar[str] = "id"

    id: Optional[str] = Field(
        default=None,
        description="Local identity assigned by the store on insert",
    )

    @property
    def unique_value(self) -> str:
        """Return the value of this record's reconciliation key."""
        return getattr(self, self.unique_field)


class IssueRecord(Record):
    """Local copy of a remote issue.

    Attributes:
        key: External issue key (e.g. "ENG-42"), immutable once assigned.
        summary: Display name of the issue.
        description: Optional long-form description.
        status: Free-form status label from the remote system.
        issue_type: Free-form issue-type label from the remote system.
        project_id: Local identity of the linked ProjectRecord, if resolved.
    """

    entity: ClassVar[str] = "issue"
    unique_field: ClassVar[str] = "key"

    key: str = Field(..., min_length=1, description="External issue key")
    summary: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    issue_type: Optional[str] = None
    project_id: Optional[str] = Field(
        default=None,
        description="Local identity of the owning project, if resolved",
    )


class ProjectRecord(Record):
    """Local copy of a remote project.

    Attributes:
        external_id: String-encoded numeric project identifier.
        key: Short project code (e.g. "ENG").
        name: Display name of the project.
        description: Optional long-form description.
    """

    entity: ClassVar[str] = "project"
    unique_field: ClassVar[str] = "external_id"

    external_id: str = Field(
        ..., min_length=1, description="External numeric project identifier"
    )
    key: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
