"""Pure mappers from remote event sub-documents to local records.

Each entity has two modes:
- create: every mapped attribute is written, absent source fields become None
- merge: an attribute is written only if its source field is present in
  the incoming document; absence never clears an existing value

Presence is taken from pydantic's ``model_fields_set``, so an explicit JSON
``null`` counts as present and clears the attribute, while an omitted key
leaves it untouched.

Project linkage for issues is resolved by the caller (see reconcile.py) and
handed in as ``project_id``; mappers never touch the store.
"""

from typing import Optional

from src.reconciler.errors import MappingError
from src.reconciler.records.models import IssueRecord, ProjectRecord
from src.reconciler.webhook.models import IssueFields, IssuePayload, NamedRef, ProjectPayload


def _require_fields(payload: IssuePayload) -> IssueFields:
    if payload.fields is None:
        raise MappingError(f"Issue {payload.key} is missing the 'fields' sub-document")
    return payload.fields


def _name_of(ref: Optional[NamedRef]) -> Optional[str]:
    return ref.name if ref is not None else None


def create_issue_record(
    payload: IssuePayload,
    project_id: Optional[str] = None,
) -> IssueRecord:
    """Build a brand-new IssueRecord from an issue sub-document.

    Args:
        payload: The decoded ``issue`` sub-document.
        project_id: Local identity of the resolved owning project, if any.

    Returns:
        A new, not yet persisted IssueRecord.

    Raises:
        MappingError: If the payload has no ``fields`` sub-document.
    """
    fields = _require_fields(payload)
    return IssueRecord(
        key=payload.key,
        summary=fields.summary,
        description=fields.description,
        status=_name_of(fields.status),
        issue_type=_name_of(fields.issue_type),
        project_id=project_id,
    )


def merge_issue_record(
    existing: IssueRecord,
    payload: IssuePayload,
    project_id: Optional[str] = None,
) -> IssueRecord:
    """Apply a partial update from an issue sub-document to an existing record.

    The existing record is not mutated; a merged copy is returned. When
    ``fields.project`` is present the link is set to the resolved project,
    or cleared if that project is not stored locally.

    Args:
        existing: The currently stored record.
        payload: The decoded ``issue`` sub-document.
        project_id: Local identity of the resolved owning project, if any.

    Returns:
        The merged IssueRecord carrying the existing local identity.

    Raises:
        MappingError: If the payload has no ``fields`` sub-document.
    """
    fields = _require_fields(payload)
    present = fields.model_fields_set
    changes = {}

    if "summary" in present:
        changes["summary"] = fields.summary
    if "description" in present:
        changes["description"] = fields.description
    if "status" in present:
        changes["status"] = _name_of(fields.status)
    if "issue_type" in present:
        changes["issue_type"] = _name_of(fields.issue_type)
    if "project" in present:
        changes["project_id"] = project_id

    return existing.model_copy(update=changes)


def create_project_record(payload: ProjectPayload) -> ProjectRecord:
    """Build a brand-new ProjectRecord from a project sub-document."""
    return ProjectRecord(
        external_id=payload.id,
        key=payload.key,
        name=payload.name,
        description=payload.description,
    )


def merge_project_record(
    existing: ProjectRecord,
    payload: ProjectPayload,
) -> ProjectRecord:
    """Apply a partial update from a project sub-document to an existing record."""
    present = payload.model_fields_set
    changes = {
        attr: getattr(payload, attr)
        for attr in ("key", "name", "description")
        if attr in present
    }
    return existing.model_copy(update=changes)
