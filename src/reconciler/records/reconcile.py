"""Generic create / upsert / delete reconciliation for tracker entities.

A single routine handles all six tracker events. Each event maps to an
operation and an EntityKind, which bundles the per-entity rules:
- how to extract the reconciliation key from the event sub-document
- how to look up the existing record by that key
- how to build a new record (create mapper)
- how to merge the sub-document into an existing record (partial update)

Operations:
- CREATE: map and insert; insert failures propagate unchanged
- UPSERT: look up by key, merge if found or create if not, then upsert
- DELETE: look up by key, delete if found, otherwise succeed as a no-op

Lookup-then-write sequences are serialised per (entity, key) inside this
process. Across processes the policy is last-writer-wins: upsert is atomic
on the unique key, and racing creates surface as StorePersistenceError.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Generic,
    Optional,
    Tuple,
    TypeVar,
)

from src.reconciler.records import mappers
from src.reconciler.records.models import IssueRecord, ProjectRecord, Record, WriteOptions
from src.reconciler.records.store import RecordStore
from src.reconciler.webhook.models import (
    IssueFields,
    IssuePayload,
    ProjectPayload,
    WebhookEventType,
)


logger = logging.getLogger(__name__)

P = TypeVar("P")
R = TypeVar("R", bound=Record)


class Operation(str, Enum):
    CREATE = "create"
    UPSERT = "upsert"
    DELETE = "delete"


@dataclass(frozen=True)
class EntityKind(Generic[P, R]):
    """Per-entity reconciliation rules.

    Attributes:
        name: Entity name used for logging and lock scoping.
        extract_key: Returns the reconciliation key of a sub-document.
        find: Looks up the stored record for a key.
        create: Builds a new record from a sub-document.
        merge: Applies a partial update to an existing record.
    """

    name: str
    extract_key: Callable[[P], str]
    find: Callable[[RecordStore, str], Awaitable[Optional[R]]]
    create: Callable[[P, RecordStore], Awaitable[R]]
    merge: Callable[[R, P, RecordStore], Awaitable[R]]


async def resolve_project_link(
    fields: Optional[IssueFields],
    store: RecordStore,
) -> Optional[str]:
    """Resolve the local identity of an issue's owning project.

    Best-effort: returns None when the payload names no project or no
    project with that external identifier has been stored yet.
    """
    if fields is None or fields.project is None or not fields.project.id:
        return None

    project = await store.get_project(fields.project.id)
    if project is None:
        logger.info(
            "Owning project not found, storing issue without project link",
            extra={"project_external_id": fields.project.id},
        )
        return None
    return project.id


async def _create_issue(payload: IssuePayload, store: RecordStore) -> IssueRecord:
    project_id = await resolve_project_link(payload.fields, store)
    return mappers.create_issue_record(payload, project_id)


async def _merge_issue(
    existing: IssueRecord,
    payload: IssuePayload,
    store: RecordStore,
) -> IssueRecord:
    project_id = await resolve_project_link(payload.fields, store)
    return mappers.merge_issue_record(existing, payload, project_id)


async def _create_project(payload: ProjectPayload, store: RecordStore) -> ProjectRecord:
    return mappers.create_project_record(payload)


async def _merge_project(
    existing: ProjectRecord,
    payload: ProjectPayload,
    store: RecordStore,
) -> ProjectRecord:
    return mappers.merge_project_record(existing, payload)


ISSUE = EntityKind[IssuePayload, IssueRecord](
    name=IssueRecord.entity,
    extract_key=lambda payload: payload.key,
    find=lambda store, key: store.get_issue(key),
    create=_create_issue,
    merge=_merge_issue,
)

PROJECT = EntityKind[ProjectPayload, ProjectRecord](
    name=ProjectRecord.entity,
    extract_key=lambda payload: payload.id,
    find=lambda store, key: store.get_project(key),
    create=_create_project,
    merge=_merge_project,
)

EVENT_ROUTES: Dict[WebhookEventType, Tuple[Operation, EntityKind]] = {
    WebhookEventType.ISSUE_CREATED: (Operation.CREATE, ISSUE),
    WebhookEventType.ISSUE_UPDATED: (Operation.UPSERT, ISSUE),
    WebhookEventType.ISSUE_DELETED: (Operation.DELETE, ISSUE),
    WebhookEventType.PROJECT_CREATED: (Operation.CREATE, PROJECT),
    WebhookEventType.PROJECT_UPDATED: (Operation.UPSERT, PROJECT),
    WebhookEventType.PROJECT_DELETED: (Operation.DELETE, PROJECT),
}


class KeyedLocks:
    """Async locks scoped to a key, released from memory when idle."""

    def __init__(self) -> None:
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._holders: Dict[Tuple[str, str], int] = {}

    @asynccontextmanager
    async def hold(self, entity: str, key: str) -> AsyncIterator[None]:
        scope = (entity, key)
        lock = self._locks.setdefault(scope, asyncio.Lock())
        self._holders[scope] = self._holders.get(scope, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[scope] -= 1
            if self._holders[scope] == 0:
                del self._holders[scope]
                del self._locks[scope]

    def __len__(self) -> int:
        return len(self._locks)


class Reconciler:
    """Applies tracker events to a RecordStore.

    Attributes:
        store: The record store capability.
        write_options: Options passed to every store write.

    Example:
        >>> reconciler = Reconciler(InMemoryRecordStore())
        >>> await reconciler.apply(WebhookEventType.ISSUE_UPDATED, issue_payload)
    """

    def __init__(
        self,
        store: RecordStore,
        write_options: Optional[WriteOptions] = None,
    ):
        self.store = store
        self.write_options = write_options or WriteOptions()
        self._locks = KeyedLocks()

    async def apply(self, event_type: WebhookEventType, payload: Any) -> Optional[Record]:
        """Route a decoded event sub-document to its reconciliation operation.

        Args:
            event_type: One of the six recognised event types.
            payload: The decoded ``issue`` or ``project`` sub-document.

        Returns:
            The written record, or None when nothing was written.
        """
        operation, kind = EVENT_ROUTES[event_type]
        if operation is Operation.CREATE:
            return await self.create(kind, payload)
        if operation is Operation.UPSERT:
            return await self.upsert(kind, payload)
        return await self.delete(kind, payload)

    async def create(self, kind: EntityKind[P, R], payload: P) -> R:
        """Build a new record and insert it."""
        key = kind.extract_key(payload)
        async with self._locks.hold(kind.name, key):
            record = await kind.create(payload, self.store)
            stored = await self.store.insert(record, self.write_options)

        logger.info(
            "Created record",
            extra={"entity": kind.name, "key": key, "record_id": stored.id},
        )
        return stored

    async def upsert(self, kind: EntityKind[P, R], payload: P) -> R:
        """Merge into the existing record, or create it when absent."""
        key = kind.extract_key(payload)
        async with self._locks.hold(kind.name, key):
            existing = await kind.find(self.store, key)
            if existing is None:
                logger.info(
                    "Record not found for update, creating it",
                    extra={"entity": kind.name, "key": key},
                )
                record = await kind.create(payload, self.store)
            else:
                record = await kind.merge(existing, payload, self.store)
            stored = await self.store.upsert(record, self.write_options)

        logger.info(
            "Upserted record",
            extra={"entity": kind.name, "key": key, "record_id": stored.id},
        )
        return stored

    async def delete(self, kind: EntityKind[P, R], payload: P) -> Optional[R]:
        """Delete the record for a key; absent records are a no-op."""
        key = kind.extract_key(payload)
        async with self._locks.hold(kind.name, key):
            existing = await kind.find(self.store, key)
            if existing is None:
                logger.info(
                    "Record already absent, nothing to delete",
                    extra={"entity": kind.name, "key": key},
                )
                return None
            await self.store.delete(existing, self.write_options)

        logger.info(
            "Deleted record",
            extra={"entity": kind.name, "key": key, "record_id": existing.id},
        )
        return existing
