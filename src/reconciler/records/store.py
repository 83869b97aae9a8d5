"""Record store interface and in-memory implementation.

The reconciliation core depends only on the RecordStore protocol. It
assumes atomic single-record insert/update/upsert/delete but no
multi-record transactions spanning a lookup and the following write.

The PostgreSQL implementation lives in repository.py. InMemoryRecordStore
backs local development and the test-suite; it keeps a log of every write
so callers can assert on store side effects.
"""

import logging
import uuid
from typing import Dict, List, NamedTuple, Optional, Protocol, Type, runtime_checkable

from src.reconciler.errors import StorePersistenceError
from src.reconciler.records.models import IssueRecord, ProjectRecord, Record, WriteOptions


logger = logging.getLogger(__name__)


@runtime_checkable
class RecordStore(Protocol):
    """Protocol defining the persistence capability used by the core.

    Lookups return at most one record, since reconciliation keys are
    unique. Writes receive explicit WriteOptions.
    """

    async def get_issue(self, key: str) -> Optional[IssueRecord]:
        """Get an issue by its external key."""
        ...

    async def get_project(self, external_id: str) -> Optional[ProjectRecord]:
        """Get a project by its external numeric identifier."""
        ...

    async def insert(self, record: Record, options: WriteOptions) -> Record:
        """Insert a new record and return it with its local identity.

        Raises:
            StorePersistenceError: If a record with the same key exists or
                the store rejects the write.
        """
        ...

    async def update(self, record: Record, options: WriteOptions) -> Record:
        """Update an existing record identified by its local identity."""
        ...

    async def upsert(self, record: Record, options: WriteOptions) -> Record:
        """Insert or update a record keyed on its unique field."""
        ...

    async def delete(self, record: Record, options: WriteOptions) -> bool:
        """Delete a record. Returns True if a record was removed."""
        ...

    async def health_check(self) -> bool:
        """Return True if the store is reachable."""
        ...


class StoreWrite(NamedTuple):
    """One write applied to an InMemoryRecordStore."""

    operation: str
    entity: str
    key: str
    options: WriteOptions


class InMemoryRecordStore:
    """In-memory implementation of the RecordStore protocol.

    Records are stored per record class, indexed by their reconciliation
    key. Stored values are copies, so callers cannot mutate store state
    without going through a write.

    Attributes:
        writes: Ordered log of every successful write.
    """

    def __init__(self) -> None:
        self._records: Dict[Type[Record], Dict[str, Record]] = {
            IssueRecord: {},
            ProjectRecord: {},
        }
        self.writes: List[StoreWrite] = []

    def _table(self, record_type: Type[Record]) -> Dict[str, Record]:
        try:
            return self._records[record_type]
        except KeyError:
            raise StorePersistenceError(
                f"Unsupported record type: {record_type.__name__}"
            ) from None

    def _log(self, operation: str, record: Record, options: WriteOptions) -> None:
        self.writes.append(
            StoreWrite(operation, record.entity, record.unique_value, options)
        )
        logger.debug(
            "Applied in-memory write",
            extra={
                "operation": operation,
                "entity": record.entity,
                "key": record.unique_value,
                "suppress_downstream_automation": options.suppress_downstream_automation,
            },
        )

    async def get_issue(self, key: str) -> Optional[IssueRecord]:
        record = self._table(IssueRecord).get(key)
        return record.model_copy() if record is not None else None

    async def get_project(self, external_id: str) -> Optional[ProjectRecord]:
        record = self._table(ProjectRecord).get(external_id)
        return record.model_copy() if record is not None else None

    async def insert(self, record: Record, options: WriteOptions) -> Record:
        table = self._table(type(record))
        key = record.unique_value
        if key in table:
            raise StorePersistenceError(
                f"{record.entity.capitalize()} already exists for key: {key}"
            )
        stored = record.model_copy(update={"id": record.id or uuid.uuid4().hex})
        table[key] = stored
        self._log("insert", stored, options)
        return stored.model_copy()

    async def update(self, record: Record, options: WriteOptions) -> Record:
        table = self._table(type(record))
        current = table.get(record.unique_value)
        if current is None or current.id != record.id:
            raise StorePersistenceError(
                f"{record.entity.capitalize()} not found for update: {record.unique_value}"
            )
        stored = record.model_copy()
        table[record.unique_value] = stored
        self._log("update", stored, options)
        return stored.model_copy()

    async def upsert(self, record: Record, options: WriteOptions) -> Record:
        table = self._table(type(record))
        current = table.get(record.unique_value)
        local_id = current.id if current is not None else (record.id or uuid.uuid4().hex)
        stored = record.model_copy(update={"id": local_id})
        table[record.unique_value] = stored
        self._log("upsert", stored, options)
        return stored.model_copy()

    async def delete(self, record: Record, options: WriteOptions) -> bool:
        table = self._table(type(record))
        removed = table.pop(record.unique_value, None)
        if removed is None:
            return False
        if isinstance(removed, ProjectRecord):
            self._unlink_issues(removed.id)
        self._log("delete", record, options)
        return True

    def _unlink_issues(self, project_id: Optional[str]) -> None:
        # Mirrors ON DELETE SET NULL on issues.project_id
        issues = self._records[IssueRecord]
        for key, issue in issues.items():
            if issue.project_id is not None and issue.project_id == project_id:
                issues[key] = issue.model_copy(update={"project_id": None})

    async def health_check(self) -> bool:
        return True

    def clear(self) -> None:
        """Remove all records and the write log."""
        for table in self._records.values():
            table.clear()
        self.writes.clear()
