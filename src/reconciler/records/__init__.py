"""Local records, store capability and reconciliation rules.

Record models and the store protocol are re-exported here; mappers and
the reconciliation routine are imported from their modules directly.
"""

from src.reconciler.records.models import (
    IssueRecord,
    ProjectRecord,
    Record,
    WriteOptions,
)
from src.reconciler.records.store import (
    InMemoryRecordStore,
    RecordStore,
    StoreWrite,
)

__all__ = [
    # Models
    "IssueRecord",
    "ProjectRecord",
    "Record",
    "WriteOptions",
    # Store
    "InMemoryRecordStore",
    "RecordStore",
    "StoreWrite",
]
