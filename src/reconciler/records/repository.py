"""PostgreSQL record store for reconciled Issues and Projects.

This module implements the RecordStore protocol using asyncpg for async
PostgreSQL access. It provides:
- Connection pooling for production use
- Atomic single-record insert/update/upsert/delete
- Upsert keyed on each table's unique reconciliation key (ON CONFLICT)
- WriteOptions exposed to database triggers as a transaction-local setting

Triggers that should not fire for webhook-driven writes can check:

    current_setting('reconciler.suppress_automation', true) = 'on'

Source:
- SCHEMA (applied by create_schema())
- src/reconciler/records/store.py (RecordStore protocol)
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, NamedTuple, Optional, Tuple, Type

import asyncpg

from src.reconciler.errors import StorePersistenceError
from src.reconciler.records.models import IssueRecord, ProjectRecord, Record, WriteOptions


logger = logging.getLogger(__name__)

SUPPRESS_AUTOMATION_SETTING = "reconciler.suppress_automation"

SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    external_id TEXT NOT NULL UNIQUE,
    key TEXT,
    name TEXT,
    description TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS issues (
    id TEXT PRIMARY KEY,
    key TEXT NOT NULL UNIQUE,
    summary TEXT,
    description TEXT,
    status TEXT,
    issue_type TEXT,
    project_id TEXT REFERENCES projects (id) ON DELETE SET NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""


class _Table(NamedTuple):
    name: str
    unique_column: str
    columns: Tuple[str, ...]


_TABLES: Dict[Type[Record], _Table] = {
    IssueRecord: _Table(
        name="issues",
        unique_column="key",
        columns=("key", "summary", "description", "status", "issue_type", "project_id"),
    ),
    ProjectRecord: _Table(
        name="projects",
        unique_column="external_id",
        columns=("external_id", "key", "name", "description"),
    ),
}


def _table_for(record_type: Type[Record]) -> _Table:
    try:
        return _TABLES[record_type]
    except KeyError:
        raise StorePersistenceError(
            f"Unsupported record type: {record_type.__name__}"
        ) from None


class PostgresRecordStore:
    """PostgreSQL implementation of the RecordStore protocol.

    Every write runs in its own transaction; lookups run outside any
    transaction. No transaction spans a lookup and the following write.

    Attributes:
        connection_string: PostgreSQL connection URL.
        min_pool_size: Minimum connections in pool.
        max_pool_size: Maximum connections in pool.

    Example:
        >>> async with PostgresRecordStore("postgresql://...") as store:
        ...     issue = await store.get_issue("ENG-42")
    """

    def __init__(
        self,
        connection_string: str,
        min_pool_size: int = 2,
        max_pool_size: int = 10,
    ):
        self.connection_string = connection_string
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool, raising if not connected.

        Raises:
            StorePersistenceError: If the pool is not initialized.
        """
        if self._pool is None:
            raise StorePersistenceError(
                "Database pool not initialized. Call connect() first."
            )
        return self._pool

    async def connect(self) -> None:
        """Initialize the connection pool.

        Raises:
            StorePersistenceError: If connection fails.
        """
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        try:
            logger.info(
                "Connecting to PostgreSQL",
                extra={
                    "min_pool_size": self.min_pool_size,
                    "max_pool_size": self.max_pool_size,
                },
            )
            self._pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
            )
            logger.info("PostgreSQL connection pool established")
        except Exception as e:
            logger.error(
                "Failed to connect to PostgreSQL",
                extra={"error": str(e)},
            )
            raise StorePersistenceError(
                f"Failed to connect to PostgreSQL: {e}",
                original_error=e,
            ) from e

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            logger.info("Closing PostgreSQL connection pool")
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "PostgresRecordStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    async def create_schema(self) -> None:
        """Create the issues and projects tables if they do not exist."""
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA)
        logger.info("Record schema ensured")

    @asynccontextmanager
    async def _write(self, options: WriteOptions) -> AsyncIterator[asyncpg.Connection]:
        """Open a write transaction carrying the write options.

        Yields:
            A connection with an active transaction.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    "SELECT set_config($1, $2, true)",
                    SUPPRESS_AUTOMATION_SETTING,
                    "on" if options.suppress_downstream_automation else "off",
                )
                yield conn

    async def _fetch_one(
        self,
        record_type: Type[Record],
        value: str,
    ) -> Optional[Record]:
        table = _table_for(record_type)
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT id, {', '.join(table.columns)} FROM {table.name} "
                    f"WHERE {table.unique_column} = $1",
                    value,
                )
        except Exception as e:
            logger.error(
                "Failed to look up record",
                extra={"table": table.name, "key": value, "error": str(e)},
            )
            raise StorePersistenceError(
                f"Failed to look up {record_type.entity} {value}: {e}",
                original_error=e,
            ) from e

        if row is None:
            return None
        return record_type(**dict(row))

    async def get_issue(self, key: str) -> Optional[IssueRecord]:
        return await self._fetch_one(IssueRecord, key)

    async def get_project(self, external_id: str) -> Optional[ProjectRecord]:
        return await self._fetch_one(ProjectRecord, external_id)

    async def insert(self, record: Record, options: WriteOptions) -> Record:
        """Insert a new record.

        Raises:
            StorePersistenceError: If the key already exists or the insert fails.
        """
        table = _table_for(type(record))
        local_id = record.id or uuid.uuid4().hex
        values = [getattr(record, column) for column in table.columns]
        placeholders = ", ".join(f"${i}" for i in range(2, len(values) + 2))

        try:
            async with self._write(options) as conn:
                await conn.execute(
                    f"INSERT INTO {table.name} (id, {', '.join(table.columns)}) "
                    f"VALUES ($1, {placeholders})",
                    local_id,
                    *values,
                )
        except asyncpg.UniqueViolationError as e:
            logger.error(
                "Record already exists",
                extra={"table": table.name, "key": record.unique_value, "error": str(e)},
            )
            raise StorePersistenceError(
                f"{record.entity.capitalize()} already exists for key: {record.unique_value}",
                original_error=e,
            ) from e
        except Exception as e:
            logger.error(
                "Failed to insert record",
                extra={"table": table.name, "key": record.unique_value, "error": str(e)},
            )
            raise StorePersistenceError(
                f"Failed to insert {record.entity}: {e}",
                original_error=e,
            ) from e

        logger.info(
            "Inserted record",
            extra={"table": table.name, "key": record.unique_value, "id": local_id},
        )
        return record.model_copy(update={"id": local_id})

    async def update(self, record: Record, options: WriteOptions) -> Record:
        """Update an existing record by local identity.

        Raises:
            StorePersistenceError: If no row matches or the update fails.
        """
        table = _table_for(type(record))
        assignments = ", ".join(
            f"{column} = ${i}" for i, column in enumerate(table.columns, start=2)
        )

        try:
            async with self._write(options) as conn:
                result = await conn.execute(
                    f"UPDATE {table.name} SET {assignments}, updated_at = now() "
                    f"WHERE id = $1",
                    record.id,
                    *[getattr(record, column) for column in table.columns],
                )
        except Exception as e:
            logger.error(
                "Failed to update record",
                extra={"table": table.name, "key": record.unique_value, "error": str(e)},
            )
            raise StorePersistenceError(
                f"Failed to update {record.entity}: {e}",
                original_error=e,
            ) from e

        rows_affected = int(result.split()[-1])
        if rows_affected == 0:
            raise StorePersistenceError(
                f"{record.entity.capitalize()} not found for update: {record.unique_value}"
            )
        return record.model_copy()

    async def upsert(self, record: Record, options: WriteOptions) -> Record:
        """Insert or update a record keyed on its unique column.

        The local identity of an existing row is preserved.

        Raises:
            StorePersistenceError: If the upsert fails.
        """
        table = _table_for(type(record))
        values = [getattr(record, column) for column in table.columns]
        placeholders = ", ".join(f"${i}" for i in range(2, len(values) + 2))
        assignments = ", ".join(
            f"{column} = EXCLUDED.{column}"
            for column in table.columns
            if column != table.unique_column
        )

        try:
            async with self._write(options) as conn:
                local_id = await conn.fetchval(
                    f"INSERT INTO {table.name} (id, {', '.join(table.columns)}) "
                    f"VALUES ($1, {placeholders}) "
                    f"ON CONFLICT ({table.unique_column}) DO UPDATE "
                    f"SET {assignments}, updated_at = now() "
                    f"RETURNING id",
                    record.id or uuid.uuid4().hex,
                    *values,
                )
        except Exception as e:
            logger.error(
                "Failed to upsert record",
                extra={"table": table.name, "key": record.unique_value, "error": str(e)},
            )
            raise StorePersistenceError(
                f"Failed to upsert {record.entity}: {e}",
                original_error=e,
            ) from e

        logger.info(
            "Upserted record",
            extra={"table": table.name, "key": record.unique_value, "id": local_id},
        )
        return record.model_copy(update={"id": local_id})

    async def delete(self, record: Record, options: WriteOptions) -> bool:
        """Delete a record by its unique key.

        Returns:
            True if a row was deleted, False if not found.

        Raises:
            StorePersistenceError: If the delete fails.
        """
        table = _table_for(type(record))
        try:
            async with self._write(options) as conn:
                result = await conn.execute(
                    f"DELETE FROM {table.name} WHERE {table.unique_column} = $1",
                    record.unique_value,
                )
        except Exception as e:
            logger.error(
                "Failed to delete record",
                extra={"table": table.name, "key": record.unique_value, "error": str(e)},
            )
            raise StorePersistenceError(
                f"Failed to delete {record.entity}: {e}",
                original_error=e,
            ) from e

        rows_affected = int(result.split()[-1])
        if rows_affected > 0:
            logger.info(
                "Deleted record",
                extra={"table": table.name, "key": record.unique_value},
            )
        return rows_affected > 0

    async def health_check(self) -> bool:
        """Check if the database connection is healthy."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception as e:
            logger.warning(
                "Database health check failed",
                extra={"error": str(e)},
            )
            return False
