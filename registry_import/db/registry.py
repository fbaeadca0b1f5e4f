from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Protocol

import psycopg2
import psycopg2.extras

from ..models.import_batch import BatchStatus, ImportBatch
from ..models.target_fields import FIELD_NAMES

"""Company registry store.

Contract used by the pipeline:

    insert(record, batch_id) -> id            (RegistryInsertError on failure)
    list_by_batch(batch_id) -> [id]
    delete_by_batch(batch_id) -> count
    delete_all() -> count
    query_identity() -> [{id, name, tax_id}]

plus the import_batches bookkeeping (create / finalize / get / delete).

PostgresRegistry commits every insert on its own so one failing row never
takes earlier rows with it. InMemoryRegistry implements the same contract for
dry runs and tests.
"""

logger = logging.getLogger(__name__)

COMPANIES_TABLE = "companies"
BATCHES_TABLE = "import_batches"
BATCH_COLUMN = "import_batch_id"

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {BATCHES_TABLE} (
    id text PRIMARY KEY,
    filename text NOT NULL,
    created_at timestamptz NOT NULL,
    total_records integer NOT NULL,
    successful_records integer NOT NULL DEFAULT 0,
    error_records integer NOT NULL DEFAULT 0,
    duplicate_records integer NOT NULL DEFAULT 0,
    skipped_records integer NOT NULL DEFAULT 0,
    status text NOT NULL
);
CREATE TABLE IF NOT EXISTS {COMPANIES_TABLE} (
    id bigserial PRIMARY KEY,
    name text NOT NULL,
    address text NOT NULL,
    latitude double precision,
    longitude double precision,
    region text NOT NULL,
    tax_id text,
    sector text,
    office text,
    phone text,
    email text,
    website text,
    employee_count numeric,
    revenue numeric,
    registration_number text,
    legal_form text,
    notes text,
    {BATCH_COLUMN} text,
    created_at timestamptz NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS {COMPANIES_TABLE}_{BATCH_COLUMN}_idx ON {COMPANIES_TABLE} ({BATCH_COLUMN});
"""


class RegistryError(Exception):
    """Registry store operation failed."""


class RegistryInsertError(RegistryError):
    """A single record could not be inserted (constraint violation etc.)."""


class BatchCreationError(RegistryError):
    """The import batch record could not be created; the run cannot start."""


class RegistryStore(Protocol):
    def insert(self, record: Mapping[str, Any], batch_id: str) -> Any:
        ...

    def list_by_batch(self, batch_id: str) -> list[Any]:
        ...

    def delete_by_batch(self, batch_id: str) -> int:
        ...

    def delete_all(self) -> int:
        ...

    def query_identity(self) -> list[dict[str, Any]]:
        ...

    def create_batch(self, batch: ImportBatch) -> None:
        ...

    def finalize_batch(self, batch: ImportBatch) -> None:
        ...

    def get_batch(self, batch_id: str) -> ImportBatch | None:
        ...

    def delete_batch(self, batch_id: str) -> bool:
        ...

    def delete_all_batches(self) -> int:
        ...


def _record_columns(record: Mapping[str, Any]) -> list[str]:
    unknown = [k for k in record if k not in FIELD_NAMES]
    if unknown:
        raise RegistryInsertError(f"unknown registry fields: {unknown}")
    return [f for f in FIELD_NAMES if f in record]


class InMemoryRegistry:
    """Dict-backed registry. ``unique_fields`` emulate store-level unique constraints."""

    def __init__(
        self,
        existing: Sequence[Mapping[str, Any]] = (),
        unique_fields: Sequence[str] = (),
    ) -> None:
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.records: dict[int, dict[str, Any]] = {}
        self.batches: dict[str, ImportBatch] = {}
        self.unique_fields = tuple(unique_fields)
        for record in existing:
            self._store(dict(record), None)

    def _store(self, record: dict[str, Any], batch_id: str | None) -> int:
        record_id = next(self._ids)
        record[BATCH_COLUMN] = batch_id
        record["id"] = record_id
        self.records[record_id] = record
        return record_id

    def insert(self, record: Mapping[str, Any], batch_id: str) -> int:
        _record_columns(record)
        with self._lock:
            for f in self.unique_fields:
                value = record.get(f)
                if value is None:
                    continue
                if any(r.get(f) == value for r in self.records.values()):
                    raise RegistryInsertError(f"duplicate key value violates unique constraint on {f}: {value!r}")
            return self._store(dict(record), batch_id)

    def list_by_batch(self, batch_id: str) -> list[int]:
        return [rid for rid, r in self.records.items() if r.get(BATCH_COLUMN) == batch_id]

    def delete_by_batch(self, batch_id: str) -> int:
        with self._lock:
            ids = self.list_by_batch(batch_id)
            for rid in ids:
                del self.records[rid]
            return len(ids)

    def delete_all(self) -> int:
        with self._lock:
            count = len(self.records)
            self.records.clear()
            return count

    def query_identity(self) -> list[dict[str, Any]]:
        return [
            {"id": rid, "name": r.get("name"), "tax_id": r.get("tax_id")}
            for rid, r in sorted(self.records.items())
        ]

    def create_batch(self, batch: ImportBatch) -> None:
        if batch.batch_id in self.batches:
            raise BatchCreationError(f"batch already exists: {batch.batch_id}")
        self.batches[batch.batch_id] = batch

    def finalize_batch(self, batch: ImportBatch) -> None:
        if batch.batch_id not in self.batches:
            raise RegistryError(f"unknown batch: {batch.batch_id}")
        self.batches[batch.batch_id] = batch

    def get_batch(self, batch_id: str) -> ImportBatch | None:
        return self.batches.get(batch_id)

    def delete_batch(self, batch_id: str) -> bool:
        return self.batches.pop(batch_id, None) is not None

    def delete_all_batches(self) -> int:
        count = len(self.batches)
        self.batches.clear()
        return count


class PostgresRegistry:
    """psycopg2-backed registry. Every statement runs in its own transaction."""

    def __init__(self, conn: Any) -> None:
        self.conn = conn

    def ensure_schema(self) -> None:
        self._execute(SCHEMA_SQL)

    def _execute(self, sql: str, params: Sequence[Any] | None = None, fetch: str | None = None) -> Any:
        try:
            with self.conn.cursor() as cur:
                cur.execute(sql, params)
                if fetch == "one":
                    result = cur.fetchone()
                elif fetch == "all":
                    result = cur.fetchall()
                else:
                    result = cur.rowcount
            self.conn.commit()
            return result
        except psycopg2.Error as e:
            try:
                self.conn.rollback()
            except psycopg2.Error as rollback_error:
                logger.warning("rollback after failed statement also failed: %s", rollback_error)
            raise RegistryError(str(e).strip()) from e

    def insert(self, record: Mapping[str, Any], batch_id: str) -> Any:
        columns = _record_columns(record) + [BATCH_COLUMN]
        values = [record[c] for c in columns[:-1]] + [batch_id]
        cols_sql = ",".join(f'"{c}"' for c in columns)
        placeholders = ",".join(["%s"] * len(columns))
        sql = f"INSERT INTO {COMPANIES_TABLE} ({cols_sql}) VALUES ({placeholders}) RETURNING id"
        try:
            row = self._execute(sql, values, fetch="one")
        except RegistryError as e:
            raise RegistryInsertError(str(e)) from e
        return row[0]

    def list_by_batch(self, batch_id: str) -> list[Any]:
        rows = self._execute(
            f"SELECT id FROM {COMPANIES_TABLE} WHERE {BATCH_COLUMN} = %s ORDER BY id", (batch_id,), fetch="all"
        )
        return [r[0] for r in rows]

    def delete_by_batch(self, batch_id: str) -> int:
        return self._execute(f"DELETE FROM {COMPANIES_TABLE} WHERE {BATCH_COLUMN} = %s", (batch_id,))

    def delete_all(self) -> int:
        return self._execute(f"DELETE FROM {COMPANIES_TABLE}")

    def query_identity(self) -> list[dict[str, Any]]:
        rows = self._execute(f"SELECT id, name, tax_id FROM {COMPANIES_TABLE} ORDER BY id", fetch="all")
        return [{"id": r[0], "name": r[1], "tax_id": r[2]} for r in rows]

    def create_batch(self, batch: ImportBatch) -> None:
        try:
            self._execute(
                f"INSERT INTO {BATCHES_TABLE} (id, filename, created_at, total_records, status) "
                "VALUES (%s, %s, %s, %s, %s)",
                (batch.batch_id, batch.filename, batch.created_at, batch.total_rows, batch.status.value),
            )
        except RegistryError as e:
            raise BatchCreationError(str(e)) from e

    def finalize_batch(self, batch: ImportBatch) -> None:
        self._execute(
            f"UPDATE {BATCHES_TABLE} SET successful_records = %s, error_records = %s, "
            "duplicate_records = %s, skipped_records = %s, status = %s WHERE id = %s",
            (
                batch.success_count,
                batch.error_count,
                batch.duplicate_count,
                batch.skipped_count,
                batch.status.value,
                batch.batch_id,
            ),
        )

    def get_batch(self, batch_id: str) -> ImportBatch | None:
        with self.conn.cursor(cursor_factory=psycopg2.extras.DictCursor) as cur:
            cur.execute(f"SELECT * FROM {BATCHES_TABLE} WHERE id = %s", (batch_id,))
            row = cur.fetchone()
        self.conn.commit()
        if row is None:
            return None
        created: datetime = row["created_at"]
        return ImportBatch(
            batch_id=row["id"],
            created_at=created,
            filename=row["filename"],
            total_rows=row["total_records"],
            success_count=row["successful_records"],
            error_count=row["error_records"],
            duplicate_count=row["duplicate_records"],
            skipped_count=row["skipped_records"],
            status=BatchStatus(row["status"]),
        )

    def delete_batch(self, batch_id: str) -> bool:
        return self._execute(f"DELETE FROM {BATCHES_TABLE} WHERE id = %s", (batch_id,)) > 0

    def delete_all_batches(self) -> int:
        return self._execute(f"DELETE FROM {BATCHES_TABLE}")
