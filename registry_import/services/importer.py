from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Sequence
from typing import Any

from ..db.registry import RegistryError, RegistryInsertError, RegistryStore
from ..geo.nominatim import Coordinates
from ..models.field_mapping import FieldMapping
from ..models.import_batch import ImportBatch
from ..models.outcomes import (
    CommitError,
    Duplicate,
    DuplicateFlag,
    RowOutcome,
    Skipped,
    Success,
    ValidationError,
    ValidationViolation,
)
from ..models.processing_result import RowEvent, RunAccumulator
from ..models.row_data import RawRow
from ..models.target_fields import TARGET_FIELDS, FieldKind
from .enrichment import EnrichmentResult, Enricher, has_valid_coordinates, needs_enrichment
from .validator import parse_number, violations_by_row

"""Batch importer: commits eligible rows under one batch id.

Order of work for one run:
1. create the ImportBatch record (a partial run is always attributable)
2. for each row in file order:
   - any validation violation  -> ValidationError (not committed)
   - a duplicate flag          -> Duplicate (not committed)
   - otherwise enrich (best effort) and insert; store failure -> CommitError
3. finalize the batch counts

A row's failure never affects its siblings. Rollback deletes every record
carrying the batch id plus the batch itself and is idempotent.
"""

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[RowEvent], None]


def new_batch_id() -> str:
    return uuid.uuid4().hex


def build_record(row: RawRow, mapping: FieldMapping, coordinates: Coordinates | None) -> dict[str, Any]:
    """Registry record for an eligible row. Numbers parsed, blanks -> None."""
    record: dict[str, Any] = {}
    for target_field in TARGET_FIELDS:
        if target_field.name in ("latitude", "longitude"):
            continue
        if target_field.kind is FieldKind.DECIMAL:
            record[target_field.name] = parse_number(mapping.value(row, target_field.name))
        else:
            record[target_field.name] = mapping.text(row, target_field.name)
    if coordinates is not None:
        record["latitude"] = coordinates.latitude
        record["longitude"] = coordinates.longitude
    else:
        record["latitude"] = None
        record["longitude"] = None
    return record


class BatchImporter:
    def __init__(
        self,
        registry: RegistryStore,
        enricher: Enricher | None = None,
        batch_id_factory: Callable[[], str] = new_batch_id,
    ) -> None:
        self.registry = registry
        self.enricher = enricher
        self.batch_id_factory = batch_id_factory

    def _coordinates_for(
        self,
        row: RawRow,
        mapping: FieldMapping,
        prefetched: dict[int, EnrichmentResult],
    ) -> Coordinates | None:
        if has_valid_coordinates(row, mapping):
            return Coordinates(
                latitude=float(parse_number(mapping.value(row, "latitude"))),  # type: ignore[arg-type]
                longitude=float(parse_number(mapping.value(row, "longitude"))),  # type: ignore[arg-type]
            )
        if self.enricher is None or not needs_enrichment(row, mapping):
            return None
        if row.row_index in prefetched:
            result = prefetched[row.row_index]
        else:
            result = self.enricher.enrich(row, mapping)
        if isinstance(result, Coordinates):
            return result
        return None

    def commit(
        self,
        rows: Sequence[RawRow],
        mapping: FieldMapping,
        violations: Sequence[ValidationViolation],
        duplicates: Sequence[DuplicateFlag],
        filename: str = "import.xlsx",
        accumulator: RunAccumulator | None = None,
        on_progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> ImportBatch:
        """Commit eligible rows and return the finalized ImportBatch.

        ``accumulator`` receives one outcome per row (a fresh one is used when
        omitted). ``on_progress`` is called after every row. Setting
        ``cancel`` stops the run between rows; remaining rows become Skipped and
        already committed rows stay under the batch id.

        Raises:
            BatchCreationError: the batch record could not be created (nothing committed)
        """
        acc = accumulator if accumulator is not None else RunAccumulator(len(rows))
        batch = ImportBatch.create(self.batch_id_factory(), filename, len(rows))
        self.registry.create_batch(batch)
        logger.info("batch %s created file=%s rows=%d", batch.batch_id, filename, len(rows))

        finished = cancelled = False
        try:
            cancelled = self._commit_rows(
                batch.batch_id, rows, mapping, violations, duplicates, acc, on_progress, cancel
            )
            finished = True
        finally:
            # an aborted loop still leaves the batch with its counts so far
            batch = self._finalize(batch, acc, cancelled=cancelled or not finished)
        return batch

    def _commit_rows(
        self,
        batch_id: str,
        rows: Sequence[RawRow],
        mapping: FieldMapping,
        violations: Sequence[ValidationViolation],
        duplicates: Sequence[DuplicateFlag],
        acc: RunAccumulator,
        on_progress: ProgressCallback | None,
        cancel: threading.Event | None,
    ) -> bool:
        """Record one outcome per row in file order. Returns True when cancelled."""
        errors_by_row = violations_by_row(violations)
        flag_by_row: dict[int, DuplicateFlag] = {}
        for flag in duplicates:
            flag_by_row.setdefault(flag.row_index, flag)

        prefetched: dict[int, EnrichmentResult] = {}
        if self.enricher is not None and self.enricher.workers > 1:
            eligible = [r for r in rows if r.row_index not in errors_by_row and r.row_index not in flag_by_row]
            prefetched = self.enricher.enrich_many(eligible, mapping)

        cancelled = False
        for row in rows:
            outcome: RowOutcome
            if cancelled or (cancel is not None and cancel.is_set()):
                if not cancelled:
                    logger.warning("batch %s cancelled at row %d", batch_id, row.row_index)
                cancelled = True
                outcome = Skipped("run cancelled")
            elif row.row_index in errors_by_row:
                outcome = ValidationError(tuple(errors_by_row[row.row_index]))
            elif row.row_index in flag_by_row:
                outcome = Duplicate(flag_by_row[row.row_index])
            else:
                outcome = self._insert_row(row, mapping, batch_id, prefetched)
            acc.record(row.row_index, outcome)
            if on_progress is not None:
                on_progress(RowEvent(row_index=row.row_index, outcome=outcome, progress=acc.progress()))
        return cancelled

    def _finalize(self, batch: ImportBatch, acc: RunAccumulator, cancelled: bool) -> ImportBatch:
        s = acc.summary()
        batch = batch.finalize(s.success, s.errors, s.duplicates, s.skipped, cancelled=cancelled)
        try:
            self.registry.finalize_batch(batch)
        except RegistryError as e:
            # counts stay recoverable from the committed records; the rows themselves are in
            logger.error("batch %s: failed to store final counts: %s", batch.batch_id, e)
        logger.info(
            "batch %s finished status=%s success=%d errors=%d duplicates=%d skipped=%d",
            batch.batch_id, batch.status.value, s.success, s.errors, s.duplicates, s.skipped,
        )
        return batch

    def _insert_row(
        self,
        row: RawRow,
        mapping: FieldMapping,
        batch_id: str,
        prefetched: dict[int, EnrichmentResult],
    ) -> RowOutcome:
        coordinates = self._coordinates_for(row, mapping, prefetched)
        record = build_record(row, mapping, coordinates)
        try:
            record_id = self.registry.insert(record, batch_id)
        except RegistryInsertError as e:
            logger.warning("row %d: insert failed: %s", row.row_index, e)
            return CommitError(str(e))
        except RegistryError as e:
            logger.warning("row %d: store error: %s", row.row_index, e)
            return CommitError(str(e))
        return Success(record_id)

    def rollback(self, batch_id: str) -> int:
        """Delete every record of ``batch_id`` and the batch record. Returns rows deleted."""
        deleted = self.registry.delete_by_batch(batch_id)
        self.registry.delete_batch(batch_id)
        logger.info("rollback batch=%s deleted_rows=%d", batch_id, deleted)
        return deleted

    def rollback_all(self) -> int:
        """Delete every registry record and every batch. Returns rows deleted."""
        deleted = self.registry.delete_all()
        self.registry.delete_all_batches()
        logger.info("rollback all deleted_rows=%d", deleted)
        return deleted
