from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from ..config.loader import ImportConfig
from ..db.registry import BatchCreationError, RegistryError, RegistryStore
from ..excel.reader import SheetData, SpreadsheetReadError, read_spreadsheet
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.import_batch import ImportBatch
from ..models.processing_result import ProcessingResult, RunAccumulator
from .column_mapper import MappingAssistant, MappingError, MappingResolution, require_complete, resolve_mapping
from .duplicates import IdentitySnapshot, detect
from .enrichment import Enricher
from .importer import BatchImporter
from .progress import ProgressTracker
from .reporter import RunReporter
from .validator import validate

"""Service orchestration for the spreadsheet -> registry import.

One run:
1. read the first sheet (header row + data rows)
2. resolve the column mapping (keyword table or assistant, plus overrides)
3. refuse to start when a required field is unmapped
4. validate every row, then detect duplicates against one registry snapshot
5. commit eligible rows under a new batch (enrichment inline)
6. flush the error log once and return the ProcessingResult

Everything up to the batch creation is fatal (ProcessingError); after it,
problems are per-row outcomes.
"""

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Fatal run error: nothing was committed."""

    def __init__(self, message: str, missing_required_fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing_required_fields = missing_required_fields or []


@dataclass(frozen=True)
class MappingPreview:
    """What the pipeline would do with a file, without touching the registry."""
    sheet: SheetData
    resolution: MappingResolution


def preview_mapping(
    path: Path,
    config: ImportConfig,
    strategy: str | None = None,
    assistant: MappingAssistant | None = None,
    override: Mapping[str, str] | None = None,
) -> MappingPreview:
    """Read ``path`` and resolve its mapping (used by ``inspect`` and ``import``).

    Raises:
        ProcessingError: unreadable file or invalid override
    """
    try:
        sheet = read_spreadsheet(path, null_sentinels=set(config.null_sentinels))
    except SpreadsheetReadError as e:
        raise ProcessingError(f"read: {e}") from e
    try:
        resolution = resolve_mapping(
            sheet.columns,
            sheet.sample(config.mapping.sample_rows),
            strategy=strategy or config.mapping.strategy,
            assistant=assistant,
            override=override,
        )
    except MappingError as e:
        raise ProcessingError(f"mapping: {e}", e.missing_required_fields) from e
    return MappingPreview(sheet=sheet, resolution=resolution)


def _flush_error_log(error_log: ErrorLogBuffer) -> Path | None:
    try:
        return error_log.flush()
    except OSError as e:
        # the run itself is done; a lost error log is reported, not fatal
        logger.error("failed to write error log: %s", e)
        return None


def _process_file(
    path: Path,
    config: ImportConfig,
    registry: RegistryStore,
    enricher: Enricher | None,
    assistant: MappingAssistant | None,
    strategy: str | None,
    override: Mapping[str, str] | None,
    cancel: threading.Event | None,
) -> tuple[MappingPreview, RunReporter, ImportBatch]:
    preview = preview_mapping(path, config, strategy=strategy, assistant=assistant, override=override)
    sheet, resolution = preview.sheet, preview.resolution
    mapping = resolution.mapping
    try:
        require_complete(mapping)
    except MappingError as e:
        raise ProcessingError(f"mapping: {e}", e.missing_required_fields) from e
    logger.info(
        "file=%s sheet=%s rows=%d mapping=%s%s",
        path.name, sheet.sheet_name, len(sheet.rows), resolution.strategy,
        " (fallback)" if resolution.fell_back else "",
    )
    for column in mapping.ignored_columns(sheet.columns):
        logger.debug("column ignored: %s", column)

    violations = validate(sheet.rows, mapping)
    try:
        snapshot = IdentitySnapshot.from_records(registry.query_identity())
    except RegistryError as e:
        raise ProcessingError(f"registry snapshot: {e}") from e
    duplicates = detect(sheet.rows, mapping, snapshot)
    logger.info(
        "validated rows=%d violations=%d duplicates=%d snapshot=%d",
        len(sheet.rows), len(violations), len(duplicates), len(snapshot),
    )

    accumulator = RunAccumulator(len(sheet.rows))
    importer = BatchImporter(registry, enricher=enricher)
    with ProgressTracker(len(sheet.rows)) as tracker:
        reporter = RunReporter(accumulator, tracker)
        try:
            batch = importer.commit(
                sheet.rows,
                mapping,
                violations,
                duplicates,
                filename=path.name,
                accumulator=accumulator,
                on_progress=reporter.on_row,
                cancel=cancel,
            )
        except BatchCreationError as e:
            raise ProcessingError(f"batch creation: {e}") from e
    return preview, reporter, batch


def run_import(
    path: Path,
    config: ImportConfig,
    registry: RegistryStore,
    enricher: Enricher | None = None,
    assistant: MappingAssistant | None = None,
    strategy: str | None = None,
    override: Mapping[str, str] | None = None,
    dry_run: bool = False,
    cancel: threading.Event | None = None,
    logs_dir: Path | None = None,
) -> ProcessingResult:
    """Import one spreadsheet into ``registry`` under a new batch.

    Args:
        path: spreadsheet (.xlsx/.xls/.xlsm/.csv)
        config: loaded ImportConfig
        registry: target store (PostgresRegistry, or InMemoryRegistry for dry runs)
        enricher: geocoding enricher; None disables enrichment
        assistant: mapping assistant used when the strategy is "assistant"
        strategy: overrides config.mapping.strategy
        override: operator column -> field corrections ("skip" unmaps a column)
        dry_run: only marks the result; the caller picks the registry
        cancel: set to stop between rows (remaining rows become Skipped)
        logs_dir: error log directory (defaults to config.logs_dir)

    Raises:
        ProcessingError: for fatal errors that prevent the run (also written
            to the error log with row=-1)
    """
    start_time = datetime.now(UTC)
    error_log = ErrorLogBuffer(logs_dir if logs_dir is not None else Path(config.logs_dir))

    try:
        preview, reporter, batch = _process_file(
            path, config, registry, enricher, assistant, strategy, override, cancel
        )
    except ProcessingError as e:
        error_log.append(ErrorRecord.create(file=path.name, row=-1, error_type="RUN_ERROR", message=str(e)))
        _flush_error_log(error_log)
        raise

    error_log.extend(reporter.error_records(path.name))
    error_log_path = _flush_error_log(error_log)

    end_time = datetime.now(UTC)
    result = ProcessingResult(
        batch_id=None if dry_run else batch.batch_id,
        filename=path.name,
        total_rows=len(preview.sheet.rows),
        summary=reporter.summary(),
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        mapping_fallback=preview.resolution.fell_back,
        dry_run=dry_run,
        error_log_path=str(error_log_path) if error_log_path is not None else None,
    )
    if error_log_path is not None:
        logger.info("error log: %s", error_log_path)
    return result
