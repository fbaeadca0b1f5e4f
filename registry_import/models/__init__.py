"""Domain models for the spreadsheet -> company registry importer."""

from .error_record import ErrorRecord
from .field_mapping import IGNORED, FieldMapping, MappingConflictError
from .import_batch import BatchStatus, ImportBatch
from .outcomes import (
    CommitError,
    Duplicate,
    DuplicateFlag,
    MatchKind,
    RowOutcome,
    Skipped,
    Success,
    ValidationError,
    ValidationViolation,
)
from .processing_result import ProcessingResult, RunAccumulator, RunProgress, RunSummary
from .row_data import RawRow
from .target_fields import FieldKind, TargetField, TARGET_FIELDS

__all__ = [
    # Mapping
    "FieldKind",
    "FieldMapping",
    "IGNORED",
    "MappingConflictError",
    "TargetField",
    "TARGET_FIELDS",
    # Rows and per-row artifacts
    "RawRow",
    "ValidationViolation",
    "DuplicateFlag",
    "MatchKind",
    "RowOutcome",
    "Success",
    "ValidationError",
    "Duplicate",
    "CommitError",
    "Skipped",
    # Batch and run results
    "BatchStatus",
    "ImportBatch",
    "ErrorRecord",
    "ProcessingResult",
    "RunAccumulator",
    "RunProgress",
    "RunSummary",
]
