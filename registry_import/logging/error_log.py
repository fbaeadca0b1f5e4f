from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from registry_import.models.error_record import ErrorRecord
from registry_import.models.outcomes import DuplicateFlag, ValidationViolation

"""Per-run error log.

- JSON Lines, fixed key set (see ErrorRecord)
- one file per run: `<logs_dir>/errors-YYYYMMDD-HHMMSS.log` (UTC), created on first flush
- records are buffered in memory and written once at the end of the run
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
    "violation_record",
    "duplicate_record",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


def violation_record(file: str, violation: ValidationViolation) -> ErrorRecord:
    raw = "" if violation.raw_value is None else str(violation.raw_value)
    message = violation.reason if not raw else f"{violation.reason} (value: {raw})"
    return ErrorRecord.create(
        file=file,
        row=violation.row_index,
        error_type="VALIDATION_ERROR",
        message=message,
        field=violation.field,
    )


def duplicate_record(file: str, flag: DuplicateFlag) -> ErrorRecord:
    matched = flag.matched_name if flag.matched_name is not None else str(flag.matched_existing_id)
    return ErrorRecord.create(
        file=file,
        row=flag.row_index,
        error_type="DUPLICATE",
        message=f"matches existing company {matched!r} ({flag.match_kind.value}, similarity={flag.similarity})",
        field="tax_id" if flag.match_kind.value == "exact_tax_id" else "name",
    )


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush appends JSON Lines.

    - the file path is fixed on first access
    - flush() with nothing buffered writes nothing
    """

    def __init__(self, logs_dir: Path | None = None) -> None:
        self.logs_dir = logs_dir if logs_dir is not None else LOGS_DIR
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self.logs_dir / f"errors-{stamp}.log"
        return self._file_path

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def extend(self, records: Iterable[ErrorRecord]) -> None:
        self._records.extend(records)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
