from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the per-run error log.

One record per row-level problem (validation violation, duplicate flag,
commit failure) plus run-level failures. row=-1 marks a run-level error where
no spreadsheet row applies.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: spreadsheet filename being imported
        row: spreadsheet row number. -1 for run-level errors
        error_type: UPPER_SNAKE_CASE classification
        field: target field involved, "required", or "" when not applicable
        message: human readable reason
    """
    timestamp: str
    file: str
    row: int
    error_type: str
    field: str
    message: str

    @staticmethod
    def create(file: str, row: int, error_type: str, message: str, field: str = "") -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            row=row,
            error_type=error_type,
            field=field,
            message=message,
        )

    def to_json_line(self) -> str:
        # fixed key set: dataclass -> dict -> json
        return json.dumps(asdict(self), ensure_ascii=False)
