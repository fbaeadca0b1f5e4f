from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime

from .outcomes import RowOutcome, outcome_category

"""Run result models for the spreadsheet -> registry import.

RunAccumulator is the single place per-row outcomes are recorded during a run.
It is created by the caller, handed to the batch importer and returned with
the result, so nothing about a run lives in module state.
"""


@dataclass(frozen=True)
class RunProgress:
    processed: int
    total: int

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 1.0
        return self.processed / self.total


@dataclass(frozen=True)
class RowEvent:
    """Emitted by the batch importer after each row gets its outcome."""
    row_index: int
    outcome: RowOutcome
    progress: RunProgress


@dataclass(frozen=True)
class RunSummary:
    """Final counts of a run by outcome category."""
    success: int
    errors: int
    duplicates: int
    skipped: int

    @property
    def total(self) -> int:
        return self.success + self.errors + self.duplicates + self.skipped


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated result of one import run (summary line + exit code source)."""
    batch_id: str | None
    filename: str
    total_rows: int
    summary: RunSummary
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    mapping_fallback: bool = False  # assistant mapping was requested but heuristic used
    dry_run: bool = False
    error_log_path: str | None = None


class RunAccumulator:
    """Ordered record of (row_index, outcome) for one run.

    Only the batch importer appends to it. A row is recorded once; recording
    the same row twice is a programming error.
    """

    def __init__(self, total_rows: int) -> None:
        self.total_rows = total_rows
        self._outcomes: dict[int, RowOutcome] = {}

    def record(self, row_index: int, outcome: RowOutcome) -> None:
        if row_index in self._outcomes:
            raise ValueError(f"row {row_index} already has an outcome")
        self._outcomes[row_index] = outcome

    def outcome(self, row_index: int) -> RowOutcome | None:
        return self._outcomes.get(row_index)

    def items(self) -> list[tuple[int, RowOutcome]]:
        return list(self._outcomes.items())

    def __len__(self) -> int:
        return len(self._outcomes)

    def progress(self) -> RunProgress:
        return RunProgress(processed=len(self._outcomes), total=self.total_rows)

    def summary(self) -> RunSummary:
        counts = Counter(outcome_category(o) for o in self._outcomes.values())
        return RunSummary(
            success=counts["success"],
            errors=counts["errors"],
            duplicates=counts["duplicates"],
            skipped=counts["skipped"],
        )
