from __future__ import annotations

from dataclasses import dataclass

from ..logging.error_log import duplicate_record, violation_record
from ..models.error_record import ErrorRecord
from ..models.outcomes import CommitError, Duplicate, Skipped, ValidationError
from ..models.processing_result import RowEvent, RunAccumulator, RunProgress, RunSummary
from .progress import ProgressTracker

"""Run reporter: progress while the batch advances, accounting once it is done.

Purely observational. It reads the run accumulator the importer fills and
never influences commit decisions.
"""


@dataclass(frozen=True)
class ViolationEntry:
    row_index: int
    field: str
    reason: str


@dataclass(frozen=True)
class DuplicateEntry:
    row_index: int
    matched_entity: str
    match_kind: str
    similarity: int


class RunReporter:
    def __init__(self, accumulator: RunAccumulator, tracker: ProgressTracker | None = None) -> None:
        self.accumulator = accumulator
        self.tracker = tracker

    def on_row(self, event: RowEvent) -> None:
        """Progress callback for the batch importer."""
        if self.tracker is not None:
            s = self.summary()
            self.tracker.advance(ok=s.success, err=s.errors, dup=s.duplicates)

    def progress(self) -> RunProgress:
        return self.accumulator.progress()

    def summary(self) -> RunSummary:
        return self.accumulator.summary()

    def violations(self) -> list[ViolationEntry]:
        """(row, field, reason) for every validation violation, commit error and skipped row."""
        entries: list[ViolationEntry] = []
        for row_index, outcome in self.accumulator.items():
            if isinstance(outcome, ValidationError):
                entries.extend(ViolationEntry(row_index, v.field, v.reason) for v in outcome.violations)
            elif isinstance(outcome, CommitError):
                entries.append(ViolationEntry(row_index, "", f"commit failed: {outcome.reason}"))
            elif isinstance(outcome, Skipped):
                entries.append(ViolationEntry(row_index, "", f"skipped: {outcome.reason}"))
        return entries

    def duplicates(self) -> list[DuplicateEntry]:
        entries: list[DuplicateEntry] = []
        for row_index, outcome in self.accumulator.items():
            if isinstance(outcome, Duplicate):
                flag = outcome.flag
                matched = flag.matched_name if flag.matched_name is not None else str(flag.matched_existing_id)
                entries.append(DuplicateEntry(row_index, matched, flag.match_kind.value, flag.similarity))
        return entries

    def error_records(self, filename: str) -> list[ErrorRecord]:
        """Error log lines for every row that did not end in success."""
        records: list[ErrorRecord] = []
        for row_index, outcome in self.accumulator.items():
            if isinstance(outcome, ValidationError):
                records.extend(violation_record(filename, v) for v in outcome.violations)
            elif isinstance(outcome, Duplicate):
                records.append(duplicate_record(filename, outcome.flag))
            elif isinstance(outcome, CommitError):
                records.append(ErrorRecord.create(filename, row_index, "COMMIT_ERROR", outcome.reason))
            elif isinstance(outcome, Skipped):
                records.append(ErrorRecord.create(filename, row_index, "SKIPPED", outcome.reason))
        return records
