from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum

"""ImportBatch domain model and BatchStatus enum.

An ImportBatch is created once per run before any row is committed, so every
committed record is attributable to a batch id even if the run dies halfway.
The importer finalizes it once with the run counts; only rollback deletes it.
"""


class BatchStatus(Enum):
    """Lifecycle of an import batch.

    State transitions: running → (completed | cancelled)
    """
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ImportBatch:
    batch_id: str
    created_at: datetime
    filename: str
    total_rows: int
    success_count: int = 0
    error_count: int = 0
    duplicate_count: int = 0
    skipped_count: int = 0
    status: BatchStatus = BatchStatus.RUNNING

    @staticmethod
    def create(batch_id: str, filename: str, total_rows: int) -> ImportBatch:
        return ImportBatch(
            batch_id=batch_id,
            created_at=datetime.now(UTC),
            filename=filename,
            total_rows=total_rows,
        )

    def finalize(
        self,
        success: int,
        errors: int,
        duplicates: int,
        skipped: int = 0,
        cancelled: bool = False,
    ) -> ImportBatch:
        return replace(
            self,
            success_count=success,
            error_count=errors,
            duplicate_count=duplicates,
            skipped_count=skipped,
            status=BatchStatus.CANCELLED if cancelled else BatchStatus.COMPLETED,
        )

    @property
    def failed_count(self) -> int:
        """Rows that did not make it into the registry."""
        return self.error_count + self.duplicate_count + self.skipped_count
