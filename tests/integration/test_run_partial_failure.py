from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from registry_import.config.loader import ImportConfig
from registry_import.db.registry import InMemoryRegistry
from registry_import.models.import_batch import BatchStatus
from registry_import.services.orchestrator import ProcessingError, run_import

"""Integration tests: runs where some rows do not reach the registry.

- a store-level constraint rejects one row, earlier and later rows stay committed
- cancellation skips the remaining rows, committed rows stay under the batch
- a fatal mapping problem commits nothing and logs a run-level error (row=-1)
"""


def _records(logs_dir: Path) -> list[dict]:
    (log_file,) = logs_dir.glob("errors-*.log")
    return [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]


def test_store_rejection_keeps_other_rows(temp_workdir: Path, make_spreadsheet) -> None:
    registry = InMemoryRegistry(unique_fields=("tax_id",))
    xlsx = make_spreadsheet([
        ["Acme SL", "Calle Mayor 1", "Centro", None, None, "T1", None, None],
        ["Beta SA", "Av. Sur 2", "Norte", None, None, "T1", None, None],
        ["Gamma SL", "Plaza 3", "Sur", None, None, "T3", None, None],
    ])

    result = run_import(xlsx, ImportConfig(), registry, logs_dir=temp_workdir / "logs")

    assert (result.summary.success, result.summary.errors) == (2, 1)
    assert len(registry.list_by_batch(result.batch_id)) == 2
    batch = registry.get_batch(result.batch_id)
    assert batch is not None
    assert (batch.success_count, batch.error_count, batch.status) == (2, 1, BatchStatus.COMPLETED)
    (record,) = _records(temp_workdir / "logs")
    assert (record["row"], record["error_type"]) == (3, "COMMIT_ERROR")
    assert "unique constraint" in record["message"]


def test_cancelled_run_skips_remaining_rows(temp_workdir: Path, make_spreadsheet) -> None:
    registry = InMemoryRegistry()
    xlsx = make_spreadsheet([["Acme SL", "Calle Mayor 1", "Centro", None, None, None, None, None]] * 3)
    cancel = threading.Event()
    cancel.set()

    result = run_import(xlsx, ImportConfig(), registry, cancel=cancel, logs_dir=temp_workdir / "logs")

    assert result.summary.skipped == 3
    assert result.summary.success == 0
    assert registry.get_batch(result.batch_id).status is BatchStatus.CANCELLED
    assert {r["error_type"] for r in _records(temp_workdir / "logs")} == {"SKIPPED"}


def test_unmapped_required_field_is_fatal(temp_workdir: Path, make_spreadsheet) -> None:
    registry = InMemoryRegistry()
    xlsx = make_spreadsheet([["Acme SL", "Calle Mayor 1"]], headers=["Company Name", "Street Address"])

    with pytest.raises(ProcessingError) as exc:
        run_import(xlsx, ImportConfig(), registry, logs_dir=temp_workdir / "logs")

    assert exc.value.missing_required_fields == ["region"]
    assert registry.batches == {}
    (record,) = _records(temp_workdir / "logs")
    assert (record["row"], record["error_type"]) == (-1, "RUN_ERROR")
