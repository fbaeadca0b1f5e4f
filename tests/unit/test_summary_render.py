from __future__ import annotations

import re
from datetime import datetime, timezone

import pytest

from registry_import.models.processing_result import ProcessingResult, RunSummary
from registry_import.services.summary import format_seconds, render_summary_line

"""Unit tests for the SUMMARY line rendering."""

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY batch=(\S+) rows=([0-9]+) success=([0-9]+) errors=([0-9]+) "
    r"duplicates=([0-9]+) skipped=([0-9]+) elapsed_sec=([0-9]+\.?[0-9]*)$"
)


def _result(batch_id="B1", success=2, errors=1, duplicates=0, skipped=0, elapsed=2.0, rows=None):
    t = datetime(2026, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
    summary = RunSummary(success=success, errors=errors, duplicates=duplicates, skipped=skipped)
    return ProcessingResult(
        batch_id=batch_id,
        filename="f.xlsx",
        total_rows=summary.total if rows is None else rows,
        summary=summary,
        start_time=t,
        end_time=t,
        elapsed_seconds=elapsed,
    )


def test_render_summary_line():
    line = render_summary_line(_result())

    assert line == "SUMMARY batch=B1 rows=3 success=2 errors=1 duplicates=0 skipped=0 elapsed_sec=2"
    assert SUMMARY_PATTERN.match(line)


def test_render_summary_line_without_batch():
    line = render_summary_line(_result(batch_id=None))

    assert line.startswith("SUMMARY batch=- ")
    assert SUMMARY_PATTERN.match(line)


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "0"), (3.0, "3"), (1.23456, "1.235"), (0.0012, "0.0012"), (0.00000049, "0")],
)
def test_format_seconds(seconds, expected):
    assert format_seconds(seconds) == expected


def test_small_elapsed_never_scientific():
    line = render_summary_line(_result(elapsed=0.000123))

    assert "e-" not in line
    assert SUMMARY_PATTERN.match(line)
