from __future__ import annotations

from ..models.processing_result import ProcessingResult

"""Summary line rendering for the spreadsheet -> registry import.

Format:
SUMMARY batch=<id> rows=<n> success=<s> errors=<e> duplicates=<d> skipped=<k> elapsed_sec=<t>

A dry run or a run that failed before the batch was created renders
``batch=-``.
"""


def format_seconds(value: float) -> str:
    """Render seconds without scientific notation; integral values without '.0'."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(round(value, 3))


def render_summary_line(result: ProcessingResult) -> str:
    """Render the SUMMARY line for one import run.

    Examples:
        >>> from datetime import datetime, timezone
        >>> from registry_import.models.processing_result import RunSummary
        >>> t = datetime(2026, 1, 1, tzinfo=timezone.utc)
        >>> r = ProcessingResult(
        ...     batch_id="abc", filename="f.xlsx", total_rows=3,
        ...     summary=RunSummary(success=2, errors=1, duplicates=0, skipped=0),
        ...     start_time=t, end_time=t, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(r)
        'SUMMARY batch=abc rows=3 success=2 errors=1 duplicates=0 skipped=0 elapsed_sec=2'
    """
    s = result.summary
    return (
        f"SUMMARY batch={result.batch_id or '-'} "
        f"rows={result.total_rows} "
        f"success={s.success} "
        f"errors={s.errors} "
        f"duplicates={s.duplicates} "
        f"skipped={s.skipped} "
        f"elapsed_sec={format_seconds(result.elapsed_seconds)}"
    )
