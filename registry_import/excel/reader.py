from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.row_data import RawRow, cell_is_blank

"""Spreadsheet reader.

Only the first sheet is read. Row 1 is the header, every following non-blank
row is a data row. Column names and order are taken as found; mapping them to
registry fields is the column mapper's job.

pandas' default NA parsing is disabled so values such as "NA" or "None" in a
company name survive; only configured null sentinels are read as empty.
"""

SPREADSHEET_SUFFIXES = {".xlsx", ".xlsm", ".xls"}
CSV_SUFFIXES = {".csv"}


class SpreadsheetReadError(Exception):
    """Raised when the file cannot be read as a spreadsheet."""


class SheetHeaderError(SpreadsheetReadError):
    """Raised when the header row is missing or empty."""


class NoDataRowsError(SpreadsheetReadError):
    """Raised when the sheet has a header but no data rows."""


@dataclass
class SheetData:
    sheet_name: str
    columns: list[str]
    rows: list[RawRow]

    def sample(self, n: int = 3) -> list[RawRow]:
        return self.rows[:n]


def read_raw_frame(path: Path) -> tuple[str, pd.DataFrame]:
    """Read the first sheet of ``path`` without header handling.

    Returns:
        (sheet_name, DataFrame) with every cell as read (header row included)
    """
    suffix = path.suffix.lower()
    if not path.exists():
        raise SpreadsheetReadError(f"file not found: {path}")
    try:
        if suffix in CSV_SUFFIXES:
            df = pd.read_csv(path, header=None, dtype=object, keep_default_na=False)
            return path.stem, df
        if suffix in SPREADSHEET_SUFFIXES:
            with pd.ExcelFile(path) as xls:
                if not xls.sheet_names:
                    raise SheetHeaderError(f"{path.name}: workbook has no sheets")
                first = xls.sheet_names[0]
                df = xls.parse(first, header=None, keep_default_na=False)
            return str(first), df
    except SpreadsheetReadError:
        raise
    except pd.errors.EmptyDataError as e:
        raise SheetHeaderError(f"{path.name}: file is empty") from e
    except Exception as e:
        raise SpreadsheetReadError(f"{path.name}: {e}") from e
    raise SpreadsheetReadError(f"unsupported file type: {path.suffix or '<none>'}")


def _header_names(header_cells: Iterable[Any]) -> list[str]:
    """Stringify header cells; blank cells get a positional name, repeats a suffix."""
    names: list[str] = []
    seen: dict[str, int] = {}
    for i, cell in enumerate(header_cells):
        name = f"column_{i + 1}" if cell_is_blank(cell) else str(cell).strip()
        if name in seen:
            seen[name] += 1
            name = f"{name}.{seen[name]}"
        else:
            seen[name] = 0
        names.append(name)
    return names


def normalize_sheet(
    df: pd.DataFrame,
    sheet_name: str,
    null_sentinels: set[str] | None = None,
) -> SheetData:
    """Turn a raw frame into named RawRows using the first row as header.

    Steps:
    1. Validate a header row exists and is not blank
    2. Drop trailing columns whose header and values are all blank
    3. Skip fully blank data rows (their row numbers are not reused)
    4. Strip string cells; null sentinels (case-insensitive) become None
    """
    if df.shape[0] < 1 or all(cell_is_blank(v) for v in df.iloc[0].tolist()):
        raise SheetHeaderError(f"sheet '{sheet_name}' has no header row")

    keep = [
        i for i in range(df.shape[1])
        if not cell_is_blank(df.iat[0, i]) or not all(cell_is_blank(v) for v in df.iloc[1:, i].tolist())
    ]
    df = df.iloc[:, keep]
    columns = _header_names(df.iloc[0].tolist())
    sentinels = {s.strip().upper() for s in null_sentinels} if null_sentinels else set()

    rows: list[RawRow] = []
    for pos in range(1, df.shape[0]):
        raw = df.iloc[pos].tolist()
        if all(cell_is_blank(v) for v in raw):
            continue
        values: dict[str, Any] = {}
        for col, val in zip(columns, raw, strict=False):
            if cell_is_blank(val):
                values[col] = None
                continue
            if isinstance(val, str):
                stripped = val.strip()
                if stripped.upper() in sentinels:
                    values[col] = None
                    continue
                values[col] = stripped
                continue
            values[col] = val.item() if hasattr(val, "item") else val  # numpy scalar -> python
        # header is spreadsheet row 1, frame position 0
        rows.append(RawRow(row_index=pos + 1, values=values))

    return SheetData(sheet_name=sheet_name, columns=columns, rows=rows)


def read_spreadsheet(
    path: Path,
    null_sentinels: set[str] | None = None,
    allow_empty: bool = False,
) -> SheetData:
    """Read ``path`` (first sheet) into columns + RawRows.

    Raises:
        SpreadsheetReadError: unreadable or unsupported file
        SheetHeaderError: missing header row
        NoDataRowsError: header present but no data (unless ``allow_empty``)
    """
    sheet_name, df = read_raw_frame(path)
    sheet = normalize_sheet(df, sheet_name, null_sentinels=null_sentinels)
    if not sheet.rows and not allow_empty:
        raise NoDataRowsError(f"{path.name}: sheet '{sheet_name}' has no data rows")
    return sheet
