from __future__ import annotations
from unittest.mock import patch
import pandas as pd
import pytest
from pathlib import Path
from registry_import.excel.reader import (
    NoDataRowsError,
    SheetHeaderError,
    SpreadsheetReadError,
    normalize_sheet,
    read_raw_frame,
    read_spreadsheet,
)


def _make_excel(tmp_path: Path, name: str, sheets: dict[str, list[list[object]]]) -> Path:
    p = tmp_path / name
    with pd.ExcelWriter(p, engine="openpyxl") as writer:
        for sheet, rows in sheets.items():
            df = pd.DataFrame(rows)
            df.to_excel(writer, sheet_name=sheet, header=False, index=False)
    return p


def test_read_first_sheet_success(temp_workdir: Path):
    excel = _make_excel(
        temp_workdir, "companies.xlsx",
        {
            "Empresas": [
                ["Nombre", "Direccion", "Parroquia"],
                ["Acme SL", "Calle Mayor 1", "Centro"],
                ["Beta SA", "Av. Sur 2", "Norte"],
            ],
            "Other": [["ignored"], ["x"]],
        },
    )
    sheet = read_spreadsheet(excel)

    assert sheet.sheet_name == "Empresas"
    assert sheet.columns == ["Nombre", "Direccion", "Parroquia"]
    assert len(sheet.rows) == 2
    # header is row 1
    assert sheet.rows[0].row_index == 2
    assert sheet.rows[0].get("Nombre") == "Acme SL"


def test_blank_rows_skipped_row_numbers_kept(temp_workdir: Path):
    excel = _make_excel(
        temp_workdir, "gaps.xlsx",
        {"S": [["Name", "Address"], ["A", "a"], [None, None], ["B", "b"]]},
    )
    sheet = read_spreadsheet(excel)

    assert [r.row_index for r in sheet.rows] == [2, 4]


def test_strings_are_trimmed_and_numbers_kept(temp_workdir: Path):
    excel = _make_excel(
        temp_workdir, "types.xlsx",
        {"S": [["Name", "Lat"], ["  Acme  ", 40.5]]},
    )
    row = read_spreadsheet(excel).rows[0]

    assert row.get("Name") == "Acme"
    assert row.get("Lat") == 40.5
    assert isinstance(row.get("Lat"), float)


def test_blank_header_cells_get_positional_names():
    df = pd.DataFrame([["Name", None, "Name"], ["A", "x", "B"]])
    sheet = normalize_sheet(df, "S")

    assert sheet.columns == ["Name", "column_2", "Name.1"]


def test_trailing_empty_columns_dropped():
    df = pd.DataFrame([["Name", None], ["A", None], ["B", None]])
    sheet = normalize_sheet(df, "S")

    assert sheet.columns == ["Name"]


def test_normalize_missing_header_row():
    df = pd.DataFrame([[None, None], ["A", "B"]])
    with pytest.raises(SheetHeaderError):
        normalize_sheet(df, "S")


def test_no_data_rows(temp_workdir: Path):
    excel = _make_excel(temp_workdir, "empty.xlsx", {"S": [["Name", "Address"]]})

    with pytest.raises(NoDataRowsError):
        read_spreadsheet(excel)
    assert read_spreadsheet(excel, allow_empty=True).rows == []


def test_csv_is_read(temp_workdir: Path):
    p = temp_workdir / "companies.csv"
    p.write_text("Name,Tax ID\nAcme SL,00123\n", encoding="utf-8")

    sheet = read_spreadsheet(p)

    assert sheet.sheet_name == "companies"
    # dtype=object keeps leading zeros
    assert sheet.rows[0].get("Tax ID") == "00123"


def test_missing_file(temp_workdir: Path):
    with pytest.raises(SpreadsheetReadError):
        read_raw_frame(temp_workdir / "nope.xlsx")


def test_unsupported_suffix(temp_workdir: Path):
    p = temp_workdir / "companies.txt"
    p.write_text("Name\nA\n", encoding="utf-8")
    with pytest.raises(SpreadsheetReadError):
        read_raw_frame(p)


def test_corrupt_workbook(temp_workdir: Path):
    p = temp_workdir / "broken.xlsx"
    p.write_bytes(b"not a zip file")
    with pytest.raises(SpreadsheetReadError):
        read_spreadsheet(p)


def test_workbook_handle_is_closed(temp_workdir: Path):
    excel = _make_excel(temp_workdir, "companies.xlsx", {"Empresas": [["Nombre"], ["Acme SL"]]})
    original_close = pd.ExcelFile.close

    with patch.object(pd.ExcelFile, "close", autospec=True, side_effect=original_close) as close:
        read_spreadsheet(excel)

    assert close.called
