from __future__ import annotations

import math

import pytest

from registry_import.models.row_data import RawRow, cell_is_blank, cell_text


def test_raw_row_creation():
    """RawRow keeps the spreadsheet row number and column values."""
    row = RawRow(row_index=2, values={"Name": "Acme SL", "Region": "Centro"})

    assert row.row_index == 2
    assert row.get("Name") == "Acme SL"
    assert row.columns == ["Name", "Region"]


def test_raw_row_values_are_read_only():
    row = RawRow(row_index=2, values={"Name": "Acme SL"})

    with pytest.raises(TypeError):
        row.values["Name"] = "Other"  # type: ignore[index]


def test_raw_row_source_dict_changes_do_not_leak():
    source = {"Name": "Acme SL"}
    row = RawRow(row_index=2, values=source)
    source["Name"] = "Changed"

    assert row.get("Name") == "Acme SL"


def test_raw_row_get_unmapped_column_is_none():
    row = RawRow(row_index=3, values={"Name": "Acme SL"})

    assert row.get(None) is None
    assert row.get("Missing") is None
    assert row.text("Missing") is None


@pytest.mark.parametrize("value", [None, float("nan"), "", "   ", "\t"])
def test_cell_is_blank(value):
    assert cell_is_blank(value) is True


@pytest.mark.parametrize("value", [0, 0.0, "0", "x", False])
def test_cell_is_not_blank(value):
    assert cell_is_blank(value) is False


def test_cell_text_renders_integral_floats_without_decimal():
    # Excel gives tax ids typed as numbers back as floats
    assert cell_text(12345.0) == "12345"
    assert cell_text(12.5) == "12.5"
    assert cell_text("  A123 ") == "A123"
    assert cell_text(math.nan) is None
