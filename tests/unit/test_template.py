from __future__ import annotations

from pathlib import Path

import pandas as pd

from registry_import.excel.template import TEMPLATE_SHEET_NAME, template_headers, write_template
from registry_import.models.target_fields import REQUIRED_FIELDS, TARGET_FIELDS
from registry_import.services.column_mapper import KeywordColumnMapper


def test_required_labels_come_first():
    headers = template_headers()
    required_labels = [f.label for f in TARGET_FIELDS if f.required]

    assert headers[: len(required_labels)] == required_labels
    assert len(headers) == len(TARGET_FIELDS)


def test_template_labels_map_back_to_their_fields():
    headers = template_headers()
    mapping = KeywordColumnMapper().map(headers)

    for target_field in TARGET_FIELDS:
        assert mapping.column_for(target_field.name) == target_field.label
    assert mapping.missing_required_fields() == []
    assert set(REQUIRED_FIELDS) <= {f for _, f in mapping}


def test_write_xlsx_template(temp_workdir: Path):
    out = write_template(temp_workdir / "out" / "template.xlsx")

    df = pd.read_excel(out, sheet_name=TEMPLATE_SHEET_NAME)
    assert list(df.columns) == template_headers()
    assert len(df) == 0


def test_write_csv_template(temp_workdir: Path):
    out = write_template(temp_workdir / "template.csv")

    first_line = out.read_text(encoding="utf-8").splitlines()[0]
    assert first_line.split(",") == template_headers()
