from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import pandas as pd  # type: ignore

from registry_import.cli.__main__ import main as cli_main
from registry_import.excel.template import template_headers

"""Integration test: a filled-in template imports cleanly through the CLI."""

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY batch=([0-9a-f]{32}) rows=([0-9]+) success=([0-9]+) errors=([0-9]+) "
    r"duplicates=([0-9]+) skipped=([0-9]+) elapsed_sec=([0-9]+\.?[0-9]*)$",
    re.MULTILINE,
)


def test_filled_template_imports_without_overrides(temp_workdir: Path, write_config: Any, capsys: Any) -> None:
    template = temp_workdir / "data" / "template.xlsx"
    assert cli_main(["template", str(template)]) == 0

    headers = pd.read_excel(template).columns.tolist()
    assert headers == template_headers()
    filled = pd.DataFrame(
        [
            {"Name": "Acme SL", "Address": "Calle Mayor 1", "Region": "Centro", "Tax ID": "A1", "Employees": 12},
            {"Name": "Beta SA", "Address": "Av. Sur 2", "Region": "Norte", "Email": "hola@beta.ad"},
            {"Name": "Gamma SL", "Address": "Plaza 3", "Region": "Sur", "Website": "https://gamma.ad"},
        ],
        columns=headers,
    )
    xlsx = temp_workdir / "data" / "filled.xlsx"
    with pd.ExcelWriter(xlsx, engine="openpyxl") as writer:
        filled.to_excel(writer, sheet_name="Template", index=False)
    capsys.readouterr()

    exit_code = cli_main(["import", str(xlsx), "--no-geocode"])

    output = capsys.readouterr().out
    assert exit_code == 0, output
    match = SUMMARY_PATTERN.search(output)
    assert match is not None, f"SUMMARY line not found or malformed in output: {output}"
    rows, success, errors, duplicates, skipped = (int(g) for g in match.groups()[1:6])
    assert (rows, success, errors, duplicates, skipped) == (3, 3, 0, 0, 0)
    assert "ERROR" not in output
    assert "WARN" not in output
    assert list((temp_workdir / "logs").glob("errors-*.log")) == []
