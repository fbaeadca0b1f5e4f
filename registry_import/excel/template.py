from __future__ import annotations

from pathlib import Path

import pandas as pd

from ..models.target_fields import TARGET_FIELDS

"""Downloadable import template: required field labels first, then optional.

Headers only, no data rows. Every label maps back to its own field through
the keyword column mapper, so a filled-in template imports without overrides.
"""

TEMPLATE_SHEET_NAME = "Template"


def template_headers() -> list[str]:
    required = [f.label for f in TARGET_FIELDS if f.required]
    optional = [f.label for f in TARGET_FIELDS if not f.required]
    return required + optional


def write_template(path: Path) -> Path:
    """Write the template workbook to ``path`` (.xlsx) or ``path`` (.csv)."""
    df = pd.DataFrame(columns=template_headers())
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".csv":
        df.to_csv(path, index=False)
    else:
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name=TEMPLATE_SHEET_NAME, index=False)
    return path
