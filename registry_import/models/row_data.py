from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

"""RawRow model for the spreadsheet -> registry import.

RawRow is one data row exactly as read from the spreadsheet: source column
name -> raw cell value, plus the 1-based spreadsheet row number used in every
operator-facing report. Header is row 1, so the first data row is 2.
"""

__all__ = [
    "RawRow",
    "cell_is_blank",
    "cell_text",
]


def cell_is_blank(value: Any) -> bool:
    """True for None, NaN and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    return False


def cell_text(value: Any) -> str | None:
    """Render a cell as trimmed text, or None when blank.

    Integral floats (Excel stores ``12345`` as ``12345.0``) are rendered without
    the trailing ``.0`` so identifiers such as tax ids survive the round trip.
    """
    if cell_is_blank(value):
        return None
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


@dataclass(frozen=True)
class RawRow:
    """One parsed spreadsheet row. Immutable once read."""
    row_index: int  # spreadsheet row number (header = 1)
    values: Mapping[str, Any] = field(default_factory=dict)  # column -> raw value, source order

    def __post_init__(self) -> None:
        # read-only view so a row cannot be mutated by a later stage
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, column: str | None) -> Any:
        if column is None:
            return None
        return self.values.get(column)

    def text(self, column: str | None) -> str | None:
        return cell_text(self.get(column))

    @property
    def columns(self) -> list[str]:
        return list(self.values.keys())
