from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""Target field catalogue for the company registry.

The registry accepts a fixed set of fields. Each field is tagged required or
optional and carries the value kind the validator checks it against, plus the
operator-facing label used as column header in the downloadable template.
"""

__all__ = [
    "FieldKind",
    "TargetField",
    "TARGET_FIELDS",
    "REQUIRED_FIELDS",
    "OPTIONAL_FIELDS",
    "FIELD_NAMES",
    "get_field",
]


class FieldKind(Enum):
    """Value kind of a target field."""
    STRING = "string"
    DECIMAL = "decimal"
    BOUNDED_DECIMAL = "bounded_decimal"
    EMAIL = "email"
    URL = "url"


@dataclass(frozen=True)
class TargetField:
    name: str  # registry column name
    label: str  # template header
    kind: FieldKind = FieldKind.STRING
    required: bool = False
    lower_bound: float | None = None  # BOUNDED_DECIMAL only
    upper_bound: float | None = None


TARGET_FIELDS: tuple[TargetField, ...] = (
    TargetField("name", "Name", required=True),
    TargetField("address", "Address", required=True),
    TargetField("latitude", "Latitude", FieldKind.BOUNDED_DECIMAL, lower_bound=-90.0, upper_bound=90.0),
    TargetField("longitude", "Longitude", FieldKind.BOUNDED_DECIMAL, lower_bound=-180.0, upper_bound=180.0),
    TargetField("region", "Region", required=True),
    TargetField("tax_id", "Tax ID"),
    TargetField("sector", "Sector"),
    TargetField("office", "Office"),
    TargetField("phone", "Phone"),
    TargetField("email", "Email", FieldKind.EMAIL),
    TargetField("website", "Website", FieldKind.URL),
    TargetField("employee_count", "Employees", FieldKind.DECIMAL),
    TargetField("revenue", "Revenue", FieldKind.DECIMAL),
    TargetField("registration_number", "Registration number"),
    TargetField("legal_form", "Legal form"),
    TargetField("notes", "Notes"),
)

_BY_NAME: dict[str, TargetField] = {f.name: f for f in TARGET_FIELDS}

FIELD_NAMES: tuple[str, ...] = tuple(f.name for f in TARGET_FIELDS)
REQUIRED_FIELDS: tuple[str, ...] = tuple(f.name for f in TARGET_FIELDS if f.required)
OPTIONAL_FIELDS: tuple[str, ...] = tuple(f.name for f in TARGET_FIELDS if not f.required)


def get_field(name: str) -> TargetField:
    """Return the target field called ``name``.

    Raises:
        KeyError: if ``name`` is not a registry field
    """
    try:
        return _BY_NAME[name]
    except KeyError:
        raise KeyError(f"unknown target field: {name!r}") from None
