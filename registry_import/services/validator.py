from __future__ import annotations

import math
import re
from collections.abc import Sequence
from typing import Any
from urllib.parse import urlparse

from ..models.field_mapping import FieldMapping
from ..models.outcomes import REQUIRED_VIOLATION_FIELD, ValidationViolation
from ..models.row_data import RawRow, cell_is_blank
from ..models.target_fields import REQUIRED_FIELDS, TARGET_FIELDS, FieldKind, TargetField

"""Field validation.

validate() is pure: same rows + mapping give the same violations in the same
order (row order, then catalogue field order). A missing required field is
reported once per row under the field name "required", never per field.
Optional fields are only checked when present; a blank cell is absent.
"""

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_URL_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")


def parse_number(value: Any) -> float | None:
    """Parse a cell as a finite number. None when it is not one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def is_valid_email(value: str) -> bool:
    return EMAIL_PATTERN.match(value) is not None


def is_valid_url(value: str) -> bool:
    text = value.strip()
    if not text or any(ch.isspace() for ch in text):
        return False
    try:
        parsed = urlparse(text)
    except ValueError:
        return False
    return bool(parsed.scheme) and _URL_SCHEME.match(parsed.scheme) is not None and bool(parsed.netloc)


def _check_field(row: RawRow, target_field: TargetField, value: Any) -> ValidationViolation | None:
    if target_field.kind is FieldKind.BOUNDED_DECIMAL:
        number = parse_number(value)
        lo, hi = target_field.lower_bound, target_field.upper_bound
        if number is None or (lo is not None and number < lo) or (hi is not None and number > hi):
            return ValidationViolation(
                row_index=row.row_index,
                field=target_field.name,
                raw_value=value,
                reason=f"invalid {target_field.name} (must be a number between {lo:g} and {hi:g})",
            )
    elif target_field.kind is FieldKind.DECIMAL:
        if parse_number(value) is None:
            return ValidationViolation(row.row_index, target_field.name, value, "must be a valid number")
    elif target_field.kind is FieldKind.EMAIL:
        if not is_valid_email(str(value).strip()):
            return ValidationViolation(row.row_index, target_field.name, value, "invalid email address")
    elif target_field.kind is FieldKind.URL:
        if not is_valid_url(str(value)):
            return ValidationViolation(row.row_index, target_field.name, value, "invalid URL")
    return None


def validate_row(row: RawRow, mapping: FieldMapping) -> list[ValidationViolation]:
    violations: list[ValidationViolation] = []

    missing = [f for f in REQUIRED_FIELDS if cell_is_blank(mapping.value(row, f))]
    if missing:
        violations.append(
            ValidationViolation(
                row_index=row.row_index,
                field=REQUIRED_VIOLATION_FIELD,
                raw_value="",
                reason=f"missing required fields: {', '.join(missing)}",
            )
        )

    for target_field in TARGET_FIELDS:
        if target_field.required or target_field.kind is FieldKind.STRING:
            continue
        value = mapping.value(row, target_field.name)
        if cell_is_blank(value):
            continue
        violation = _check_field(row, target_field, value)
        if violation is not None:
            violations.append(violation)
    return violations


def validate(rows: Sequence[RawRow], mapping: FieldMapping) -> list[ValidationViolation]:
    """Apply every field rule to every row. No side effects."""
    violations: list[ValidationViolation] = []
    for row in rows:
        violations.extend(validate_row(row, mapping))
    return violations


def violations_by_row(violations: Sequence[ValidationViolation]) -> dict[int, list[ValidationViolation]]:
    grouped: dict[int, list[ValidationViolation]] = {}
    for v in violations:
        grouped.setdefault(v.row_index, []).append(v)
    return grouped
