from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from .row_data import RawRow
from .target_fields import FIELD_NAMES, REQUIRED_FIELDS

"""FieldMapping: source column -> target field assignment table.

Invariants (enforced on construction):
- each source column appears at most once
- each target field appears at most once
- every target field is one of the registry fields

Columns without a pair are ignored by every later stage.
"""

__all__ = [
    "FieldMapping",
    "MappingConflictError",
    "IGNORED",
]

IGNORED = "skip"  # marker used by manual overrides to unmap a column


class MappingConflictError(ValueError):
    """Raised when a mapping would assign a column or a field twice."""


@dataclass(frozen=True)
class FieldMapping:
    pairs: tuple[tuple[str, str], ...] = ()  # (source_column, target_field) in column order

    def __post_init__(self) -> None:
        seen_columns: set[str] = set()
        seen_fields: set[str] = set()
        for column, target in self.pairs:
            if target not in FIELD_NAMES:
                raise MappingConflictError(f"unknown target field {target!r} for column {column!r}")
            if column in seen_columns:
                raise MappingConflictError(f"column {column!r} mapped more than once")
            if target in seen_fields:
                raise MappingConflictError(f"target field {target!r} mapped more than once")
            seen_columns.add(column)
            seen_fields.add(target)

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> FieldMapping:
        return cls(pairs=tuple((str(c), str(f)) for c, f in pairs))

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def field_for(self, column: str) -> str | None:
        for c, f in self.pairs:
            if c == column:
                return f
        return None

    def column_for(self, target: str) -> str | None:
        for c, f in self.pairs:
            if f == target:
                return c
        return None

    def ignored_columns(self, columns: Iterable[str]) -> list[str]:
        mapped = {c for c, _ in self.pairs}
        return [c for c in columns if c not in mapped]

    def missing_required_fields(self) -> list[str]:
        """Required target fields with no mapped source column, in catalogue order."""
        mapped = {f for _, f in self.pairs}
        return [f for f in REQUIRED_FIELDS if f not in mapped]

    def is_complete(self) -> bool:
        return not self.missing_required_fields()

    def value(self, row: RawRow, target: str) -> object:
        return row.get(self.column_for(target))

    def text(self, row: RawRow, target: str) -> str | None:
        return row.text(self.column_for(target))

    def as_dict(self) -> dict[str, str]:
        return {c: f for c, f in self.pairs}
