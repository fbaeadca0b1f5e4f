from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

"""Per-row artifacts produced during one import run.

ValidationViolation and DuplicateFlag are produced by the validator and the
duplicate detector. RowOutcome is the closed set of final row states recorded
by the batch importer; the run summary is a tally over it.
"""

__all__ = [
    "ValidationViolation",
    "MatchKind",
    "DuplicateFlag",
    "Success",
    "ValidationError",
    "Duplicate",
    "CommitError",
    "Skipped",
    "RowOutcome",
    "outcome_category",
    "REQUIRED_VIOLATION_FIELD",
]

REQUIRED_VIOLATION_FIELD = "required"


@dataclass(frozen=True)
class ValidationViolation:
    row_index: int
    field: str  # target field, or "required" for missing required fields
    raw_value: Any
    reason: str


class MatchKind(Enum):
    EXACT_TAX_ID = "exact_tax_id"
    EXACT_NAME = "exact_name"
    FUZZY_NAME = "fuzzy_name"


@dataclass(frozen=True)
class DuplicateFlag:
    row_index: int
    match_kind: MatchKind
    similarity: int  # 0-100
    matched_existing_id: Any = None
    matched_row_index: int | None = None  # reserved for intra-file matches
    matched_name: str | None = None  # display name of the matched entity


@dataclass(frozen=True)
class Success:
    record_id: Any


@dataclass(frozen=True)
class ValidationError:
    violations: tuple[ValidationViolation, ...]

    @property
    def reasons(self) -> tuple[str, ...]:
        return tuple(v.reason for v in self.violations)


@dataclass(frozen=True)
class Duplicate:
    flag: DuplicateFlag


@dataclass(frozen=True)
class CommitError:
    reason: str


@dataclass(frozen=True)
class Skipped:
    reason: str


RowOutcome = Union[Success, ValidationError, Duplicate, CommitError, Skipped]


def outcome_category(outcome: RowOutcome) -> str:
    """Summary bucket for an outcome: success / errors / duplicates / skipped."""
    if isinstance(outcome, Success):
        return "success"
    if isinstance(outcome, (ValidationError, CommitError)):
        return "errors"
    if isinstance(outcome, Duplicate):
        return "duplicates"
    if isinstance(outcome, Skipped):
        return "skipped"
    raise TypeError(f"not a row outcome: {outcome!r}")
