from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ..models.field_mapping import FieldMapping
from ..models.outcomes import DuplicateFlag, MatchKind
from ..models.row_data import RawRow, cell_text

"""Duplicate detection against the existing registry.

The registry identity set is read once per run into an IdentitySnapshot; the
detector never goes back to the store per row. Rules per row, first hit wins:

1. exact normalized tax id      -> EXACT_TAX_ID, 100
2. exact normalized name        -> EXACT_NAME, 100
3. one name contains the other  -> FUZZY_NAME, round(min/max length * 100),
   only when the similarity is above FUZZY_THRESHOLD

Rows are only compared with the registry, not with each other.
"""

logger = logging.getLogger(__name__)

FUZZY_THRESHOLD = 70


def normalize_identity(value: Any) -> str | None:
    """Lowercased, trimmed text of an identity value; None when blank."""
    text = cell_text(value)
    if text is None:
        return None
    text = text.lower().strip()
    return text or None


def name_similarity(a: str, b: str) -> int:
    """Length ratio of two names as a 0-100 integer (half rounds up)."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 0
    return int(min(len(a), len(b)) * 100 / longest + 0.5)


@dataclass(frozen=True)
class ExistingCompany:
    record_id: Any
    name: str | None
    tax_id: str | None


class IdentitySnapshot:
    """Read-only view of registry identities captured at run start."""

    def __init__(self, companies: Iterable[ExistingCompany]) -> None:
        self._companies: tuple[ExistingCompany, ...] = tuple(companies)
        self._by_tax_id: dict[str, ExistingCompany] = {}
        self._by_name: dict[str, ExistingCompany] = {}
        self._names: list[tuple[str, ExistingCompany]] = []
        for company in self._companies:
            tax = normalize_identity(company.tax_id)
            if tax is not None:
                self._by_tax_id.setdefault(tax, company)
            name = normalize_identity(company.name)
            if name is not None:
                if name not in self._by_name:
                    self._names.append((name, company))
                self._by_name.setdefault(name, company)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> IdentitySnapshot:
        """Build from ``queryIdentity`` rows: mappings with id, name and tax_id."""
        return cls(
            ExistingCompany(record_id=r.get("id"), name=r.get("name"), tax_id=r.get("tax_id"))
            for r in records
        )

    def __len__(self) -> int:
        return len(self._companies)

    def by_tax_id(self, normalized: str) -> ExistingCompany | None:
        return self._by_tax_id.get(normalized)

    def by_name(self, normalized: str) -> ExistingCompany | None:
        return self._by_name.get(normalized)

    def names(self) -> list[tuple[str, ExistingCompany]]:
        return list(self._names)


def _fuzzy_match(name: str, snapshot: IdentitySnapshot) -> tuple[ExistingCompany, int] | None:
    """First snapshot name that contains, or is contained in, ``name``.

    Only that candidate is scored; later containing names are not considered.
    """
    for existing, company in snapshot.names():
        if existing in name or name in existing:
            similarity = name_similarity(name, existing)
            if similarity > FUZZY_THRESHOLD:
                return company, similarity
            return None
    return None


def detect_row(row: RawRow, mapping: FieldMapping, snapshot: IdentitySnapshot) -> DuplicateFlag | None:
    tax_id = normalize_identity(mapping.value(row, "tax_id"))
    if tax_id is not None:
        company = snapshot.by_tax_id(tax_id)
        if company is not None:
            return DuplicateFlag(
                row_index=row.row_index,
                match_kind=MatchKind.EXACT_TAX_ID,
                similarity=100,
                matched_existing_id=company.record_id,
                matched_name=company.name,
            )

    name = normalize_identity(mapping.value(row, "name"))
    if name is None:
        return None
    company = snapshot.by_name(name)
    if company is not None:
        return DuplicateFlag(
            row_index=row.row_index,
            match_kind=MatchKind.EXACT_NAME,
            similarity=100,
            matched_existing_id=company.record_id,
            matched_name=company.name,
        )

    fuzzy = _fuzzy_match(name, snapshot)
    if fuzzy is not None:
        company, similarity = fuzzy
        return DuplicateFlag(
            row_index=row.row_index,
            match_kind=MatchKind.FUZZY_NAME,
            similarity=similarity,
            matched_existing_id=company.record_id,
            matched_name=company.name,
        )
    return None


def detect(
    rows: Sequence[RawRow], mapping: FieldMapping, snapshot: IdentitySnapshot
) -> list[DuplicateFlag]:
    """Flag rows that match an existing registry company. At most one flag per row."""
    flags: list[DuplicateFlag] = []
    for row in rows:
        flag = detect_row(row, mapping, snapshot)
        if flag is not None:
            flags.append(flag)
    logger.debug("duplicate detection rows=%d snapshot=%d flagged=%d", len(rows), len(snapshot), len(flags))
    return flags
