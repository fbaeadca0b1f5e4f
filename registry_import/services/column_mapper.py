from __future__ import annotations

import logging
import re
import unicodedata
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from ..models.field_mapping import IGNORED, FieldMapping, MappingConflictError
from ..models.row_data import RawRow
from ..models.target_fields import FIELD_NAMES

"""Column mapping: which spreadsheet column feeds which registry field.

Two strategies, always selected explicitly by the caller:

- KeywordColumnMapper: deterministic keyword table, first matching field wins.
- AssistantColumnMapper: defers to an external mapping assistant and replaces
  the mapping outright. It raises MappingAssistantUnavailable instead of
  falling back on its own; resolve_mapping() is where the fallback happens and
  is reported.
"""

logger = logging.getLogger(__name__)

HEURISTIC = "heuristic"
ASSISTANT = "assistant"

# Checked in this order; more specific fields come before broad ones so that
# "email address" maps to email and "office address" to address.
# Keywords of 3 characters or fewer must match a whole word ("tel" must not hit "hotel").
KEYWORD_TABLE: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("tax_id", ("nif", "cif", "tax_id", "tax id", "dni", "ruc", "vat", "identificacion fiscal")),
    ("email", ("email", "e-mail", "correo", "mail")),
    ("website", ("website", "sitio web", "pagina web", "web", "url")),
    ("phone", ("telefono", "phone", "tel", "movil", "mobile")),
    ("registration_number", ("registration", "registro", "reg no")),
    ("legal_form", ("legal form", "forma legal", "forma juridica", "tipo sociedad")),
    ("employee_count", ("empleados", "employees", "employee", "trabajadores", "plantilla", "headcount", "staff")),
    ("revenue", ("facturacion", "turnover", "revenue", "ingresos", "ventas", "sales")),
    ("latitude", ("latitud", "latitude", "lat")),
    ("longitude", ("longitud", "longitude", "lon", "lng")),
    ("address", ("direccion", "address", "calle", "domicilio", "street")),
    ("region", ("parroquia", "parish", "region", "municipio", "localidad", "provincia", "province")),
    ("office", ("oficina", "office", "sucursal", "agencia", "branch")),
    ("sector", ("sector", "industria", "industry", "rubro")),
    ("notes", ("observaciones", "notes", "notas", "comentarios", "remarks")),
    ("name", ("nombre", "name", "empresa", "company", "razon social")),
)

_SHORT_KEYWORD = 3
_WS = re.compile(r"\s+")
_WORD_SPLIT = re.compile(r"[^a-z0-9_]+")


class MappingError(Exception):
    """Mapping cannot start a run (fatal). Carries the missing required fields."""

    def __init__(self, message: str, missing_required_fields: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.missing_required_fields = list(missing_required_fields)


class MappingAssistantUnavailable(Exception):
    """The mapping assistant could not produce a mapping.

    ``reason`` is one of: "rate_limited", "payment_required", "invalid_response", "error".
    """

    def __init__(self, message: str, reason: str = "error") -> None:
        super().__init__(message)
        self.reason = reason


class MappingAssistant(Protocol):
    def suggest_mapping(
        self, columns: Sequence[str], sample_rows: Sequence[Mapping[str, object]]
    ) -> list[tuple[str, str]]:
        ...


def normalize_column_name(column: str) -> str:
    """Lowercase, trim, strip diacritics and collapse whitespace."""
    text = unicodedata.normalize("NFKD", str(column))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return _WS.sub(" ", text.lower().strip())


def _keyword_matches(keyword: str, normalized: str) -> bool:
    if len(keyword) <= _SHORT_KEYWORD:
        return keyword in _WORD_SPLIT.split(normalized)
    return keyword in normalized


def match_field(column: str) -> str | None:
    """First target field whose keyword set matches ``column``, if any."""
    normalized = normalize_column_name(column)
    for target, keywords in KEYWORD_TABLE:
        if any(_keyword_matches(k, normalized) for k in keywords):
            return target
    return None


class KeywordColumnMapper:
    """Deterministic keyword-table mapping strategy."""

    name = HEURISTIC

    def map(self, columns: Sequence[str]) -> FieldMapping:
        pairs: list[tuple[str, str]] = []
        claimed: set[str] = set()
        for column in columns:
            target = match_field(column)
            if target is None:
                continue
            if target in claimed:
                # first column wins; a lost race surfaces later as a missing required field
                logger.debug("column %r also matches %s, already mapped; ignored", column, target)
                continue
            claimed.add(target)
            pairs.append((column, target))
        return FieldMapping.from_pairs(pairs)

    def remap(self, columns: Sequence[str], override: Mapping[str, str]) -> FieldMapping:
        """Apply manual corrections on top of the keyword mapping.

        ``override`` maps column -> target field, or column -> "skip" to unmap it.
        Assigning a field held by another column moves the field.
        """
        return apply_override(self.map(columns), columns, override)


def apply_override(
    base: FieldMapping, columns: Sequence[str], override: Mapping[str, str]
) -> FieldMapping:
    known = set(columns)
    current = dict(base.pairs)
    for column, target in override.items():
        if column not in known:
            raise MappingError(f"override names unknown column {column!r}")
        if target != IGNORED and target not in FIELD_NAMES:
            raise MappingError(f"override names unknown field {target!r} for column {column!r}")
        current.pop(column, None)
        if target == IGNORED:
            continue
        for other, other_target in list(current.items()):
            if other_target == target:
                del current[other]
        current[column] = target
    # keep source column order
    return FieldMapping.from_pairs((c, current[c]) for c in columns if c in current)


class AssistantColumnMapper:
    """Mapping strategy backed by the external mapping assistant."""

    name = ASSISTANT

    def __init__(self, assistant: MappingAssistant) -> None:
        self.assistant = assistant

    def suggest(self, columns: Sequence[str], sample_rows: Sequence[RawRow]) -> FieldMapping:
        samples = [dict(r.values) for r in sample_rows]
        pairs = self.assistant.suggest_mapping(list(columns), samples)
        known = set(columns)
        cleaned: list[tuple[str, str]] = []
        for column, target in pairs:
            if column not in known or target not in FIELD_NAMES:
                logger.debug("assistant pair dropped column=%r field=%r", column, target)
                continue
            cleaned.append((column, target))
        try:
            return FieldMapping.from_pairs(cleaned)
        except MappingConflictError as e:
            raise MappingAssistantUnavailable(f"assistant mapping inconsistent: {e}", "invalid_response") from e


@dataclass(frozen=True)
class MappingResolution:
    mapping: FieldMapping
    strategy: str  # strategy that produced the mapping
    fell_back: bool = False
    fallback_reason: str | None = None


def resolve_mapping(
    columns: Sequence[str],
    sample_rows: Sequence[RawRow],
    strategy: str = HEURISTIC,
    assistant: MappingAssistant | None = None,
    override: Mapping[str, str] | None = None,
) -> MappingResolution:
    """Produce the run mapping with the requested strategy.

    The assistant result is never merged with the heuristic one. When the
    assistant is unavailable the heuristic mapping is used and the fallback is
    logged at WARN and returned to the caller.
    """
    heuristic = KeywordColumnMapper()
    if strategy not in (HEURISTIC, ASSISTANT):
        raise MappingError(f"unknown mapping strategy: {strategy}")

    fell_back = False
    reason: str | None = None
    used = strategy
    if strategy == ASSISTANT:
        if assistant is None:
            fell_back, reason = True, "assistant not configured"
            mapping = heuristic.map(columns)
        else:
            try:
                mapping = AssistantColumnMapper(assistant).suggest(columns, sample_rows)
            except MappingAssistantUnavailable as e:
                fell_back, reason = True, f"{e.reason}: {e}"
                mapping = heuristic.map(columns)
        if fell_back:
            used = HEURISTIC
            logger.warning("assistant mapping unavailable (%s); using keyword mapping", reason)
    else:
        mapping = heuristic.map(columns)

    if override:
        mapping = apply_override(mapping, columns, override)
    return MappingResolution(mapping=mapping, strategy=used, fell_back=fell_back, fallback_reason=reason)


def require_complete(mapping: FieldMapping) -> None:
    """Raise MappingError when a required field has no mapped column."""
    missing = mapping.missing_required_fields()
    if missing:
        raise MappingError(
            f"required fields not mapped: {', '.join(missing)}",
            missing_required_fields=missing,
        )
