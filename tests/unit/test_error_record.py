from __future__ import annotations

import json

from registry_import.logging.error_log import duplicate_record, violation_record
from registry_import.models.error_record import ErrorRecord
from registry_import.models.outcomes import DuplicateFlag, MatchKind, ValidationViolation

"""Unit tests for ErrorRecord and the record builders."""


def test_error_record_row_minus_one_support():
    """row=-1 marks a run-level error."""
    rec = ErrorRecord.create(
        file="problematic.xlsx",
        row=-1,
        error_type="RUN_ERROR",
        message="mapping: required fields not mapped: address",
    )

    assert rec.row == -1
    assert rec.field == ""
    data = json.loads(rec.to_json_line())
    assert data["row"] == -1
    assert data["error_type"] == "RUN_ERROR"


def test_error_record_timestamp_is_utc_z():
    rec = ErrorRecord.create(file="f.xlsx", row=2, error_type="VALIDATION_ERROR", message="m")

    assert rec.timestamp.endswith("Z")
    assert "+00:00" not in rec.timestamp


def test_error_record_json_keeps_unicode():
    rec = ErrorRecord.create(file="empresas.xlsx", row=4, error_type="DUPLICATE", message="coincide con Compañía")

    line = rec.to_json_line()
    assert "Compañía" in line


def test_violation_record_includes_value():
    v = ValidationViolation(row_index=5, field="latitude", raw_value="95", reason="invalid latitude")

    rec = violation_record("f.xlsx", v)

    assert rec.row == 5
    assert rec.field == "latitude"
    assert rec.error_type == "VALIDATION_ERROR"
    assert rec.message == "invalid latitude (value: 95)"


def test_violation_record_required_without_value():
    v = ValidationViolation(row_index=3, field="required", raw_value="", reason="missing required fields: address")

    rec = violation_record("f.xlsx", v)

    assert rec.field == "required"
    assert rec.message == "missing required fields: address"


def test_duplicate_record_names_matched_company():
    flag = DuplicateFlag(
        row_index=7,
        match_kind=MatchKind.EXACT_TAX_ID,
        similarity=100,
        matched_existing_id=1,
        matched_name="Acme SL",
    )

    rec = duplicate_record("f.xlsx", flag)

    assert rec.error_type == "DUPLICATE"
    assert rec.field == "tax_id"
    assert "'Acme SL'" in rec.message
    assert "exact_tax_id" in rec.message
    assert "similarity=100" in rec.message
