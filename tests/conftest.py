# Shared pytest fixtures
from __future__ import annotations
import tempfile
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from registry_import.db.registry import InMemoryRegistry
from registry_import.geo.nominatim import Coordinates, GeocodeNotFound, GeocodingError
from registry_import.logging.init import reset_logging
from registry_import.models.field_mapping import FieldMapping
from registry_import.models.row_data import RawRow


HEADERS = ["Company Name", "Street Address", "Region", "Latitude", "Longitude", "Tax ID", "Email", "Website"]


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: registry
mapping:
  strategy: heuristic
  sample_rows: 3
geocoding:
  enabled: false
  delay_seconds: 0
null_sentinels: ["N/A", "-"]
logs_dir: ./logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def make_spreadsheet(temp_workdir: Path) -> Callable[..., Path]:
    """Write ``rows`` under ``headers`` to data/<name> (.xlsx via openpyxl, or .csv)."""
    def _make(rows: Sequence[Sequence[Any]], headers: Sequence[str] = HEADERS, name: str = "companies.xlsx") -> Path:
        path = temp_workdir / "data" / name
        df = pd.DataFrame(list(rows), columns=list(headers))
        if path.suffix == ".csv":
            df.to_csv(path, index=False)
        else:
            with pd.ExcelWriter(path, engine="openpyxl") as writer:
                df.to_excel(writer, sheet_name="Companies", index=False)
        return path
    return _make


@pytest.fixture()
def standard_mapping() -> FieldMapping:
    return FieldMapping.from_pairs([
        ("Company Name", "name"),
        ("Street Address", "address"),
        ("Region", "region"),
        ("Latitude", "latitude"),
        ("Longitude", "longitude"),
        ("Tax ID", "tax_id"),
        ("Email", "email"),
        ("Website", "website"),
    ])


def make_row(row_index: int, **values: Any) -> RawRow:
    """RawRow keyed by the standard HEADERS; keyword names are target field names."""
    by_field = {
        "name": "Company Name",
        "address": "Street Address",
        "region": "Region",
        "latitude": "Latitude",
        "longitude": "Longitude",
        "tax_id": "Tax ID",
        "email": "Email",
        "website": "Website",
    }
    data: dict[str, Any] = {h: None for h in HEADERS}
    for key, value in values.items():
        data[by_field[key]] = value
    return RawRow(row_index=row_index, values=data)


@pytest.fixture()
def row_factory() -> Callable[..., RawRow]:
    return make_row


class FakeGeocoder:
    """Geocoder double: address -> Coordinates, GeocodeNotFound or GeocodingError."""

    def __init__(self, results: dict[str, Any] | None = None) -> None:
        self.results = results or {}
        self.calls: list[tuple[str, str | None]] = []

    def geocode(self, address: str, region: str | None = None) -> Coordinates:
        self.calls.append((address, region))
        result = self.results.get(address)
        if result is None:
            raise GeocodeNotFound(f"no result for {address!r}")
        if isinstance(result, GeocodingError):
            raise result
        return result


@pytest.fixture()
def fake_geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture()
def registry() -> InMemoryRegistry:
    return InMemoryRegistry()
