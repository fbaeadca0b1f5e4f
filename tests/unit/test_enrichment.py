from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from registry_import.geo.nominatim import Coordinates, GeocodingError
from registry_import.services.enrichment import (
    UNCHANGED,
    Enricher,
    has_valid_coordinates,
    needs_enrichment,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _enricher(geocoder, delay: float = 0.0, workers: int = 1, clock: FakeClock | None = None) -> Enricher:
    clock = clock or FakeClock()
    return Enricher(geocoder, delay_seconds=delay, workers=workers, clock=clock, sleep=clock.sleep)


def _row(row_factory, row_index=2, **kw):
    values = {"name": "Acme", "address": "Calle Mayor 1", "region": "Centro"}
    values.update(kw)
    return row_factory(row_index, **values)


@pytest.mark.parametrize(
    "lat, lon, expected",
    [
        (40.4, -3.7, False),
        (None, None, True),
        (0, 0, True),
        (40.4, 0, True),
        ("abc", -3.7, True),
        (95, -3.7, True),
    ],
)
def test_needs_enrichment(row_factory, standard_mapping, lat, lon, expected):
    row = _row(row_factory, latitude=lat, longitude=lon)
    assert needs_enrichment(row, standard_mapping) is expected
    assert has_valid_coordinates(row, standard_mapping) is (not expected)


def test_no_address_no_enrichment(row_factory, standard_mapping):
    row = row_factory(2, name="Acme", region="Centro")
    assert needs_enrichment(row, standard_mapping) is False


def test_enrich_returns_coordinates(row_factory, standard_mapping, fake_geocoder):
    fake_geocoder.results["Calle Mayor 1"] = Coordinates(40.41, -3.70)

    result = _enricher(fake_geocoder).enrich(_row(row_factory), standard_mapping)

    assert result == Coordinates(40.41, -3.70)
    assert fake_geocoder.calls == [("Calle Mayor 1", "Centro")]


def test_enrich_skips_rows_with_coordinates(row_factory, standard_mapping, fake_geocoder):
    enricher = _enricher(fake_geocoder)

    result = enricher.enrich(_row(row_factory, latitude=40.0, longitude=-3.0), standard_mapping)

    assert result is UNCHANGED
    assert fake_geocoder.calls == []
    assert enricher.calls == 0


def test_not_found_is_unchanged(row_factory, standard_mapping, fake_geocoder):
    assert _enricher(fake_geocoder).enrich(_row(row_factory), standard_mapping) is UNCHANGED


def test_geocoding_error_is_unchanged(row_factory, standard_mapping, fake_geocoder):
    fake_geocoder.results["Calle Mayor 1"] = GeocodingError("timeout")

    assert _enricher(fake_geocoder).enrich(_row(row_factory), standard_mapping) is UNCHANGED


def test_out_of_range_result_is_unchanged(row_factory, standard_mapping, fake_geocoder):
    fake_geocoder.results["Calle Mayor 1"] = Coordinates(123.0, 0.5)

    assert _enricher(fake_geocoder).enrich(_row(row_factory), standard_mapping) is UNCHANGED


def test_unchanged_is_falsy_singleton():
    assert not UNCHANGED
    assert repr(UNCHANGED) == "UNCHANGED"


def test_calls_are_paced(row_factory, standard_mapping, fake_geocoder):
    clock = FakeClock()
    enricher = _enricher(fake_geocoder, delay=1.0, clock=clock)
    rows = [_row(row_factory, i) for i in (2, 3, 4)]

    for row in rows:
        enricher.enrich(row, standard_mapping)

    assert enricher.calls == 3
    assert clock.sleeps == [1.0, 1.0]


def test_enrich_many_with_workers_matches_sequential(row_factory, standard_mapping, fake_geocoder):
    fake_geocoder.results["A 1"] = Coordinates(1.0, 1.0)
    fake_geocoder.results["B 2"] = Coordinates(2.0, 2.0)
    rows = [
        _row(row_factory, 2, address="A 1"),
        _row(row_factory, 3, address="B 2"),
        _row(row_factory, 4, address="Nowhere"),
        _row(row_factory, 5, latitude=10.0, longitude=10.0),
    ]

    parallel = _enricher(fake_geocoder, workers=4).enrich_many(rows, standard_mapping)
    sequential = _enricher(fake_geocoder, workers=1).enrich_many(rows, standard_mapping)

    assert parallel == sequential
    assert parallel == {2: Coordinates(1.0, 1.0), 3: Coordinates(2.0, 2.0), 4: UNCHANGED}


def test_workers_must_be_positive(fake_geocoder):
    with pytest.raises(ValueError):
        Enricher(fake_geocoder, workers=0)


def test_unexpected_geocoder_exception_is_unchanged(row_factory, standard_mapping, caplog):
    geocoder = MagicMock()
    geocoder.geocode.side_effect = RuntimeError("boom")

    assert _enricher(geocoder).enrich(_row(row_factory), standard_mapping) is UNCHANGED
    assert "geocoder raised RuntimeError: boom" in caplog.text
