from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

from ..geo.nominatim import Coordinates, GeocodeNotFound, GeocodingError
from ..models.field_mapping import FieldMapping
from ..models.row_data import RawRow
from .validator import parse_number

"""Best-effort geocoding of rows that carry an address but no usable coordinates.

Enrichment never rejects a row: NotFound and errors both come back as
UNCHANGED and the importer commits the row with null coordinates.

Calls are paced by a fixed minimum interval shared by all workers, so the
same delay holds whether rows are enriched inline or on a worker pool.
"""

logger = logging.getLogger(__name__)


class _Unchanged:
    _instance: _Unchanged | None = None

    def __new__(cls) -> _Unchanged:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNCHANGED"

    def __bool__(self) -> bool:
        return False


UNCHANGED = _Unchanged()

EnrichmentResult = Coordinates | _Unchanged


class Geocoder(Protocol):
    def geocode(self, address: str, region: str | None = None) -> Coordinates:
        ...


def _coordinate_ok(value: object, bound: float) -> bool:
    number = parse_number(value)
    return number is not None and number != 0 and -bound <= number <= bound


def has_valid_coordinates(row: RawRow, mapping: FieldMapping) -> bool:
    """Both coordinates present, numeric, non-zero and in range."""
    return _coordinate_ok(mapping.value(row, "latitude"), 90.0) and _coordinate_ok(
        mapping.value(row, "longitude"), 180.0
    )


def needs_enrichment(row: RawRow, mapping: FieldMapping) -> bool:
    return mapping.text(row, "address") is not None and not has_valid_coordinates(row, mapping)


class Enricher:
    """Geocodes qualifying rows one call at a time (or on a bounded pool)."""

    def __init__(
        self,
        geocoder: Geocoder,
        delay_seconds: float = 1.0,
        workers: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.geocoder = geocoder
        self.delay_seconds = delay_seconds
        self.workers = workers
        self._clock = clock
        self._sleep = sleep
        self._pace_lock = threading.Lock()
        self._last_call: float | None = None
        self.calls = 0

    def _wait_turn(self) -> None:
        with self._pace_lock:
            now = self._clock()
            if self._last_call is not None and self.delay_seconds > 0:
                remaining = self.delay_seconds - (now - self._last_call)
                if remaining > 0:
                    self._sleep(remaining)
                    now = self._clock()
            self._last_call = now
            self.calls += 1

    def enrich(self, row: RawRow, mapping: FieldMapping) -> EnrichmentResult:
        """Coordinates for ``row`` or UNCHANGED. Never raises for geocoding problems."""
        address = mapping.text(row, "address")
        if address is None or not needs_enrichment(row, mapping):
            return UNCHANGED
        region = mapping.text(row, "region")
        self._wait_turn()
        try:
            coords = self.geocoder.geocode(address, region)
        except GeocodeNotFound:
            logger.info("row %d: no geocoding result for address", row.row_index)
            return UNCHANGED
        except GeocodingError as e:
            logger.warning("row %d: geocoding failed: %s", row.row_index, e)
            return UNCHANGED
        except Exception as e:
            logger.warning("row %d: geocoder raised %s: %s", row.row_index, type(e).__name__, e)
            return UNCHANGED
        if not (-90.0 <= coords.latitude <= 90.0 and -180.0 <= coords.longitude <= 180.0):
            logger.warning("row %d: geocoder returned out-of-range coordinates %s", row.row_index, coords)
            return UNCHANGED
        return coords

    def enrich_many(self, rows: Sequence[RawRow], mapping: FieldMapping) -> dict[int, EnrichmentResult]:
        """Enrich every qualifying row; results keyed by row index.

        With workers > 1 calls run on a ThreadPoolExecutor; the result does not
        depend on completion order.
        """
        targets = [r for r in rows if needs_enrichment(r, mapping)]
        if not targets:
            return {}
        if self.workers == 1:
            return {r.row_index: self.enrich(r, mapping) for r in targets}
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="geocode") as pool:
            results = list(pool.map(lambda r: self.enrich(r, mapping), targets))
        return {r.row_index: res for r, res in zip(targets, results, strict=True)}
