from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

import requests

"""Forward geocoding via Nominatim (OSM).

geocode(address, region) returns Coordinates, raises GeocodeNotFound when the
service has no result and GeocodingError for transport / response problems.
Rate discipline (delay between calls) is the caller's concern.
"""

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://nominatim.openstreetmap.org/search"


class GeocodingError(Exception):
    """Geocoding request failed (timeout, HTTP error, bad payload)."""


class GeocodeNotFound(GeocodingError):
    """Geocoder answered but found no location for the query."""


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


def default_user_agent() -> str:
    contact = os.getenv("OSM_CONTACT_EMAIL", "registry-import@example.org")
    return f"registry-import/0.1 (mailto:{contact})"


def build_query(address: str, region: str | None, region_suffix: str | None = None) -> str:
    parts = [address.strip()]
    if region and region.strip():
        parts.append(region.strip())
    if region_suffix and region_suffix.strip():
        parts.append(region_suffix.strip())
    return ", ".join(parts)


class NominatimGeocoder:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        user_agent: str | None = None,
        timeout_seconds: float = 10.0,
        region_suffix: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url
        self.user_agent = user_agent or default_user_agent()
        self.timeout_seconds = timeout_seconds
        self.region_suffix = region_suffix
        self.session = session or requests.Session()

    def geocode(self, address: str, region: str | None = None) -> Coordinates:
        query = build_query(address, region, self.region_suffix)
        params = {"q": query, "format": "jsonv2", "limit": 1}
        try:
            resp = self.session.get(
                self.base_url,
                params=params,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout_seconds,
            )
            resp.raise_for_status()
            items: Any = resp.json() or []
        except requests.Timeout as e:
            raise GeocodingError(f"timeout geocoding {query!r}") from e
        except requests.RequestException as e:
            raise GeocodingError(f"request failed for {query!r}: {e}") from e
        except ValueError as e:
            raise GeocodingError(f"invalid JSON for {query!r}") from e

        if not isinstance(items, list):
            raise GeocodingError(f"unexpected payload for {query!r}: {items!r}")
        if not items:
            raise GeocodeNotFound(f"no result for {query!r}")
        top = items[0]
        try:
            coords = Coordinates(latitude=float(top["lat"]), longitude=float(top["lon"]))
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodingError(f"unexpected payload for {query!r}: {top!r}") from e
        logger.debug("geocoded %r -> %s, %s", query, coords.latitude, coords.longitude)
        return coords
