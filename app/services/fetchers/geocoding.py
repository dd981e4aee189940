"""
Forward geocoding: location name -> coordinates.

Providers:
- GoogleGeocodingFetcher: used when GOOGLE_MAPS_API_KEY is set
- NominatimGeocodingFetcher: OpenStreetMap, no key; always the fallback
- FixtureGeocodingFetcher: fixed table for tests and offline development

Result schema:
    {"latitude": float, "longitude": float, "formatted_address": str, "source": str}
"""

import logging
from typing import Any, Dict, Optional

import requests

from app.core.exceptions import FetchError
from .base import ExternalFetcher

logger = logging.getLogger(__name__)


def _location_name(params: Dict[str, Any]) -> str:
    name = (params.get("location_name") or "").strip()
    if not name:
        raise FetchError("location_name is required", fetcher="geocoding")
    return name


class GoogleGeocodingFetcher(ExternalFetcher):
    """Google Maps Geocoding API."""

    name = "google_maps"
    BASE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

    def __init__(self, api_key: str, timeout: float = 3.0):
        self.api_key = api_key
        self.timeout = timeout

    def fetch(self, params: Dict[str, Any]) -> Dict[str, Any]:
        location_name = _location_name(params)
        try:
            resp = requests.get(
                self.BASE_URL,
                params={"address": location_name, "key": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise FetchError(f"Google Maps geocode error: {e}", fetcher=self.name) from e

        if resp.status_code != 200:
            raise FetchError(f"Google Maps geocode failed with status {resp.status_code}", fetcher=self.name)

        results = resp.json().get("results") or []
        if not results:
            raise FetchError(f"No Google Maps result for '{location_name}'", fetcher=self.name)

        first = results[0]
        location = first["geometry"]["location"]
        return {
            "latitude": float(location["lat"]),
            "longitude": float(location["lng"]),
            "formatted_address": first.get("formatted_address"),
            "source": "google_maps",
        }


class NominatimGeocodingFetcher(ExternalFetcher):
    """
    OpenStreetMap Nominatim search.

    - No API key required.
    - Sends a User-Agent header as required by the Nominatim usage policy.
    """

    name = "openstreetmap"
    BASE_URL = "https://nominatim.openstreetmap.org/search"

    def __init__(self, user_agent: str = "disaster-coordination-hub/1.0", timeout: float = 3.0):
        self.user_agent = user_agent
        self.timeout = timeout

    def fetch(self, params: Dict[str, Any]) -> Dict[str, Any]:
        location_name = _location_name(params)
        try:
            resp = requests.get(
                self.BASE_URL,
                params={"q": location_name, "format": "json", "limit": 1},
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise FetchError(f"Nominatim geocode error: {e}", fetcher=self.name) from e

        if resp.status_code != 200:
            raise FetchError(f"Nominatim geocode failed with status {resp.status_code}", fetcher=self.name)

        data = resp.json()
        if not data:
            raise FetchError(f"No Nominatim result for '{location_name}'", fetcher=self.name)

        first = data[0]
        return {
            "latitude": float(first["lat"]),
            "longitude": float(first["lon"]),
            "formatted_address": first.get("display_name"),
            "source": "openstreetmap",
        }


class FixtureGeocodingFetcher(ExternalFetcher):
    """Offline geocoder over a fixed table. Unknown names fail like a real miss."""

    name = "fixture_geocoder"

    KNOWN_LOCATIONS: Dict[str, Dict[str, Any]] = {
        "manhattan, nyc": {"latitude": 40.7831, "longitude": -73.9712, "formatted_address": "Manhattan, New York, NY, USA"},
        "lower east side, nyc": {"latitude": 40.7150, "longitude": -73.9843, "formatted_address": "Lower East Side, New York, NY, USA"},
        "brooklyn, nyc": {"latitude": 40.6782, "longitude": -73.9442, "formatted_address": "Brooklyn, New York, NY, USA"},
        "metropolis": {"latitude": 37.1517, "longitude": -88.7320, "formatted_address": "Metropolis, IL, USA"},
        "new orleans": {"latitude": 29.9511, "longitude": -90.0715, "formatted_address": "New Orleans, LA, USA"},
    }

    def __init__(self, table: Optional[Dict[str, Dict[str, Any]]] = None):
        self.table = {k.lower(): v for k, v in (table or self.KNOWN_LOCATIONS).items()}
        self.calls = 0

    def fetch(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.calls += 1
        location_name = _location_name(params)
        match = self.table.get(location_name.lower())
        if match is None:
            raise FetchError(f"Unknown location '{location_name}'", fetcher=self.name)
        return {**match, "source": "fixture"}
