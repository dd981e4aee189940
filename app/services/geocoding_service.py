"""
Geocoding service - free text / place name -> coordinates.
"""

import logging
from typing import Any, Dict, List, Optional

from app.core.exceptions import FetchError
from app.services.cache_service import CacheStore, cache_key
from app.services.fetchers.base import ExternalFetcher

logger = logging.getLogger(__name__)


class GeocodingService:
    """Location extraction from free text plus forward geocoding, both cached."""

    def __init__(
        self,
        cache: CacheStore,
        extractor: ExternalFetcher,
        geocoder: ExternalFetcher,
        extraction_ttl_minutes: int = 60,
        geocode_ttl_minutes: int = 1440,
    ):
        self.cache = cache
        self.extractor = extractor
        self.geocoder = geocoder
        self.extraction_ttl_minutes = extraction_ttl_minutes
        self.geocode_ttl_minutes = geocode_ttl_minutes

    def extract_locations(self, description: str) -> List[str]:
        key = cache_key("location_extract", description)
        data = self.cache.get_or_fetch(
            key, self.extraction_ttl_minutes, lambda: self.extractor.fetch({"description": description})
        )
        return list(data.get("locations") or [])

    def geocode(self, location_name: str) -> Dict[str, Any]:
        # Place names are case-insensitive: "New  York" and "new york" share an entry
        key = cache_key("geocode", " ".join(location_name.split()).lower())
        return self.cache.get_or_fetch(
            key, self.geocode_ttl_minutes, lambda: self.geocoder.fetch({"location_name": location_name})
        )

    def locate(self, location_name: str) -> Optional[Dict[str, Any]]:
        """Coordinates for one place name, or None when it cannot be found."""
        try:
            return self.geocode(location_name)
        except FetchError as e:
            logger.warning(f"Geocoding failed for '{location_name}': {e}")
            return None

    def resolve(self, location_name: Optional[str] = None, description: Optional[str] = None) -> Dict[str, Any]:
        """
        Geocode location_name, or the first location extracted from description.

        coordinates is None when nothing could be located.
        """
        extracted: List[str] = []
        if not location_name and description:
            extracted = self.extract_locations(description)
            location_name = extracted[0] if extracted else None

        coordinates = self.locate(location_name) if location_name else None

        logger.info(f"Geocode resolved '{location_name}': {'found' if coordinates else 'not found'}")
        return {
            "location_name": location_name,
            "extracted_locations": extracted,
            "coordinates": coordinates,
        }
