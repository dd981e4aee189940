"""
Fetcher selection.

FETCHER_MODE=live wires the network-backed fetchers, with fixtures standing
in for any capability whose credentials are missing. FETCHER_MODE=fixture
wires only offline fetchers (development and tests).
"""

import logging
from dataclasses import dataclass

from app.core.settings import Settings
from .base import ExternalFetcher, FallbackFetcher
from .gemini import (
    FixtureImageVerifier,
    FixtureLocationExtractor,
    FixtureSeverityAnalyzer,
    GeminiClient,
    GeminiImageVerifier,
    GeminiLocationExtractor,
    GeminiSeverityAnalyzer,
)
from .geocoding import FixtureGeocodingFetcher, GoogleGeocodingFetcher, NominatimGeocodingFetcher
from .official_updates import FixtureOfficialUpdatesFetcher, ReliefWebFetcher
from .social_media import FixtureSocialMediaFetcher, TwitterFetcher

logger = logging.getLogger(__name__)

LIVE = "live"
FIXTURE = "fixture"


@dataclass
class FetcherRegistry:
    social_media: ExternalFetcher
    official_updates: ExternalFetcher
    location_extractor: ExternalFetcher
    severity_analyzer: ExternalFetcher
    image_verifier: ExternalFetcher
    geocoder: ExternalFetcher
    mode: str = FIXTURE


def build_fixture_fetchers() -> FetcherRegistry:
    return FetcherRegistry(
        social_media=FixtureSocialMediaFetcher(),
        official_updates=FixtureOfficialUpdatesFetcher(),
        location_extractor=FixtureLocationExtractor(),
        severity_analyzer=FixtureSeverityAnalyzer(),
        image_verifier=FixtureImageVerifier(),
        geocoder=FixtureGeocodingFetcher(),
        mode=FIXTURE,
    )


def build_live_fetchers(settings: Settings) -> FetcherRegistry:
    timeout = settings.HTTP_TIMEOUT_SECONDS

    if settings.TWITTER_BEARER_TOKEN:
        social_media = TwitterFetcher(settings.TWITTER_BEARER_TOKEN, timeout=timeout)
    else:
        logger.warning("TWITTER_BEARER_TOKEN not set, using fixture social media feed")
        social_media = FixtureSocialMediaFetcher()

    if settings.GEMINI_API_KEY:
        client = GeminiClient(settings.GEMINI_API_KEY, settings.GEMINI_MODEL, timeout=timeout * 2)
        location_extractor = GeminiLocationExtractor(client)
        severity_analyzer = GeminiSeverityAnalyzer(client)
        image_verifier = GeminiImageVerifier(client, download_timeout=timeout)
    else:
        logger.warning("GEMINI_API_KEY not set, using fixture analysis fetchers")
        location_extractor = FixtureLocationExtractor()
        severity_analyzer = FixtureSeverityAnalyzer()
        image_verifier = FixtureImageVerifier()

    # Priority 1: Google Maps (if key), Priority 2: Nominatim (always)
    geocoders = [NominatimGeocodingFetcher(timeout=timeout)]
    if settings.GOOGLE_MAPS_API_KEY:
        geocoders.insert(0, GoogleGeocodingFetcher(settings.GOOGLE_MAPS_API_KEY, timeout=timeout))

    return FetcherRegistry(
        social_media=social_media,
        official_updates=ReliefWebFetcher(timeout=timeout),
        location_extractor=location_extractor,
        severity_analyzer=severity_analyzer,
        image_verifier=image_verifier,
        geocoder=FallbackFetcher(*geocoders, name="geocoder"),
        mode=LIVE,
    )


def build_fetchers(settings: Settings) -> FetcherRegistry:
    mode = (settings.FETCHER_MODE or FIXTURE).lower()
    if mode == LIVE:
        registry = build_live_fetchers(settings)
    elif mode == FIXTURE:
        registry = build_fixture_fetchers()
    else:
        raise ValueError(f"Unknown FETCHER_MODE '{settings.FETCHER_MODE}' (expected 'live' or 'fixture')")
    logger.info(f"Fetchers ready ({registry.mode}): {registry}")
    return registry
