from .base import ExternalFetcher, FallbackFetcher
from .registry import FetcherRegistry, build_fetchers, build_fixture_fetchers, build_live_fetchers

__all__ = [
    "ExternalFetcher",
    "FallbackFetcher",
    "FetcherRegistry",
    "build_fetchers",
    "build_fixture_fetchers",
    "build_live_fetchers",
]
