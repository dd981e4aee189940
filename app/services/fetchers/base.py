from abc import ABC, abstractmethod
from typing import Any, Dict
import logging

from app.core.exceptions import FetchError

logger = logging.getLogger(__name__)


class ExternalFetcher(ABC):
    """
    One external data source (social media, official updates, AI analysis,
    geocoding).

    Contract:
    - Input: a dict of query parameters
    - Output: a JSON-serializable dict
    - fetch() is idempotent for equal params, so results may be cached
    - On failure raise FetchError; never return a partial result
    - Implementations enforce their own network timeout
    """

    name: str = "fetcher"

    @abstractmethod
    def fetch(self, params: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class FallbackFetcher(ExternalFetcher):
    """
    Try fetchers in priority order; the first success wins.

    Raises the last FetchError if every fetcher fails.
    """

    def __init__(self, *fetchers: ExternalFetcher, name: str = "fallback"):
        if not fetchers:
            raise ValueError("FallbackFetcher needs at least one fetcher")
        self.fetchers = list(fetchers)
        self.name = name

    def fetch(self, params: Dict[str, Any]) -> Dict[str, Any]:
        last_error = None
        for fetcher in self.fetchers:
            try:
                return fetcher.fetch(params)
            except FetchError as e:
                logger.warning(f"Fetcher {fetcher.name} failed: {e}")
                last_error = e
        raise last_error or FetchError("No fetcher produced a result", fetcher=self.name)
