"""
TTL response cache shared by every external fetcher.

DESIGN PRINCIPLES:
- The cache is an optimization, never a source of truth
- Every backend or serialization failure degrades to a miss / no-op
- Expired entries are evicted lazily on read and by a periodic sweep
- Keys are used verbatim; building them is the caller's job (see cache_key)
"""

import hashlib
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union

from app.models.base import utcnow
from app.models.cache import CacheEntry
from app.repositories.base import CacheRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
TTL = Union[timedelta, int, float]

# Hex characters of the SHA-256 digest kept in each key
KEY_DIGEST_LENGTH = 32


def cache_key(prefix: str, *parts: Any) -> str:
    """
    Deterministic cache key for a fetcher call.

    Parts are kept verbatim (case included) and encoded as a JSON array, so
    distinct parameter tuples never share a key. The array is digested to
    keep keys short and safe as Firestore document ids. Sets are sorted
    first; None is a valid part. Callers that want "New York" and
    "new york" to share an entry normalize before calling.

    Usage:
        cache_key("geocode", "manhattan, nyc")      -> "geocode_<32 hex chars>"
        cache_key("social", ["flood", "nyc"], None) -> "social_<32 hex chars>"
    """
    normalized = [sorted(part) if isinstance(part, (set, frozenset)) else part for part in parts]
    encoded = json.dumps(normalized, sort_keys=True, separators=(",", ":"), default=str)
    return f"{prefix}_{hashlib.sha256(encoded.encode('utf-8')).hexdigest()[:KEY_DIGEST_LENGTH]}"


def _as_timedelta(ttl: TTL) -> timedelta:
    """timedelta as-is; bare numbers are minutes."""
    if isinstance(ttl, timedelta):
        return ttl
    return timedelta(minutes=ttl)


class CacheStore:
    """
    Key/value cache with per-entry expiry over a CacheRepository.

    get/set/delete/sweep never raise.
    """

    def __init__(self, repository: CacheRepository, clock: Clock = utcnow):
        self.repository = repository
        self.clock = clock

    def get(self, key: str) -> Optional[Any]:
        """
        Return the cached value, or None on a miss.

        An entry expiring at or before now is a miss and is deleted.
        """
        try:
            entry = self.repository.fetch(key)
            if entry is None:
                return None

            now = self.clock()
            if entry.is_expired(now):
                # Conditional delete: a concurrent set() may have refreshed it
                self.repository.remove_if_expired(key, now)
                logger.debug(f"Cache expired: {key}")
                return None

            return entry.value
        except Exception as e:
            logger.error(f"Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: TTL) -> None:
        """Upsert value with expires_at = now + ttl. None values are not cached."""
        if value is None:
            logger.debug(f"Cache set skipped for {key}: None value")
            return
        try:
            # Round-trip through JSON: rejects unserializable payloads and
            # detaches the stored copy from the caller's objects
            payload = json.loads(json.dumps(value))
            ttl_delta = _as_timedelta(ttl)
            entry = CacheEntry(key=key, value=payload, expires_at=self.clock() + ttl_delta)
            self.repository.upsert(entry)
            logger.debug(f"Cache set: {key} (TTL: {ttl_delta})")
        except Exception as e:
            logger.error(f"Cache set error for {key}: {e}")

    def delete(self, key: str) -> None:
        try:
            self.repository.remove(key)
        except Exception as e:
            logger.error(f"Cache delete error for {key}: {e}")

    def sweep(self) -> int:
        """Remove every expired entry. Returns how many were removed (0 on failure)."""
        try:
            removed = self.repository.remove_expired(self.clock())
            logger.info(f"Expired cache entries cleaned: {removed}")
            return removed
        except Exception as e:
            logger.error(f"Cache cleanup error: {e}")
            return 0

    def get_or_fetch(self, key: str, ttl: TTL, fetch: Callable[[], Any]) -> Any:
        """
        Coordinator helper: return the cached value or call fetch() and cache it.

        Errors from fetch() propagate and nothing is cached for them.
        """
        cached = self.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return cached

        value = fetch()
        self.set(key, value, ttl)
        return value
