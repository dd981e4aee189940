from __future__ import annotations

from datetime import timedelta

import pytest

from app.repositories.memory_repository import MemoryCacheRepository
from app.services.cache_service import CacheStore, cache_key


class _BrokenCacheRepository(MemoryCacheRepository):
    def fetch(self, key):
        raise ConnectionError("store unreachable")

    def upsert(self, entry):
        raise ConnectionError("store unreachable")

    def remove(self, key):
        raise ConnectionError("store unreachable")

    def remove_expired(self, now):
        raise ConnectionError("store unreachable")


@pytest.fixture
def repository() -> MemoryCacheRepository:
    return MemoryCacheRepository()


@pytest.fixture
def cache(repository, clock) -> CacheStore:
    return CacheStore(repository, clock=clock)


def test_geocode_entry_lives_for_its_ttl(cache, repository, clock) -> None:
    value = {"latitude": 37.1517, "longitude": -88.732}
    cache.set("geocode_metropolis", value, timedelta(hours=24))

    clock.advance(hours=23, minutes=59)
    assert cache.get("geocode_metropolis") == value

    clock.advance(minutes=1)
    assert cache.get("geocode_metropolis") is None
    # lazy eviction removed it
    assert len(repository) == 0


def test_integer_ttl_is_minutes(cache, clock) -> None:
    cache.set("social_flood", {"reports": []}, 5)
    clock.advance(minutes=4, seconds=59)
    assert cache.get("social_flood") == {"reports": []}
    clock.advance(seconds=1)
    assert cache.get("social_flood") is None


def test_set_overwrites_value_and_expiry(cache, clock) -> None:
    cache.set("k", {"v": 1}, timedelta(minutes=1))
    cache.set("k", {"v": 2}, timedelta(minutes=10))
    clock.advance(minutes=5)
    assert cache.get("k") == {"v": 2}


def test_missing_key_is_a_miss(cache) -> None:
    assert cache.get("never-set") is None


def test_delete_is_idempotent(cache) -> None:
    cache.set("k", [1, 2, 3], 5)
    cache.delete("k")
    cache.delete("k")
    assert cache.get("k") is None


def test_sweep_removes_only_expired_entries(cache, repository, clock) -> None:
    cache.set("short", "a", timedelta(minutes=5))
    cache.set("long", "b", timedelta(hours=2))
    clock.advance(minutes=5)

    assert cache.sweep() == 1
    assert cache.sweep() == 0
    assert len(repository) == 1
    assert cache.get("long") == "b"


def test_stored_value_is_detached_from_caller(cache) -> None:
    value = {"items": [1]}
    cache.set("k", value, 5)
    value["items"].append(2)
    assert cache.get("k") == {"items": [1]}


def test_unserializable_value_is_not_cached(cache, repository) -> None:
    cache.set("k", {"bad": object()}, 5)
    assert len(repository) == 0
    assert cache.get("k") is None


def test_none_is_not_cached(cache, repository) -> None:
    cache.set("k", None, 5)
    assert len(repository) == 0


def test_backend_failures_degrade_to_miss_and_noop(clock) -> None:
    cache = CacheStore(_BrokenCacheRepository(), clock=clock)
    cache.set("k", {"v": 1}, 5)
    assert cache.get("k") is None
    cache.delete("k")
    assert cache.sweep() == 0


def test_get_or_fetch_calls_fetch_once_while_fresh(cache, clock) -> None:
    calls = []

    def fetch():
        calls.append(1)
        return {"n": len(calls)}

    assert cache.get_or_fetch("k", 5, fetch) == {"n": 1}
    assert cache.get_or_fetch("k", 5, fetch) == {"n": 1}
    clock.advance(minutes=5)
    assert cache.get_or_fetch("k", 5, fetch) == {"n": 2}
    assert len(calls) == 2


def test_get_or_fetch_does_not_cache_errors(cache, repository) -> None:
    def fetch():
        raise RuntimeError("upstream down")

    with pytest.raises(RuntimeError):
        cache.get_or_fetch("k", 5, fetch)
    assert len(repository) == 0


def test_expired_read_does_not_evict_refreshed_entry(repository, clock) -> None:
    cache = CacheStore(repository, clock=clock)
    cache.set("k", "old", timedelta(minutes=1))
    clock.advance(minutes=2)
    cache.set("k", "new", timedelta(minutes=10))
    # A reader that saw the stale entry must not remove the refreshed one
    assert repository.remove_if_expired("k", clock()) is False
    assert cache.get("k") == "new"


def test_cache_key_is_deterministic() -> None:
    assert cache_key("social", ["flood", "urgent"], None) == cache_key("social", ["flood", "urgent"], None)
    assert cache_key("severity", "text", {"b", "a"}) == cache_key("severity", "text", {"a", "b"})
    assert cache_key("geocode", "Manhattan").startswith("geocode_")
    assert len(cache_key("image_verify", "https://example.com/" + "x" * 500)) == len("image_verify_") + 32


def test_cache_key_keeps_case() -> None:
    assert cache_key("image_verify", "https://x.org/IMG_A.jpg", "ctx") != cache_key(
        "image_verify", "https://x.org/img_a.jpg", "ctx"
    )


def test_cache_key_part_boundaries_do_not_collide() -> None:
    assert cache_key("official_updates", "wild fire", "NYC") != cache_key("official_updates", "wild", "fire NYC")
    assert cache_key("social", ["a", "b"], None) != cache_key("social", ["a,b"], None)
    assert cache_key("social", None) != cache_key("social", "None")

