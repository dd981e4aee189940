from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from app.core.exceptions import FetchError
from app.core.settings import Settings
from app.models.feeds import Priority
from app.services.fetchers import FallbackFetcher, build_fetchers
from app.services.fetchers.base import ExternalFetcher
from app.services.fetchers.gemini import (
    FixtureImageVerifier,
    FixtureLocationExtractor,
    FixtureSeverityAnalyzer,
    GeminiSeverityAnalyzer,
    parse_image_score,
    parse_severity,
    severity_level,
    split_locations,
)
from app.services.fetchers.geocoding import FixtureGeocodingFetcher, NominatimGeocodingFetcher
from app.services.fetchers.official_updates import FixtureOfficialUpdatesFetcher, classify_urgency
from app.services.fetchers.social_media import FixtureSocialMediaFetcher, TwitterFetcher, calculate_priority


class _Failing(ExternalFetcher):
    name = "failing"

    def fetch(self, params):
        raise FetchError("down", fetcher=self.name)


class _Static(ExternalFetcher):
    name = "static"

    def __init__(self, result):
        self.result = result

    def fetch(self, params):
        return self.result


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("SOS trapped on the roof", Priority.HIGH),
        ("Urgent: need insulin", Priority.HIGH),
        ("Shelter needs volunteers", Priority.MEDIUM),
        ("Road closed near the bridge", Priority.LOW),
        ("", Priority.LOW),
    ],
)
def test_calculate_priority(text, expected) -> None:
    assert calculate_priority(text) == expected


def test_fixture_social_feed_is_prioritized() -> None:
    result = FixtureSocialMediaFetcher().fetch({"keywords": ["flood"], "location": "Manhattan, NYC"})
    priorities = {report["id"]: report["priority"] for report in result["reports"]}
    assert priorities == {"mock_1": "high", "mock_2": "medium", "mock_3": "low"}
    assert "Manhattan, NYC" in result["reports"][0]["content"]


def test_fixture_official_updates() -> None:
    result = FixtureOfficialUpdatesFetcher().fetch({"disaster_type": "flood", "location": "Brooklyn"})
    assert [u["urgency"] for u in result["updates"]] == ["high", "medium", "low"]
    assert result["updates"][0]["title"] == "FLOOD Alert: Brooklyn Area"


def test_classify_urgency() -> None:
    assert classify_urgency("Evacuation order issued") == Priority.HIGH
    assert classify_urgency("Situation report no. 4") == Priority.MEDIUM
    assert classify_urgency("Funding appeal") == Priority.LOW


def test_fixture_geocoder_known_and_unknown() -> None:
    geocoder = FixtureGeocodingFetcher()
    result = geocoder.fetch({"location_name": "Manhattan, NYC"})
    assert result["latitude"] == pytest.approx(40.7831)
    assert result["source"] == "fixture"

    with pytest.raises(FetchError):
        geocoder.fetch({"location_name": "Atlantis"})
    with pytest.raises(FetchError):
        geocoder.fetch({})


def test_fixture_location_extractor() -> None:
    result = FixtureLocationExtractor().fetch(
        {"description": "Heavy flooding in Manhattan, NYC. Shelters open near Brooklyn Bridge"}
    )
    assert result["locations"] == ["Manhattan, NYC", "Brooklyn Bridge"]


def test_fixture_severity_is_keyword_driven() -> None:
    mild = FixtureSeverityAnalyzer().fetch({"description": "Minor power outage", "tags": []})
    severe = FixtureSeverityAnalyzer().fetch({"description": "Catastrophic flood, people trapped", "tags": ["urgent"]})
    assert mild["severity_level"] == "low"
    assert severe["severity_score"] == 10
    assert severe["severity_level"] == "critical"


def test_fixture_image_verifier_is_neutral() -> None:
    result = FixtureImageVerifier().fetch({"image_url": "https://example.com/flood.jpg"})
    assert result["verification_score"] == 50
    assert result["is_authentic"] is False
    with pytest.raises(FetchError):
        FixtureImageVerifier().fetch({})


def test_response_parsers() -> None:
    assert parse_severity("Severity: 7/10. Reasoning: widespread damage") == 7
    assert parse_severity("I rate this 3 / 10") == 3
    assert parse_severity("no number here") is None
    assert parse_image_score("Score: 85/100") == 85
    assert parse_image_score("verification score: 40") == 40
    assert parse_image_score("92 out of 100") == 92
    assert parse_image_score("looks real") is None
    assert severity_level(None) is None
    assert severity_level(8) == "critical"
    assert severity_level(6) == "high"
    assert severity_level(4) == "medium"
    assert split_locations("unknown") == []
    assert split_locations("Manhattan, NYC; Brooklyn, NYC") == ["Manhattan, NYC", "Brooklyn, NYC"]


def test_gemini_severity_without_score_does_not_guess() -> None:
    client = MagicMock()
    client.generate.return_value = "Hard to say."
    result = GeminiSeverityAnalyzer(client).fetch({"description": "Something happened", "tags": []})
    assert result["severity_score"] is None
    assert result["severity_level"] is None


def test_fallback_uses_first_success() -> None:
    fallback = FallbackFetcher(_Failing(), _Static({"ok": True}))
    assert fallback.fetch({}) == {"ok": True}


def test_fallback_raises_when_all_fail() -> None:
    with pytest.raises(FetchError):
        FallbackFetcher(_Failing(), _Failing()).fetch({})
    with pytest.raises(ValueError):
        FallbackFetcher()


def test_twitter_errors_become_fetch_errors(monkeypatch) -> None:
    def boom(*args, **kwargs):
        raise requests.ConnectionError("no route")

    monkeypatch.setattr(requests, "get", boom)
    with pytest.raises(FetchError) as exc_info:
        TwitterFetcher("token").fetch({"keywords": ["flood"]})
    assert exc_info.value.fetcher == "twitter"


def test_nominatim_parses_first_result(monkeypatch) -> None:
    response = MagicMock(status_code=200)
    response.json.return_value = [{"lat": "40.71", "lon": "-74.0", "display_name": "New York"}]
    monkeypatch.setattr(requests, "get", lambda *args, **kwargs: response)

    result = NominatimGeocodingFetcher().fetch({"location_name": "New York"})
    assert result == {"latitude": 40.71, "longitude": -74.0, "formatted_address": "New York", "source": "openstreetmap"}


def test_nominatim_empty_result_is_a_miss(monkeypatch) -> None:
    response = MagicMock(status_code=200)
    response.json.return_value = []
    monkeypatch.setattr(requests, "get", lambda *args, **kwargs: response)
    with pytest.raises(FetchError):
        NominatimGeocodingFetcher().fetch({"location_name": "Nowhere"})


def test_fixture_mode_registry() -> None:
    registry = build_fetchers(Settings(FETCHER_MODE="fixture"))
    assert registry.mode == "fixture"
    assert isinstance(registry.geocoder, FixtureGeocodingFetcher)


def test_live_mode_without_keys_falls_back_per_capability() -> None:
    registry = build_fetchers(Settings(
        FETCHER_MODE="live", GEMINI_API_KEY=None, TWITTER_BEARER_TOKEN=None, GOOGLE_MAPS_API_KEY=None,
    ))
    assert registry.mode == "live"
    assert isinstance(registry.social_media, FixtureSocialMediaFetcher)
    assert isinstance(registry.severity_analyzer, FixtureSeverityAnalyzer)
    assert [f.name for f in registry.geocoder.fetchers] == ["openstreetmap"]


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_fetchers(Settings(FETCHER_MODE="sometimes"))
