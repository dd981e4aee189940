"""
Official updates (government and relief agency bulletins) for a disaster.

- ReliefWebFetcher: ReliefWeb reports API (public, no key)
- FixtureOfficialUpdatesFetcher: canned bulletins for development and tests

Result schema:
    {"updates": [OfficialUpdate dict, ...], "disaster_type": str,
     "location": str | None, "fetched_at": iso str, "source": str}
"""

import logging
import re
from datetime import timedelta
from typing import Any, Dict

import requests

from app.core.exceptions import FetchError
from app.models.base import utcnow
from app.models.feeds import Priority
from .base import ExternalFetcher

logger = logging.getLogger(__name__)

HIGH_URGENCY_WORDS = ("evacuat", "alert", "warning", "emergency")
_TAG_RE = re.compile(r"<[^>]+>")


def classify_urgency(title: str, content: str = "") -> Priority:
    text = f"{title} {content}".lower()
    if any(word in text for word in HIGH_URGENCY_WORDS):
        return Priority.HIGH
    if "update" in text or "situation" in text:
        return Priority.MEDIUM
    return Priority.LOW


class ReliefWebFetcher(ExternalFetcher):

    name = "reliefweb"
    BASE_URL = "https://api.reliefweb.int/v1/reports"

    def __init__(self, appname: str = "disaster-coordination-hub", timeout: float = 5.0, limit: int = 10):
        self.appname = appname
        self.timeout = timeout
        self.limit = limit

    def fetch(self, params: Dict[str, Any]) -> Dict[str, Any]:
        disaster_type = params.get("disaster_type") or "disaster"
        location = params.get("location")
        query = " ".join(part for part in (disaster_type, location) if part)
        try:
            resp = requests.post(
                self.BASE_URL,
                params={"appname": self.appname},
                json={
                    "query": {"value": query},
                    "limit": self.limit,
                    "sort": ["date:desc"],
                    "fields": {"include": ["title", "body", "source", "url", "date.created"]},
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise FetchError(f"ReliefWeb API error: {e}", fetcher=self.name) from e

        if resp.status_code != 200:
            raise FetchError(f"ReliefWeb API returned status {resp.status_code}", fetcher=self.name)

        updates = []
        for item in resp.json().get("data") or []:
            fields = item.get("fields") or {}
            title = fields.get("title") or ""
            content = _TAG_RE.sub("", fields.get("body") or "")[:1000]
            sources = fields.get("source") or [{}]
            updates.append({
                "title": title,
                "content": content,
                "source": sources[0].get("name") or "ReliefWeb",
                "urgency": classify_urgency(title, content).value,
                "external_url": fields.get("url"),
                "published_at": (fields.get("date") or {}).get("created"),
            })
        return {
            "updates": updates,
            "disaster_type": disaster_type,
            "location": location,
            "fetched_at": utcnow().isoformat(),
            "source": "reliefweb",
        }


class FixtureOfficialUpdatesFetcher(ExternalFetcher):

    name = "fixture_official_updates"

    def __init__(self):
        self.calls = 0

    def fetch(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.calls += 1
        disaster_type = params.get("disaster_type") or "disaster"
        location = params.get("location") or "Affected"
        now = utcnow()
        updates = [
            {
                "title": f"{disaster_type.upper()} Alert: {location} Area",
                "content": "Official evacuation orders in effect for residents in flood-prone areas. "
                           "Emergency shelters opened at local schools.",
                "source": "Emergency Management Agency",
                "urgency": Priority.HIGH.value,
                "external_url": "https://emergency.gov/alerts/flood-alert",
                "published_at": (now - timedelta(hours=2)).isoformat(),
            },
            {
                "title": "Resource Distribution Centers Open",
                "content": f"Three resource distribution centers are now operational in {location}. "
                           "Providing food, water, and medical supplies.",
                "source": "Red Cross",
                "urgency": Priority.MEDIUM.value,
                "external_url": "https://redcross.org/disaster-relief",
                "published_at": (now - timedelta(hours=4)).isoformat(),
            },
            {
                "title": f"Weather Update: {disaster_type} Conditions",
                "content": "Current weather conditions show improvement. Residents advised to remain "
                           "cautious and follow local authority guidance.",
                "source": "National Weather Service",
                "urgency": Priority.LOW.value,
                "external_url": "https://weather.gov/alerts",
                "published_at": (now - timedelta(hours=6)).isoformat(),
            },
        ]
        return {
            "updates": updates,
            "disaster_type": disaster_type,
            "location": params.get("location"),
            "fetched_at": now.isoformat(),
            "source": "mock",
        }
