"""
Social media reports for a disaster.

- TwitterFetcher: Twitter/X v2 recent search (needs TWITTER_BEARER_TOKEN)
- FixtureSocialMediaFetcher: canned posts for development and tests

Result schema:
    {"reports": [SocialMediaReport dict, ...], "keywords": [...], "location": str | None,
     "fetched_at": iso str, "source": str}
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List

import requests

from app.core.exceptions import FetchError
from app.models.base import utcnow
from app.models.feeds import Priority
from .base import ExternalFetcher

logger = logging.getLogger(__name__)

URGENT_KEYWORDS = ("urgent", "emergency", "sos", "help", "trapped", "injured")
MODERATE_KEYWORDS = ("need", "volunteer", "donation", "shelter")


def calculate_priority(text: str) -> Priority:
    """Keyword triage: urgent words -> high, request/offer words -> medium."""
    lower_text = (text or "").lower()
    if any(keyword in lower_text for keyword in URGENT_KEYWORDS):
        return Priority.HIGH
    if any(keyword in lower_text for keyword in MODERATE_KEYWORDS):
        return Priority.MEDIUM
    return Priority.LOW


def _keywords(params: Dict[str, Any]) -> List[str]:
    keywords = [k for k in (params.get("keywords") or []) if k]
    return keywords or ["disaster", "emergency"]


class TwitterFetcher(ExternalFetcher):

    name = "twitter"
    BASE_URL = "https://api.twitter.com/2/tweets/search/recent"

    def __init__(self, bearer_token: str, timeout: float = 5.0, max_results: int = 20):
        self.bearer_token = bearer_token
        self.timeout = timeout
        self.max_results = max_results

    def fetch(self, params: Dict[str, Any]) -> Dict[str, Any]:
        keywords = _keywords(params)
        query = " OR ".join(f"#{k}" for k in keywords)
        try:
            resp = requests.get(
                self.BASE_URL,
                headers={"Authorization": f"Bearer {self.bearer_token}"},
                params={
                    "query": query,
                    "max_results": self.max_results,
                    "tweet.fields": "created_at,author_id,public_metrics",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise FetchError(f"Twitter API error: {e}", fetcher=self.name) from e

        if resp.status_code != 200:
            raise FetchError(f"Twitter API returned status {resp.status_code}", fetcher=self.name)

        reports = [
            {
                "id": tweet["id"],
                "content": tweet.get("text", ""),
                "author_id": tweet.get("author_id"),
                "published_at": tweet.get("created_at"),
                "priority": calculate_priority(tweet.get("text", "")).value,
                "source": "twitter",
            }
            for tweet in resp.json().get("data") or []
        ]
        return {
            "reports": reports,
            "keywords": keywords,
            "location": params.get("location"),
            "fetched_at": utcnow().isoformat(),
            "source": "twitter",
        }


class FixtureSocialMediaFetcher(ExternalFetcher):

    name = "fixture_social"

    def __init__(self):
        self.calls = 0

    def fetch(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.calls += 1
        keywords = _keywords(params)
        location = params.get("location") or "downtown area"
        now = utcnow()
        posts = [
            ("mock_1", f"#floodrelief Urgent: Need food and water in {location}. Families stranded on rooftops.", "citizen123", 10),
            ("mock_2", f"#disasterresponse Local shelter at community center is accepting donations. {keywords[0]} volunteers needed.", "volunteer_org", 30),
            ("mock_3", f"Road closures in effect due to {keywords[0]}. Alternative routes available via highway 101.", "traffic_dept", 45),
        ]
        reports = [
            {
                "id": post_id,
                "content": text,
                "author_id": author,
                "published_at": (now - timedelta(minutes=minutes_ago)).isoformat(),
                "priority": calculate_priority(text).value,
                "source": "mock_twitter",
            }
            for post_id, text, author, minutes_ago in posts
        ]
        return {
            "reports": reports,
            "keywords": keywords,
            "location": params.get("location"),
            "fetched_at": now.isoformat(),
            "source": "mock",
        }
