"""
Feed service - social media reports and official updates for a disaster.

Flow per request:
1. Derive query parameters from the disaster (tags -> keywords/type,
   location_name -> location)
2. Serve from the cache, or call the fetcher and cache the result
3. Persist new items (duplicates ignored) and publish an event

Persistence and publishing are best effort: the fetched feed is returned
even if storing it fails.
"""

import logging
from typing import Any, Dict, List, Optional

from app.models.disaster import Disaster
from app.models.feeds import OfficialUpdate, Priority, SocialMediaReport
from app.repositories.base import FeedRepository
from app.services.cache_service import CacheStore, cache_key
from app.services.disaster_service import DisasterService
from app.services.event_bus import GLOBAL_TOPIC, EventBus, EventType, incident_topic
from app.services.fetchers.base import ExternalFetcher

logger = logging.getLogger(__name__)


class FeedService:

    def __init__(
        self,
        repository: FeedRepository,
        disasters: DisasterService,
        cache: CacheStore,
        event_bus: EventBus,
        social_fetcher: ExternalFetcher,
        updates_fetcher: ExternalFetcher,
        social_ttl_minutes: int = 5,
        updates_ttl_minutes: int = 30,
    ):
        self.repository = repository
        self.disasters = disasters
        self.cache = cache
        self.event_bus = event_bus
        self.social_fetcher = social_fetcher
        self.updates_fetcher = updates_fetcher
        self.social_ttl_minutes = social_ttl_minutes
        self.updates_ttl_minutes = updates_ttl_minutes

    def _fetch_cached(self, key: str, ttl: int, fetcher: ExternalFetcher, params: Dict[str, Any], refresh: bool):
        if refresh:
            self.cache.delete(key)
        return self.cache.get_or_fetch(key, ttl, lambda: fetcher.fetch(params))

    @staticmethod
    def _keywords(disaster: Disaster) -> List[str]:
        return list(disaster.tags) if disaster.tags else ["disaster", "emergency"]

    # ---- social media ----

    def social_media_reports(self, disaster_id: str, refresh: bool = False) -> Dict[str, Any]:
        disaster = self.disasters.get_disaster(disaster_id)
        params = {"keywords": self._keywords(disaster), "location": disaster.location_name}
        key = cache_key("social_media", params["keywords"], params["location"])

        data = self._fetch_cached(key, self.social_ttl_minutes, self.social_fetcher, params, refresh)
        reports = [SocialMediaReport(**{**report, "disaster_id": disaster_id}) for report in data.get("reports") or []]

        if reports:
            try:
                stored = self.repository.save_social_reports(disaster_id, reports)
                logger.debug(f"Stored {stored} new social media reports for {disaster_id}")
            except Exception as e:
                logger.warning(f"Error storing social media reports: {e}")

        self.event_bus.publish_to(
            [incident_topic(disaster_id), GLOBAL_TOPIC],
            EventType.SOCIAL_REPORT_RECEIVED,
            {
                "disaster_id": disaster_id,
                "reports": [r.model_dump(mode="json") for r in reports],
                "count": len(reports),
            },
        )
        logger.info(f"Social media reports fetched for {disaster_id}: {len(reports)}")
        return {**data, "disaster_id": disaster_id, "reports": [r.model_dump(mode="json") for r in reports]}

    def priority_reports(self, disaster_id: str, limit: int = 20) -> List[SocialMediaReport]:
        reports = self.repository.list_social_reports(disaster_id, priority=Priority.HIGH, limit=limit)
        logger.info(f"Priority social media reports for {disaster_id}: {len(reports)}")
        return reports

    # ---- official updates ----

    def official_updates(self, disaster_id: str, refresh: bool = False) -> Dict[str, Any]:
        disaster = self.disasters.get_disaster(disaster_id)
        params = {
            "disaster_type": disaster.tags[0] if disaster.tags else "disaster",
            "location": disaster.location_name or disaster.title,
        }
        key = cache_key("official_updates", params["disaster_type"], params["location"])

        data = self._fetch_cached(key, self.updates_ttl_minutes, self.updates_fetcher, params, refresh)
        updates = [OfficialUpdate(**{**update, "disaster_id": disaster_id}) for update in data.get("updates") or []]

        if updates:
            try:
                stored = self.repository.save_official_updates(disaster_id, updates)
                logger.debug(f"Stored {stored} new official updates for {disaster_id}")
            except Exception as e:
                logger.warning(f"Error storing official updates: {e}")

        self.event_bus.publish_to(
            [incident_topic(disaster_id), GLOBAL_TOPIC],
            EventType.OFFICIAL_UPDATE_RECEIVED,
            {
                "disaster_id": disaster_id,
                "updates": [u.model_dump(mode="json") for u in updates],
                "count": len(updates),
            },
        )
        logger.info(f"Official updates fetched for {disaster_id}: {len(updates)}")
        return {**data, "disaster_id": disaster_id, "updates": [u.model_dump(mode="json") for u in updates]}

    def urgent_updates(self, disaster_id: str, limit: int = 10) -> List[OfficialUpdate]:
        updates = self.repository.list_official_updates(disaster_id, urgency=Priority.HIGH, limit=limit)
        logger.info(f"Urgent official updates for {disaster_id}: {len(updates)}")
        return updates

    def recent_updates(self, urgency: Optional[Priority] = None, limit: int = 50) -> List[OfficialUpdate]:
        """Stored official updates across all disasters, newest first."""
        updates = self.repository.list_recent_official_updates(urgency=urgency, limit=limit)
        logger.info(f"All official updates retrieved: {len(updates)} (urgency={urgency.value if urgency else 'all'})")
        return updates
