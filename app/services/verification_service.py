"""
Image verification service.

The verdict comes from the image verifier fetcher and is advisory; it is
cached per (image, context) and every verification is stored for review.
"""

import logging
from typing import Any, Dict, List, Optional

from app.models.feeds import ImageVerification
from app.repositories.base import FeedRepository
from app.services.cache_service import CacheStore, cache_key
from app.services.disaster_service import DisasterService
from app.services.event_bus import GLOBAL_TOPIC, EventBus, EventType, incident_topic
from app.services.fetchers.base import ExternalFetcher

logger = logging.getLogger(__name__)


class VerificationService:

    def __init__(
        self,
        repository: FeedRepository,
        disasters: DisasterService,
        cache: CacheStore,
        event_bus: EventBus,
        verifier: ExternalFetcher,
        ttl_minutes: int = 120,
    ):
        self.repository = repository
        self.disasters = disasters
        self.cache = cache
        self.event_bus = event_bus
        self.verifier = verifier
        self.ttl_minutes = ttl_minutes

    def verify_image(self, disaster_id: str, image_url: str, context: Optional[str] = None) -> Dict[str, Any]:
        disaster = self.disasters.get_disaster(disaster_id)
        if not context:
            context = f"{disaster.title}: {disaster.description}. Tags: {', '.join(disaster.tags)}"

        key = cache_key("image_verify", image_url, context)
        result = self.cache.get_or_fetch(
            key, self.ttl_minutes, lambda: self.verifier.fetch({"image_url": image_url, "context": context})
        )

        stored_id = None
        try:
            stored = self.repository.add_verification(ImageVerification(
                disaster_id=disaster_id,
                image_url=image_url,
                verification_score=result.get("verification_score") or 0,
                is_authentic=bool(result.get("is_authentic")),
                analysis=result.get("analysis") or "",
                context_match=result.get("context_match"),
            ))
            stored_id = stored.id
        except Exception as e:
            logger.warning(f"Error storing verification result: {e}")

        self.event_bus.publish_to(
            [incident_topic(disaster_id), GLOBAL_TOPIC],
            EventType.IMAGE_VERIFIED,
            {"disaster_id": disaster_id, "image_url": image_url, "verification": result},
        )
        logger.info(
            f"Image verified for {disaster_id}: score={result.get('verification_score')}, "
            f"authentic={result.get('is_authentic')}"
        )
        return {
            "disaster_id": disaster_id,
            "image_url": image_url,
            "verification": result,
            "stored_report_id": stored_id,
        }

    def list_verifications(self, disaster_id: str, limit: int = 20, offset: int = 0) -> List[ImageVerification]:
        verifications = self.repository.list_verifications(disaster_id, limit=limit, offset=offset)
        logger.info(f"Image verifications retrieved for {disaster_id}: {len(verifications)}")
        return verifications

    def suspicious_verifications(self, threshold: int = 50, limit: int = 20) -> List[ImageVerification]:
        """Stored verifications scoring below threshold, lowest score first."""
        verifications = self.repository.list_suspicious_verifications(threshold=threshold, limit=limit)
        logger.info(f"Suspicious images retrieved: {len(verifications)} (threshold {threshold})")
        return verifications
