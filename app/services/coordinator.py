"""
Wiring for one running app: repositories, core components and services.

Built once at startup and stored on app.state.coordinator; tests build their
own with in-memory repositories and fixture fetchers.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from app.core.settings import Settings
from app.models.base import utcnow
from app.repositories.base import Repositories
from app.repositories.registry import build_repositories
from app.services.audit_trail import AuditTrail
from app.services.cache_service import CacheStore
from app.services.cache_sweeper import CacheSweeper
from app.services.disaster_service import DisasterService
from app.services.event_bus import EventBus
from app.services.feed_service import FeedService
from app.services.fetchers import FetcherRegistry, build_fetchers
from app.services.geo_index import GeoIndex
from app.services.geocoding_service import GeocodingService
from app.services.resource_service import ResourceService
from app.services.verification_service import VerificationService

logger = logging.getLogger(__name__)


@dataclass
class Coordinator:
    settings: Settings
    repositories: Repositories
    fetchers: FetcherRegistry
    cache: CacheStore
    sweeper: CacheSweeper
    geo_index: GeoIndex
    audit_trail: AuditTrail
    event_bus: EventBus
    disasters: DisasterService
    resources: ResourceService
    feeds: FeedService
    verifications: VerificationService
    geocoding: GeocodingService


def build_coordinator(
    settings: Settings,
    repositories: Optional[Repositories] = None,
    fetchers: Optional[FetcherRegistry] = None,
    event_bus: Optional[EventBus] = None,
    clock: Callable = utcnow,
) -> Coordinator:
    repositories = repositories or build_repositories(settings)
    fetchers = fetchers or build_fetchers(settings)
    event_bus = event_bus or EventBus(queue_size=settings.EVENT_QUEUE_SIZE)

    cache = CacheStore(repositories.cache, clock=clock)
    geo_index = GeoIndex(repositories.resources)
    audit_trail = AuditTrail(repositories.disasters, clock=clock)

    disasters = DisasterService(
        repository=repositories.disasters,
        audit_trail=audit_trail,
        cache=cache,
        event_bus=event_bus,
        severity_analyzer=fetchers.severity_analyzer,
        analysis_ttl_minutes=settings.CACHE_TTL_TEXT_ANALYSIS_MINUTES,
        admin_users=[user.strip() for user in settings.ADMIN_USER_IDS.split(",") if user.strip()],
    )
    coordinator = Coordinator(
        settings=settings,
        repositories=repositories,
        fetchers=fetchers,
        cache=cache,
        sweeper=CacheSweeper(cache, interval_seconds=settings.CACHE_SWEEP_INTERVAL_SECONDS),
        geo_index=geo_index,
        audit_trail=audit_trail,
        event_bus=event_bus,
        disasters=disasters,
        resources=ResourceService(
            repository=repositories.resources,
            geo_index=geo_index,
            disasters=disasters,
            event_bus=event_bus,
            seed_when_empty=settings.SEED_RESOURCES_WHEN_EMPTY,
        ),
        feeds=FeedService(
            repository=repositories.feeds,
            disasters=disasters,
            cache=cache,
            event_bus=event_bus,
            social_fetcher=fetchers.social_media,
            updates_fetcher=fetchers.official_updates,
            social_ttl_minutes=settings.CACHE_TTL_SOCIAL_MINUTES,
            updates_ttl_minutes=settings.CACHE_TTL_OFFICIAL_UPDATES_MINUTES,
        ),
        verifications=VerificationService(
            repository=repositories.feeds,
            disasters=disasters,
            cache=cache,
            event_bus=event_bus,
            verifier=fetchers.image_verifier,
            ttl_minutes=settings.CACHE_TTL_IMAGE_ANALYSIS_MINUTES,
        ),
        geocoding=GeocodingService(
            cache=cache,
            extractor=fetchers.location_extractor,
            geocoder=fetchers.geocoder,
            extraction_ttl_minutes=settings.CACHE_TTL_TEXT_ANALYSIS_MINUTES,
            geocode_ttl_minutes=settings.CACHE_TTL_GEOCODING_MINUTES,
        ),
    )
    logger.info(f"Coordinator ready (store={repositories.backend}, fetchers={fetchers.mode})")
    return coordinator
