"""
Resource service - emergency resources attached to disasters.

Nearby search goes through GeoIndex. When a search around a disaster finds
nothing and seeding is enabled, a small set of sample resources is created
around the search center and the query is run again.
"""

import logging
import uuid
from typing import List, Optional, Tuple

from starlette.concurrency import run_in_threadpool

from app.core.exceptions import InvalidQuery
from app.models.base import GeoPoint, utcnow
from app.models.resource import (
    DistanceResult,
    Resource,
    ResourceCreate,
    ResourceStatus,
    ResourceType,
)
from app.repositories.base import ResourceRepository
from app.services.disaster_service import DisasterService
from app.services.event_bus import GLOBAL_TOPIC, EventBus, EventType, incident_topic
from app.services.geo_index import GeoIndex

logger = logging.getLogger(__name__)

# (name, location_name, type, capacity, contact, d_lat, d_lon)
SAMPLE_RESOURCES = [
    ("Emergency Shelter - Community Center", "Main Street Community Center",
     ResourceType.SHELTER, 200, "shelter@community.org", 0.01, 0.01),
    ("Food Distribution Center", "City Park Distribution Point",
     ResourceType.FOOD, 500, "555-FOOD-AID", 0.008, -0.005),
    ("Medical Station", "Mobile Medical Unit #1",
     ResourceType.MEDICAL, 50, "medic1@emergency.gov", -0.004, 0.003),
    ("Water Distribution Point", "Fire Station #3",
     ResourceType.WATER, 1000, "water@emergency.gov", -0.002, -0.008),
]


class ResourceService:

    def __init__(
        self,
        repository: ResourceRepository,
        geo_index: GeoIndex,
        disasters: DisasterService,
        event_bus: EventBus,
        seed_when_empty: bool = True,
    ):
        self.repository = repository
        self.geo_index = geo_index
        self.disasters = disasters
        self.event_bus = event_bus
        self.seed_when_empty = seed_when_empty

    def _publish(self, disaster_id: str, payload: dict) -> None:
        self.event_bus.publish_to(
            [incident_topic(disaster_id), GLOBAL_TOPIC], EventType.RESOURCES_UPDATED, payload
        )

    def resolve_center(
        self, disaster_id: str, latitude: Optional[float], longitude: Optional[float]
    ) -> GeoPoint:
        """Explicit coordinates win; otherwise the disaster's own location."""
        if (latitude is None) != (longitude is None):
            raise InvalidQuery("lat and lon must be given together")
        if latitude is not None:
            try:
                return GeoPoint(latitude=latitude, longitude=longitude)
            except ValueError as e:
                raise InvalidQuery(f"Invalid coordinates: {e}") from e

        disaster = self.disasters.get_disaster(disaster_id)
        if disaster.location is None:
            raise InvalidQuery("Location coordinates required or disaster must have location set")
        return disaster.location

    def seed_sample_resources(self, disaster_id: str, center: GeoPoint) -> List[Resource]:
        now = utcnow()
        samples = [
            Resource(
                id=str(uuid.uuid4()),
                disaster_id=disaster_id,
                name=name,
                location_name=location_name,
                location=GeoPoint(
                    latitude=max(-90.0, min(90.0, center.latitude + d_lat)),
                    longitude=((center.longitude + d_lon + 180.0) % 360.0) - 180.0,
                ),
                type=resource_type,
                capacity=capacity,
                contact=contact,
                status=ResourceStatus.ACTIVE,
                created_at=now,
                updated_at=now,
            )
            for name, location_name, resource_type, capacity, contact, d_lat, d_lon in SAMPLE_RESOURCES
        ]
        created = self.repository.add_many(samples)
        logger.info(f"Sample resources created for disaster {disaster_id}: {len(created)}")
        return created

    def find_nearby(
        self,
        disaster_id: str,
        center: GeoPoint,
        radius_meters: float,
        status_filter: Optional[ResourceStatus] = ResourceStatus.ACTIVE,
        all_disasters: bool = False,
    ) -> Tuple[List[DistanceResult], bool]:
        """Ranked resources around center. Returns (results, seeded)."""
        scope = None if all_disasters else disaster_id
        results = self.geo_index.find_nearby(center, radius_meters, status_filter, disaster_id=scope)
        if not self._needs_seed(results, status_filter, all_disasters):
            logger.info(f"Resources found for disaster {disaster_id}: {len(results)}")
            return results, False
        return self._seed_and_requery(disaster_id, center, radius_meters, status_filter), True

    async def find_nearby_async(
        self,
        disaster_id: str,
        center: GeoPoint,
        radius_meters: float,
        status_filter: Optional[ResourceStatus] = ResourceStatus.ACTIVE,
        all_disasters: bool = False,
        timeout: Optional[float] = None,
    ) -> Tuple[List[DistanceResult], bool]:
        """
        find_nearby() with a deadline on the query only.

        A QueryTimeout leaves the store untouched: seeding starts only after
        the first query returned empty in time.
        """
        scope = None if all_disasters else disaster_id
        results = await self.geo_index.find_nearby_async(
            center, radius_meters, status_filter, disaster_id=scope, timeout=timeout
        )
        if not self._needs_seed(results, status_filter, all_disasters):
            logger.info(f"Resources found for disaster {disaster_id}: {len(results)}")
            return results, False
        seeded = await run_in_threadpool(
            self._seed_and_requery, disaster_id, center, radius_meters, status_filter
        )
        return seeded, True

    def _needs_seed(
        self, results: List[DistanceResult], status_filter: Optional[ResourceStatus], all_disasters: bool
    ) -> bool:
        # Seeding only happens for the default active-only, disaster-scoped search
        return not results and self.seed_when_empty and not all_disasters and status_filter == ResourceStatus.ACTIVE

    def _seed_and_requery(
        self,
        disaster_id: str,
        center: GeoPoint,
        radius_meters: float,
        status_filter: Optional[ResourceStatus],
    ) -> List[DistanceResult]:
        # Seeding is only for known disasters
        self.disasters.get_disaster(disaster_id)
        self.seed_sample_resources(disaster_id, center)
        results = self.geo_index.find_nearby(center, radius_meters, status_filter, disaster_id=disaster_id)
        self._publish(disaster_id, {
            "disaster_id": disaster_id,
            "reason": "seeded",
            "resources": [r.model_dump(mode="json") for r in results],
            "location": center.model_dump(),
        })
        logger.info(f"Resources found for disaster {disaster_id} (including new samples): {len(results)}")
        return results

    def add_resource(self, disaster_id: str, data: ResourceCreate) -> Resource:
        self.disasters.get_disaster(disaster_id)
        resource = Resource(
            id=str(uuid.uuid4()),
            disaster_id=disaster_id,
            name=data.name,
            location_name=data.location_name,
            location=GeoPoint(latitude=data.latitude, longitude=data.longitude),
            type=data.type,
            capacity=data.capacity,
            contact=data.contact,
            status=ResourceStatus.ACTIVE,
        )
        created = self.repository.add(resource)
        logger.info(f"Resource added: {created.id} ({created.name}, {created.type.value})")
        self._publish(disaster_id, {
            "disaster_id": disaster_id,
            "reason": "added",
            "resource": created.model_dump(mode="json"),
        })
        return created

    def update_status(self, resource_id: str, status: ResourceStatus) -> Resource:
        # Raises ResourceNotFound for unknown ids
        updated = self.repository.set_status(resource_id, status, utcnow())
        logger.info(f"Resource {resource_id} status -> {status.value}")
        if updated.disaster_id:
            self._publish(updated.disaster_id, {
                "disaster_id": updated.disaster_id,
                "reason": "status_changed",
                "resource": updated.model_dump(mode="json"),
            })
        return updated
