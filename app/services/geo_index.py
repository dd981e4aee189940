"""
Geospatial proximity search over emergency resources.

Distances are great-circle (haversine) distances on a spherical earth; radii
span kilometres, where flat-plane distance on raw degrees is badly wrong away
from the equator.

Result contract:
- Only resources matching the status filter (default: active)
- Radius boundary inclusive
- Ascending distance, ties broken by resource id
"""

import asyncio
import logging
import math
from typing import List, Optional, Sequence, Tuple, Union

from starlette.concurrency import run_in_threadpool

from app.core.exceptions import BackendFailure, InvalidQuery, QueryTimeout
from app.models.base import GeoPoint
from app.models.resource import DistanceResult, ResourceStatus
from app.repositories.base import ResourceRepository

logger = logging.getLogger(__name__)

# Mean earth radius (IUGG), metres
EARTH_RADIUS_METERS = 6371008.8

# Float rounding allowance so a resource computed to sit exactly on the
# radius is not lost to the last bit of precision
BOUNDARY_TOLERANCE_METERS = 1e-6

CenterLike = Union[GeoPoint, Tuple[float, float], Sequence[float]]


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(max(0.0, 1 - a)))
    return EARTH_RADIUS_METERS * c


def latitude_band(center: GeoPoint, radius_meters: float) -> Tuple[float, float]:
    """Latitude range that contains every point within radius of center."""
    delta = math.degrees(radius_meters / EARTH_RADIUS_METERS) + 1e-9
    return max(-90.0, center.latitude - delta), min(90.0, center.latitude + delta)


def _coerce_center(center: Optional[CenterLike]) -> GeoPoint:
    if center is None:
        raise InvalidQuery("A center point is required: pass coordinates or set the disaster location")
    if isinstance(center, GeoPoint):
        return center
    try:
        latitude, longitude = center
        return GeoPoint(latitude=float(latitude), longitude=float(longitude))
    except (TypeError, ValueError) as e:
        raise InvalidQuery(f"Malformed center point {center!r}: {e}") from e


class GeoIndex:
    """Read-only proximity queries over a ResourceRepository."""

    def __init__(self, repository: ResourceRepository):
        self.repository = repository

    def find_nearby(
        self,
        center: Optional[CenterLike],
        radius_meters: float,
        status_filter: Optional[ResourceStatus] = ResourceStatus.ACTIVE,
        disaster_id: Optional[str] = None,
    ) -> List[DistanceResult]:
        """
        Resources within radius_meters of center, nearest first.

        Args:
            center: GeoPoint or (latitude, longitude)
            radius_meters: inclusive search radius, >= 0
            status_filter: eligible status; None accepts every status
            disaster_id: restrict to one disaster's resources

        Raises:
            InvalidQuery: missing/malformed center or invalid radius
            BackendFailure: the resource store failed
        """
        point = _coerce_center(center)
        try:
            radius = float(radius_meters)
        except (TypeError, ValueError) as e:
            raise InvalidQuery(f"Invalid radius {radius_meters!r}") from e
        if not math.isfinite(radius) or radius < 0:
            raise InvalidQuery(f"Radius must be a non-negative finite number, got {radius_meters!r}")

        min_lat, max_lat = latitude_band(point, radius)
        try:
            candidates = self.repository.candidates(
                min_latitude=min_lat,
                max_latitude=max_lat,
                status=status_filter,
                disaster_id=disaster_id,
            )
        except Exception as e:
            logger.error(f"Resource query failed: {e}", exc_info=True)
            raise BackendFailure(f"Resource query failed: {e}", operation="find_nearby") from e

        results: List[DistanceResult] = []
        for resource in candidates:
            # Repositories may over-approximate; re-check the filter here
            if status_filter is not None and resource.status != status_filter:
                continue
            distance = haversine_meters(
                point.latitude, point.longitude,
                resource.location.latitude, resource.location.longitude,
            )
            if distance <= radius + BOUNDARY_TOLERANCE_METERS:
                results.append(DistanceResult(resource=resource, distance_meters=distance))

        results.sort(key=lambda r: (r.distance_meters, r.resource.id))
        logger.info(
            f"Nearby search ({point.latitude:.5f}, {point.longitude:.5f}) r={radius:.0f}m: "
            f"{len(results)} of {len(candidates)} candidates"
        )
        return results

    async def find_nearby_async(
        self,
        center: Optional[CenterLike],
        radius_meters: float,
        status_filter: Optional[ResourceStatus] = ResourceStatus.ACTIVE,
        disaster_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> List[DistanceResult]:
        """
        find_nearby() in a worker thread with an optional deadline.

        On timeout the partial work is discarded and QueryTimeout is raised.
        """
        call = run_in_threadpool(self.find_nearby, center, radius_meters, status_filter, disaster_id)
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Nearby search timed out after {timeout}s")
            raise QueryTimeout(f"Nearby search exceeded {timeout}s", operation="find_nearby") from e
