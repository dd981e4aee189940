"""
Resource endpoints - proximity search and resource management.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from app.core.exceptions import CoordinationError
from app.models.resource import (
    NearbyResourcesResponse,
    Resource,
    ResourceCreate,
    ResourceStatus,
    ResourceStatusUpdate,
)
from app.routes.deps import get_coordinator, http_error
from app.services.coordinator import Coordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Resources"])


@router.get("/disasters/{disaster_id}/resources", response_model=NearbyResourcesResponse)
async def get_nearby_resources(
    disaster_id: str,
    lat: Optional[float] = Query(None, description="Search center latitude (defaults to the disaster location)"),
    lon: Optional[float] = Query(None, description="Search center longitude"),
    radius: Optional[float] = Query(None, ge=0, description="Search radius in meters"),
    status_filter: Optional[ResourceStatus] = Query(ResourceStatus.ACTIVE, alias="status"),
    all_statuses: bool = Query(False, description="Ignore the status filter"),
    all_disasters: bool = Query(False, description="Include resources of other disasters"),
    coordinator: Coordinator = Depends(get_coordinator),
):
    """
    Resources within radius of the search center, nearest first.

    Only active resources by default. If nothing is found, sample resources
    are provisioned around the center (when enabled) and the search re-run.
    """
    settings = coordinator.settings
    radius_meters = settings.DEFAULT_SEARCH_RADIUS_METERS if radius is None else radius
    try:
        center = await run_in_threadpool(coordinator.resources.resolve_center, disaster_id, lat, lon)
        results, seeded = await coordinator.resources.find_nearby_async(
            disaster_id,
            center,
            radius_meters,
            None if all_statuses else status_filter,
            all_disasters,
            timeout=settings.GEO_QUERY_TIMEOUT_SECONDS,
        )

        return NearbyResourcesResponse(
            disaster_id=disaster_id,
            search_location=center,
            radius_meters=radius_meters,
            count=len(results),
            seeded=seeded,
            resources=results,
        )
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"GET /disasters/{disaster_id}/resources failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to fetch resources: {str(e)}")


@router.post("/disasters/{disaster_id}/resources", status_code=status.HTTP_201_CREATED, response_model=Resource)
async def add_resource(
    disaster_id: str,
    data: ResourceCreate,
    coordinator: Coordinator = Depends(get_coordinator),
):
    try:
        return await run_in_threadpool(coordinator.resources.add_resource, disaster_id, data)
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"POST /disasters/{disaster_id}/resources failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to add resource: {str(e)}")


@router.patch("/resources/{resource_id}/status", response_model=Resource)
async def update_resource_status(
    resource_id: str,
    data: ResourceStatusUpdate,
    coordinator: Coordinator = Depends(get_coordinator),
):
    """Mark a resource active, inactive or full. Only active ones are matched."""
    try:
        return await run_in_threadpool(coordinator.resources.update_status, resource_id, data.status)
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"PATCH /resources/{resource_id}/status failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to update resource: {str(e)}")
