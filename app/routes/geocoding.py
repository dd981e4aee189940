"""
Geocoding endpoint - place name or free text -> coordinates.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from app.core.exceptions import CoordinationError
from app.models.base import utcnow
from app.models.feeds import GeocodeRequest, GeocodeResponse
from app.routes.deps import get_coordinator, http_error
from app.services.coordinator import Coordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Geocoding"])


@router.post("/geocode", response_model=GeocodeResponse)
async def geocode(body: GeocodeRequest, coordinator: Coordinator = Depends(get_coordinator)):
    """
    Geocode location_name, or extract a location from description first.

    coordinates is null when nothing could be located.
    """
    if not body.location_name and not body.description:
        raise HTTPException(status_code=400, detail="location_name or description is required")
    try:
        result = await run_in_threadpool(
            coordinator.geocoding.resolve, body.location_name, body.description
        )
        return GeocodeResponse(**result)
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"POST /geocode failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Geocoding failed: {str(e)}")


@router.get("/geocode/location/{name}")
async def geocode_location(name: str, coordinator: Coordinator = Depends(get_coordinator)):
    """Coordinates for one place name; 404 when it cannot be found."""
    try:
        coordinates = await run_in_threadpool(coordinator.geocoding.locate, name)
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"GET /geocode/location/{name} failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to geocode location: {str(e)}")

    if coordinates is None:
        raise HTTPException(status_code=404, detail=f"Location not found: {name}")
    return {"location_name": name, "coordinates": coordinates, "geocoded_at": utcnow().isoformat()}
