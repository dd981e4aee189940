"""
Feed endpoints - social media reports and official updates per disaster,
plus the stored official updates across all disasters.

Feeds are served from the cache while fresh (social media 5 minutes,
official updates 30 minutes); ?refresh=true forces a new fetch.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.concurrency import run_in_threadpool

from app.core.exceptions import CoordinationError
from app.models.feeds import Priority
from app.routes.deps import get_coordinator, http_error
from app.services.coordinator import Coordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Feeds"])


@router.get("/disasters/{disaster_id}/social-media")
async def get_social_media_reports(
    disaster_id: str,
    refresh: bool = Query(False),
    coordinator: Coordinator = Depends(get_coordinator),
):
    try:
        return await run_in_threadpool(coordinator.feeds.social_media_reports, disaster_id, refresh)
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"GET /disasters/{disaster_id}/social-media failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to fetch social media reports: {str(e)}")


@router.get("/disasters/{disaster_id}/social-media/priority")
async def get_priority_reports(
    disaster_id: str,
    limit: int = Query(20, ge=1, le=100),
    coordinator: Coordinator = Depends(get_coordinator),
):
    """High-priority reports stored so far for this disaster, newest first."""
    try:
        reports = await run_in_threadpool(coordinator.feeds.priority_reports, disaster_id, limit)
        return {"disaster_id": disaster_id, "priority_reports": [r.model_dump(mode="json") for r in reports]}
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"GET /disasters/{disaster_id}/social-media/priority failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to fetch priority reports: {str(e)}")


@router.get("/disasters/{disaster_id}/official-updates")
async def get_official_updates(
    disaster_id: str,
    refresh: bool = Query(False),
    coordinator: Coordinator = Depends(get_coordinator),
):
    try:
        return await run_in_threadpool(coordinator.feeds.official_updates, disaster_id, refresh)
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"GET /disasters/{disaster_id}/official-updates failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to fetch official updates: {str(e)}")


@router.get("/disasters/{disaster_id}/official-updates/urgent")
async def get_urgent_updates(
    disaster_id: str,
    limit: int = Query(10, ge=1, le=100),
    coordinator: Coordinator = Depends(get_coordinator),
):
    try:
        updates = await run_in_threadpool(coordinator.feeds.urgent_updates, disaster_id, limit)
        return {"disaster_id": disaster_id, "urgent_updates": [u.model_dump(mode="json") for u in updates]}
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"GET /disasters/{disaster_id}/official-updates/urgent failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to fetch urgent updates: {str(e)}")


@router.get("/updates/all")
async def get_all_updates(
    urgency: Optional[Priority] = Query(None, description="Only updates of this urgency"),
    limit: int = Query(50, ge=1, le=200),
    coordinator: Coordinator = Depends(get_coordinator),
):
    """Recent stored official updates across all disasters, newest first."""
    try:
        updates = await run_in_threadpool(coordinator.feeds.recent_updates, urgency, limit)
        return {
            "updates": [u.model_dump(mode="json") for u in updates],
            "filter": {"urgency": urgency.value if urgency else "all"},
            "count": len(updates),
        }
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"GET /updates/all failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to fetch official updates: {str(e)}")
