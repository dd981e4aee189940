"""
Admin endpoints - operational controls.

Expired cache entries are swept hourly in the background; this endpoint
triggers a sweep on demand.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.routes.deps import ActingUser, acting_user, get_coordinator
from app.services.coordinator import Coordinator
from app.services.disaster_service import ADMIN_ROLE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/cache/sweep")
async def sweep_cache(
    user: ActingUser = Depends(acting_user),
    coordinator: Coordinator = Depends(get_coordinator),
):
    if user.role != ADMIN_ROLE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    removed = await coordinator.sweeper.run_once()
    logger.info(f"Manual cache sweep by {user.user_id}: {removed} removed")
    return {"removed": removed}


@router.get("/realtime")
async def realtime_stats(coordinator: Coordinator = Depends(get_coordinator)):
    """Live subscriptions per topic (in-memory, reset on restart)."""
    bus = coordinator.event_bus
    return {
        "subscribers": bus.subscriber_count(),
        "topics": {topic: bus.subscriber_count(topic) for topic in bus.topics()},
    }
