"""
Image verification endpoints.

The verification score is advisory AI output; it does not establish that an
image is genuine.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.concurrency import run_in_threadpool

from app.core.exceptions import CoordinationError
from app.models.feeds import ImageVerifyRequest
from app.routes.deps import get_coordinator, http_error
from app.services.coordinator import Coordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Verification"])


@router.post("/disasters/{disaster_id}/verify-image")
async def verify_image(
    disaster_id: str,
    body: ImageVerifyRequest,
    coordinator: Coordinator = Depends(get_coordinator),
):
    try:
        return await run_in_threadpool(
            coordinator.verifications.verify_image, disaster_id, body.image_url, body.context
        )
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"POST /disasters/{disaster_id}/verify-image failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to verify image: {str(e)}")


@router.get("/disasters/{disaster_id}/verifications")
async def list_verifications(
    disaster_id: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    coordinator: Coordinator = Depends(get_coordinator),
):
    try:
        verifications = await run_in_threadpool(
            coordinator.verifications.list_verifications, disaster_id, limit, offset
        )
        return {
            "disaster_id": disaster_id,
            "verifications": [v.model_dump(mode="json") for v in verifications],
            "pagination": {"limit": limit, "offset": offset, "count": len(verifications)},
        }
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"GET /disasters/{disaster_id}/verifications failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to retrieve verifications: {str(e)}")


@router.get("/verifications/suspicious")
async def list_suspicious_verifications(
    threshold: int = Query(50, ge=0, le=100, description="Scores strictly below this are suspicious"),
    limit: int = Query(20, ge=1, le=100),
    coordinator: Coordinator = Depends(get_coordinator),
):
    """Low-scoring verifications across all disasters, lowest score first."""
    try:
        verifications = await run_in_threadpool(
            coordinator.verifications.suspicious_verifications, threshold, limit
        )
        return {
            "suspicious_images": [v.model_dump(mode="json") for v in verifications],
            "threshold": threshold,
            "count": len(verifications),
        }
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"GET /verifications/suspicious failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to retrieve suspicious images: {str(e)}")
