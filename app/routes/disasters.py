"""
Disaster endpoints - CRUD over disaster records plus their audit trail.

Every mutation is recorded in the record's audit trail by the service layer;
a mutation whose audit entry cannot be written is rejected as a whole.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from app.core.exceptions import CoordinationError
from app.models.disaster import (
    AuditTrailResponse,
    Disaster,
    DisasterCreate,
    DisasterResponse,
    DisasterUpdate,
)
from app.routes.deps import ActingUser, acting_user, get_coordinator, http_error
from app.services.coordinator import Coordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/disasters", tags=["Disasters"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DisasterResponse)
async def create_disaster(
    data: DisasterCreate,
    user: ActingUser = Depends(acting_user),
    coordinator: Coordinator = Depends(get_coordinator),
):
    """Create a disaster; its audit trail starts with the create entry."""
    try:
        logger.info(f"POST /disasters - title='{data.title}' by {user.user_id}")
        disaster, severity = await run_in_threadpool(
            coordinator.disasters.create_disaster, data, user.user_id
        )
        return DisasterResponse(disaster=disaster, severity_analysis=severity)
    except HTTPException:
        raise
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"POST /disasters failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create disaster: {str(e)}",
        )


@router.get("", response_model=List[Disaster])
async def list_disasters(
    tag: Optional[str] = Query(None, description="Only disasters carrying this tag"),
    owner_id: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    coordinator: Coordinator = Depends(get_coordinator),
):
    try:
        return await run_in_threadpool(
            coordinator.disasters.list_disasters, tag, owner_id, limit, offset
        )
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"GET /disasters failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to retrieve disasters: {str(e)}")


@router.get("/{disaster_id}", response_model=Disaster)
async def get_disaster(disaster_id: str, coordinator: Coordinator = Depends(get_coordinator)):
    try:
        return await run_in_threadpool(coordinator.disasters.get_disaster, disaster_id)
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"GET /disasters/{disaster_id} failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to retrieve disaster: {str(e)}")


@router.put("/{disaster_id}", response_model=DisasterResponse)
async def update_disaster(
    disaster_id: str,
    data: DisasterUpdate,
    user: ActingUser = Depends(acting_user),
    coordinator: Coordinator = Depends(get_coordinator),
):
    """Update a disaster (owner or admin only); appends one update entry."""
    try:
        logger.info(f"PUT /disasters/{disaster_id} by {user.user_id}")
        disaster, severity = await run_in_threadpool(
            coordinator.disasters.update_disaster, disaster_id, data, user.user_id, user.role
        )
        return DisasterResponse(disaster=disaster, severity_analysis=severity)
    except HTTPException:
        raise
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"PUT /disasters/{disaster_id} failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to update disaster: {str(e)}")


@router.delete("/{disaster_id}")
async def delete_disaster(
    disaster_id: str,
    user: ActingUser = Depends(acting_user),
    coordinator: Coordinator = Depends(get_coordinator),
):
    """Delete a disaster (owner or admin only). The audit trail is archived."""
    try:
        logger.info(f"DELETE /disasters/{disaster_id} by {user.user_id}")
        archived = await run_in_threadpool(
            coordinator.disasters.delete_disaster, disaster_id, user.user_id, user.role
        )
        return {
            "message": "Disaster deleted successfully",
            "id": disaster_id,
            "audit_entries": len(archived.audit_trail),
        }
    except HTTPException:
        raise
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"DELETE /disasters/{disaster_id} failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to delete disaster: {str(e)}")


@router.get("/{disaster_id}/audit-trail", response_model=AuditTrailResponse)
async def get_audit_trail(
    disaster_id: str,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    coordinator: Coordinator = Depends(get_coordinator),
):
    """Ordered audit trail; also available for deleted disasters."""
    try:
        total, entries = await run_in_threadpool(
            coordinator.disasters.audit_history, disaster_id, limit, offset
        )
        return AuditTrailResponse(disaster_id=disaster_id, total=total, entries=entries)
    except CoordinationError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"GET /disasters/{disaster_id}/audit-trail failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to retrieve audit trail: {str(e)}")
