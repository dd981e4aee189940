"""
Shared route plumbing: coordinator lookup, acting user, error mapping.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from app.core.exceptions import (
    AuditWriteError,
    BackendFailure,
    CoordinationError,
    DisasterNotFound,
    FetchError,
    InvalidQuery,
    PermissionDenied,
    QueryTimeout,
    ResourceNotFound,
)
from app.services.coordinator import Coordinator

logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS = [
    (InvalidQuery, status.HTTP_400_BAD_REQUEST),
    (DisasterNotFound, status.HTTP_404_NOT_FOUND),
    (ResourceNotFound, status.HTTP_404_NOT_FOUND),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (QueryTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
    (BackendFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
    (FetchError, status.HTTP_502_BAD_GATEWAY),
    (AuditWriteError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def http_error(exc: CoordinationError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def get_coordinator(request: Request) -> Coordinator:
    return request.app.state.coordinator


@dataclass
class ActingUser:
    user_id: str
    role: Optional[str] = None


def acting_user(
    request: Request,
    user_id: Optional[str] = Header(None, alias="X-User-ID", description="Acting user (mock authentication)"),
    role: Optional[str] = Header(None, alias="X-User-Role", description="Acting user's role"),
) -> ActingUser:
    """
    Mock authentication: the acting user comes from headers, falling back to
    the configured default user.
    """
    settings = request.app.state.coordinator.settings
    if user_id:
        return ActingUser(user_id=user_id, role=role)
    return ActingUser(user_id=settings.DEFAULT_USER_ID, role=role or settings.DEFAULT_USER_ROLE)
