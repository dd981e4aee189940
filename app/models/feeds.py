"""
Models for external intelligence attached to a disaster: social media
reports, official updates and image verifications.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.base import utcnow


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SocialMediaReport(BaseModel):
    id: str = Field(..., description="External post id")
    disaster_id: Optional[str] = None
    content: str
    author_id: Optional[str] = None
    priority: Priority = Priority.LOW
    source: str = "twitter"
    published_at: Optional[str] = None


class OfficialUpdate(BaseModel):
    disaster_id: Optional[str] = None
    title: str
    content: str
    source: str
    urgency: Priority = Priority.MEDIUM
    external_url: Optional[str] = None
    published_at: Optional[str] = None


class ImageVerifyRequest(BaseModel):
    image_url: str = Field(..., min_length=1, max_length=2000)
    context: Optional[str] = Field(None, max_length=2000)


class ImageVerification(BaseModel):
    id: Optional[str] = None
    disaster_id: str
    image_url: str
    verification_score: int = Field(0, ge=0, le=100)
    is_authentic: bool = False
    analysis: str = ""
    context_match: Optional[str] = None
    verified_at: datetime = Field(default_factory=utcnow)


class GeocodeRequest(BaseModel):
    """Either a location name to geocode, or free text to extract one from."""
    location_name: Optional[str] = Field(None, max_length=300)
    description: Optional[str] = Field(None, max_length=5000)


class GeocodeResponse(BaseModel):
    location_name: Optional[str] = None
    extracted_locations: List[str] = Field(default_factory=list)
    coordinates: Optional[Dict[str, Any]] = None
