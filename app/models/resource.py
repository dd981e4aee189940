"""
Pydantic models for emergency resources and proximity search results.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.base import GeoPoint, utcnow


class ResourceType(str, Enum):
    SHELTER = "shelter"
    FOOD = "food"
    MEDICAL = "medical"
    WATER = "water"
    EVACUATION = "evacuation"
    OTHER = "other"


class ResourceStatus(str, Enum):
    """Only ACTIVE resources are eligible for first-response matching."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    FULL = "full"


class Resource(BaseModel):
    """A stored emergency resource. GeoIndex only ever reads these."""
    id: str
    disaster_id: Optional[str] = None
    name: str
    location_name: Optional[str] = None
    location: GeoPoint
    type: ResourceType
    capacity: Optional[int] = Field(None, ge=0)
    contact: Optional[str] = None
    status: ResourceStatus = ResourceStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"location"})
        data["latitude"] = self.location.latitude
        data["longitude"] = self.location.longitude
        return data

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Resource":
        return cls(
            id=doc_id,
            disaster_id=data.get("disaster_id"),
            name=data.get("name", ""),
            location_name=data.get("location_name"),
            location=GeoPoint(latitude=data["latitude"], longitude=data["longitude"]),
            type=data.get("type", ResourceType.OTHER),
            capacity=data.get("capacity"),
            contact=data.get("contact"),
            status=data.get("status", ResourceStatus.ACTIVE),
            created_at=data.get("created_at") or utcnow(),
            updated_at=data.get("updated_at") or utcnow(),
        )


class ResourceCreate(BaseModel):
    """Incoming POST body for a new resource."""
    name: str = Field(..., min_length=1, max_length=200)
    location_name: Optional[str] = Field(None, max_length=300)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    type: ResourceType
    capacity: Optional[int] = Field(None, ge=0)
    contact: Optional[str] = Field(None, max_length=200)

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "name": "Red Cross Shelter",
                "location_name": "Lower East Side, NYC",
                "latitude": 40.7150,
                "longitude": -73.9850,
                "type": "shelter",
                "capacity": 150,
            }
        },
    )


class ResourceStatusUpdate(BaseModel):
    status: ResourceStatus


class DistanceResult(BaseModel):
    """Ephemeral search result: a resource and its geodesic distance."""
    resource: Resource
    distance_meters: float = Field(..., ge=0)


class NearbyResourcesResponse(BaseModel):
    disaster_id: str
    search_location: GeoPoint
    radius_meters: float
    count: int
    seeded: bool = False
    resources: List[DistanceResult]
