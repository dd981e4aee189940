"""
Pydantic models for disaster (incident) records and their audit trail.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.base import GeoPoint, utcnow


class AuditAction(str, Enum):
    """Kinds of mutation recorded in a disaster's audit trail."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditEntry(BaseModel):
    """
    One immutable audit trail entry.

    Entries are frozen once built; the trail only ever grows.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique entry id")
    action: AuditAction
    user_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    changes: Dict[str, Any] = Field(default_factory=dict, description="Field-level diff")
    severity_analysis: Optional[Dict[str, Any]] = Field(None, description="Advisory annotation from an analysis fetcher")

    def to_document(self) -> Dict[str, Any]:
        """Plain dict for storage (timestamps as ISO strings)."""
        return self.model_dump(mode="json")


class DisasterCreate(BaseModel):
    """Incoming POST body for a new disaster."""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    location_name: Optional[str] = Field(None, max_length=300)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    tags: List[str] = Field(default_factory=list)

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "title": "NYC Flood",
                "description": "Heavy flooding in Manhattan, Lower East Side",
                "location_name": "Manhattan, NYC",
                "latitude": 40.7128,
                "longitude": -74.0060,
                "tags": ["flood", "urgent"],
            }
        },
    )


class DisasterUpdate(BaseModel):
    """Incoming PUT body; omitted fields are left unchanged."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=5000)
    location_name: Optional[str] = Field(None, max_length=300)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    tags: Optional[List[str]] = None

    model_config = ConfigDict(extra="ignore")


class Disaster(BaseModel):
    """A stored disaster record with its full audit trail."""
    id: str
    title: str
    description: str
    location_name: Optional[str] = None
    location: Optional[GeoPoint] = None
    tags: List[str] = Field(default_factory=list)
    owner_id: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    audit_trail: List[AuditEntry] = Field(default_factory=list)

    def tracked_fields(self) -> Dict[str, Any]:
        """Fields whose changes are recorded in the audit trail."""
        return {
            "title": self.title,
            "description": self.description,
            "location_name": self.location_name,
            "location": self.location.model_dump() if self.location else None,
            "tags": list(self.tags),
        }

    def to_document(self) -> Dict[str, Any]:
        """Flatten for storage: location becomes latitude/longitude fields."""
        data = self.model_dump(mode="json", exclude={"location", "audit_trail"})
        data["latitude"] = self.location.latitude if self.location else None
        data["longitude"] = self.location.longitude if self.location else None
        data["audit_trail"] = [entry.to_document() for entry in self.audit_trail]
        return data

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Disaster":
        lat = data.get("latitude")
        lon = data.get("longitude")
        location = GeoPoint(latitude=lat, longitude=lon) if lat is not None and lon is not None else None
        return cls(
            id=doc_id,
            title=data.get("title", ""),
            description=data.get("description", ""),
            location_name=data.get("location_name"),
            location=location,
            tags=list(data.get("tags") or []),
            owner_id=data.get("owner_id", ""),
            created_at=data.get("created_at") or utcnow(),
            updated_at=data.get("updated_at") or utcnow(),
            audit_trail=[AuditEntry(**entry) for entry in data.get("audit_trail") or []],
        )


class DisasterResponse(BaseModel):
    """What the API returns for create/update."""
    disaster: Disaster
    severity_analysis: Optional[Dict[str, Any]] = None


class AuditTrailResponse(BaseModel):
    disaster_id: str
    total: int
    entries: List[AuditEntry]
