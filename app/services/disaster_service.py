"""
Disaster service - business logic for disaster (incident) records.

DESIGN NOTE:
- Every create/update/delete goes through AuditTrail, so the record change
  and its audit entry land together or not at all
- Severity analysis is advisory: it is computed before the write, attached
  to the audit entry, and a failed analysis never blocks the mutation
- Events are published after the write commits; publishing never fails
  the request
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from app.core.exceptions import DisasterNotFound, FetchError, PermissionDenied
from app.models.base import GeoPoint
from app.models.disaster import AuditEntry, Disaster, DisasterCreate, DisasterUpdate
from app.repositories.base import DisasterRepository
from app.services.audit_trail import AuditTrail
from app.services.cache_service import CacheStore, cache_key
from app.services.event_bus import GLOBAL_TOPIC, EventBus, EventType, incident_topic
from app.services.fetchers.base import ExternalFetcher

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


class DisasterService:

    def __init__(
        self,
        repository: DisasterRepository,
        audit_trail: AuditTrail,
        cache: CacheStore,
        event_bus: EventBus,
        severity_analyzer: ExternalFetcher,
        analysis_ttl_minutes: int = 60,
        admin_users: Optional[List[str]] = None,
    ):
        self.repository = repository
        self.audit_trail = audit_trail
        self.cache = cache
        self.event_bus = event_bus
        self.severity_analyzer = severity_analyzer
        self.analysis_ttl_minutes = analysis_ttl_minutes
        self.admin_users = set(admin_users or [])

    # ---- helpers ----

    def analyze_severity(self, description: str, tags: List[str]) -> Optional[Dict[str, Any]]:
        """Cached severity analysis; None when the analyzer is unavailable."""
        key = cache_key("severity", description, sorted(tags))
        try:
            return self.cache.get_or_fetch(
                key,
                self.analysis_ttl_minutes,
                lambda: self.severity_analyzer.fetch({"description": description, "tags": tags}),
            )
        except FetchError as e:
            logger.warning(f"Severity analysis unavailable: {e}")
            return None

    def _authorize(self, disaster: Disaster, user_id: str, role: Optional[str]) -> None:
        if role == ADMIN_ROLE or user_id in self.admin_users or disaster.owner_id == user_id:
            return
        raise PermissionDenied(f"User {user_id} may not modify disaster {disaster.id}")

    def _publish(self, disaster_id: str, event: EventType, payload: Dict[str, Any]) -> None:
        self.event_bus.publish_to([incident_topic(disaster_id), GLOBAL_TOPIC], event, payload)

    # ---- queries ----

    def get_disaster(self, disaster_id: str) -> Disaster:
        disaster = self.repository.get(disaster_id)
        if disaster is None:
            raise DisasterNotFound(disaster_id)
        return disaster

    def list_disasters(
        self,
        tag: Optional[str] = None,
        owner_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Disaster]:
        return self.repository.list(tag=tag, owner_id=owner_id, limit=limit, offset=offset)

    def audit_history(
        self, disaster_id: str, limit: Optional[int] = None, offset: int = 0
    ) -> Tuple[int, List[AuditEntry]]:
        return self.audit_trail.history(disaster_id, limit=limit, offset=offset)

    # ---- mutations ----

    def create_disaster(self, data: DisasterCreate, user_id: str) -> Tuple[Disaster, Optional[Dict[str, Any]]]:
        severity = self.analyze_severity(data.description, data.tags)
        location = None
        if data.latitude is not None and data.longitude is not None:
            location = GeoPoint(latitude=data.latitude, longitude=data.longitude)

        disaster = Disaster(
            id=str(uuid.uuid4()),
            title=data.title,
            description=data.description,
            location_name=data.location_name,
            location=location,
            tags=list(data.tags),
            owner_id=user_id,
        )
        created = self.audit_trail.create(disaster, user_id, severity_analysis=severity)
        logger.info(f"Disaster created: {created.id} ({created.title}) by {user_id}")

        self._publish(created.id, EventType.INCIDENT_CREATED, {
            "disaster_id": created.id,
            "disaster": created.model_dump(mode="json", exclude={"audit_trail"}),
            "severity_analysis": severity,
        })
        return created, severity

    def update_disaster(
        self,
        disaster_id: str,
        data: DisasterUpdate,
        user_id: str,
        role: Optional[str] = None,
    ) -> Tuple[Disaster, Optional[Dict[str, Any]]]:
        current = self.get_disaster(disaster_id)
        # Fail fast outside the transaction; the check is repeated inside it
        self._authorize(current, user_id, role)

        fields = data.model_dump(exclude_unset=True)
        severity = None
        if "description" in fields or "tags" in fields:
            severity = self.analyze_severity(
                fields.get("description") or current.description,
                fields.get("tags") if fields.get("tags") is not None else current.tags,
            )

        def compute(record: Disaster) -> Dict[str, Any]:
            self._authorize(record, user_id, role)
            changes: Dict[str, Any] = {}
            for name in ("title", "description", "location_name"):
                if fields.get(name) is not None:
                    changes[name] = fields[name]
            if fields.get("tags") is not None:
                changes["tags"] = list(fields["tags"])
            latitude = fields.get("latitude")
            longitude = fields.get("longitude")
            if latitude is not None or longitude is not None:
                base = record.location
                latitude = latitude if latitude is not None else (base.latitude if base else None)
                longitude = longitude if longitude is not None else (base.longitude if base else None)
                if latitude is not None and longitude is not None:
                    changes["location"] = GeoPoint(latitude=latitude, longitude=longitude)
            return changes

        updated = self.audit_trail.update(disaster_id, user_id, compute, severity_analysis=severity)
        last_entry = updated.audit_trail[-1]
        logger.info(f"Disaster updated: {disaster_id} by {user_id}, fields={sorted(last_entry.changes)}")

        self._publish(disaster_id, EventType.INCIDENT_UPDATED, {
            "disaster_id": disaster_id,
            "disaster": updated.model_dump(mode="json", exclude={"audit_trail"}),
            "changes": last_entry.changes,
            "severity_analysis": severity,
        })
        return updated, severity

    def delete_disaster(self, disaster_id: str, user_id: str, role: Optional[str] = None) -> Disaster:
        archived = self.audit_trail.delete(
            disaster_id,
            user_id,
            authorize=lambda record: self._authorize(record, user_id, role),
        )
        logger.info(f"Disaster deleted: {disaster_id} by {user_id}")

        self._publish(disaster_id, EventType.INCIDENT_DELETED, {
            "disaster_id": disaster_id,
            "title": archived.title,
            "deleted_by": user_id,
        })
        return archived
