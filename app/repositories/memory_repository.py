"""
In-memory repositories for local development (USE_MOCK_DB=true) and tests.

Everything lives in process memory behind threading locks, so concurrent
request threads see the same atomicity guarantees the Firestore backend
gives. Records are copied on the way in and out; callers never share
mutable state with the store.
"""

import threading
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional

from app.core.exceptions import DisasterNotFound, ResourceNotFound
from app.models.cache import CacheEntry
from app.models.disaster import AuditEntry, Disaster
from app.models.feeds import ImageVerification, OfficialUpdate, Priority, SocialMediaReport
from app.models.resource import Resource, ResourceStatus
from app.repositories.base import (
    CacheRepository,
    DisasterMutation,
    DisasterRepository,
    FeedRepository,
    Repositories,
    ResourceRepository,
)


class MemoryCacheRepository(CacheRepository):

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def fetch(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            return entry.model_copy(deep=True) if entry else None

    def upsert(self, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[entry.key] = entry.model_copy(deep=True)

    def remove(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def remove_if_expired(self, key: str, now: datetime) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.is_expired(now):
                return False
            del self._entries[key]
            return True

    def remove_expired(self, now: datetime) -> int:
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class MemoryResourceRepository(ResourceRepository):

    def __init__(self):
        self._resources: Dict[str, Resource] = {}
        self._lock = threading.Lock()

    def get(self, resource_id: str) -> Optional[Resource]:
        with self._lock:
            resource = self._resources.get(resource_id)
            return resource.model_copy(deep=True) if resource else None

    def add(self, resource: Resource) -> Resource:
        with self._lock:
            self._resources[resource.id] = resource.model_copy(deep=True)
        return resource

    def set_status(self, resource_id: str, status: ResourceStatus, updated_at: datetime) -> Resource:
        with self._lock:
            current = self._resources.get(resource_id)
            if current is None:
                raise ResourceNotFound(resource_id)
            updated = current.model_copy(update={"status": status, "updated_at": updated_at})
            self._resources[resource_id] = updated
            return updated.model_copy(deep=True)

    def candidates(
        self,
        min_latitude: float,
        max_latitude: float,
        status: Optional[ResourceStatus] = None,
        disaster_id: Optional[str] = None,
    ) -> List[Resource]:
        with self._lock:
            snapshot = list(self._resources.values())
        results = []
        for resource in snapshot:
            if not (min_latitude <= resource.location.latitude <= max_latitude):
                continue
            if status is not None and resource.status != status:
                continue
            if disaster_id is not None and resource.disaster_id != disaster_id:
                continue
            results.append(resource.model_copy(deep=True))
        return results


class MemoryDisasterRepository(DisasterRepository):
    """
    Disasters keyed by id. Each record has its own lock; mutations of one
    record serialize on it while unrelated records proceed in parallel.
    """

    def __init__(self):
        self._records: Dict[str, Disaster] = {}
        self._archive: Dict[str, Disaster] = {}
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._registry_lock = threading.Lock()

    def _lock_for(self, disaster_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks[disaster_id]

    def get(self, disaster_id: str) -> Optional[Disaster]:
        with self._registry_lock:
            record = self._records.get(disaster_id)
            return record.model_copy(deep=True) if record else None

    def list(
        self,
        tag: Optional[str] = None,
        owner_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Disaster]:
        with self._registry_lock:
            records = list(self._records.values())
        if tag:
            records = [r for r in records if tag in r.tags]
        if owner_id:
            records = [r for r in records if r.owner_id == owner_id]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy(deep=True) for r in records[offset:offset + limit]]

    def create(self, disaster: Disaster) -> Disaster:
        with self._lock_for(disaster.id):
            with self._registry_lock:
                if disaster.id in self._records:
                    raise ValueError(f"Disaster {disaster.id} already exists")
                self._records[disaster.id] = disaster.model_copy(deep=True)
        return disaster

    def update(self, disaster_id: str, mutate: DisasterMutation) -> Disaster:
        with self._lock_for(disaster_id):
            current = self.get(disaster_id)
            if current is None:
                raise DisasterNotFound(disaster_id)
            fields, entry = mutate(current)
            updated = current.model_copy(
                update={**fields, "audit_trail": [*current.audit_trail, entry]}
            )
            with self._registry_lock:
                self._records[disaster_id] = updated
            return updated.model_copy(deep=True)

    def delete(self, disaster_id: str, make_entry: Callable[[Disaster], AuditEntry]) -> Disaster:
        with self._lock_for(disaster_id):
            current = self.get(disaster_id)
            if current is None:
                raise DisasterNotFound(disaster_id)
            entry = make_entry(current)
            archived = current.model_copy(update={"audit_trail": [*current.audit_trail, entry]})
            with self._registry_lock:
                self._archive[disaster_id] = archived
                del self._records[disaster_id]
                # Callers blocked on this lock find no record and raise DisasterNotFound
                self._locks.pop(disaster_id, None)
            return archived.model_copy(deep=True)

    def get_archived(self, disaster_id: str) -> Optional[Disaster]:
        with self._registry_lock:
            record = self._archive.get(disaster_id)
            return record.model_copy(deep=True) if record else None


class MemoryFeedRepository(FeedRepository):

    def __init__(self):
        self._social: Dict[str, SocialMediaReport] = {}
        self._updates: Dict[tuple, OfficialUpdate] = {}
        self._verifications: List[ImageVerification] = []
        self._lock = threading.Lock()

    def save_social_reports(self, disaster_id: str, reports: List[SocialMediaReport]) -> int:
        inserted = 0
        with self._lock:
            for report in reports:
                # social_media_id is unique across disasters
                if report.id in self._social:
                    continue
                self._social[report.id] = report.model_copy(update={"disaster_id": disaster_id})
                inserted += 1
        return inserted

    def list_social_reports(
        self, disaster_id: str, priority: Optional[Priority] = None, limit: int = 20
    ) -> List[SocialMediaReport]:
        with self._lock:
            reports = [r for r in self._social.values() if r.disaster_id == disaster_id]
        if priority is not None:
            reports = [r for r in reports if r.priority == priority]
        reports.sort(key=lambda r: r.published_at or "", reverse=True)
        return reports[:limit]

    def save_official_updates(self, disaster_id: str, updates: List[OfficialUpdate]) -> int:
        inserted = 0
        with self._lock:
            for update in updates:
                key = (disaster_id, update.title, update.source)
                if key in self._updates:
                    continue
                self._updates[key] = update.model_copy(update={"disaster_id": disaster_id})
                inserted += 1
        return inserted

    def list_official_updates(
        self, disaster_id: str, urgency: Optional[Priority] = None, limit: int = 10
    ) -> List[OfficialUpdate]:
        with self._lock:
            updates = [u for u in self._updates.values() if u.disaster_id == disaster_id]
        if urgency is not None:
            updates = [u for u in updates if u.urgency == urgency]
        updates.sort(key=lambda u: u.published_at or "", reverse=True)
        return updates[:limit]

    def list_recent_official_updates(
        self, urgency: Optional[Priority] = None, limit: int = 50
    ) -> List[OfficialUpdate]:
        with self._lock:
            updates = list(self._updates.values())
        if urgency is not None:
            updates = [u for u in updates if u.urgency == urgency]
        updates.sort(key=lambda u: u.published_at or "", reverse=True)
        return updates[:limit]

    def add_verification(self, verification: ImageVerification) -> ImageVerification:
        stored = verification.model_copy(update={"id": verification.id or str(uuid.uuid4())})
        with self._lock:
            self._verifications.append(stored)
        return stored

    def list_verifications(self, disaster_id: str, limit: int = 20, offset: int = 0) -> List[ImageVerification]:
        with self._lock:
            matches = [v for v in self._verifications if v.disaster_id == disaster_id]
        matches.sort(key=lambda v: v.verified_at, reverse=True)
        return matches[offset:offset + limit]

    def list_suspicious_verifications(self, threshold: int = 50, limit: int = 20) -> List[ImageVerification]:
        with self._lock:
            matches = [v for v in self._verifications if v.verification_score < threshold]
        matches.sort(key=lambda v: (v.verification_score, v.verified_at))
        return matches[:limit]


def build_memory_repositories() -> Repositories:
    return Repositories(
        cache=MemoryCacheRepository(),
        resources=MemoryResourceRepository(),
        disasters=MemoryDisasterRepository(),
        feeds=MemoryFeedRepository(),
        backend="memory",
    )
