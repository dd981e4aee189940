"""
Storage contracts for the coordination core.

Each record type has one abstract repository. Implementations:
- firestore_repository: Google Cloud Firestore (production)
- memory_repository: thread-safe in-process store (USE_MOCK_DB, tests)

Contract notes:
- Cache upsert/delete must be atomic per key.
- Disaster mutations and their audit entry are written as one atomic unit.
  A failure must leave neither the change nor the entry behind.
- Implementations raise their native errors; services decide how to surface them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from app.models.cache import CacheEntry
from app.models.disaster import AuditEntry, Disaster
from app.models.feeds import ImageVerification, OfficialUpdate, Priority, SocialMediaReport
from app.models.resource import Resource, ResourceStatus


# mutate(current) -> (changed field values, audit entry for the change)
DisasterMutation = Callable[[Disaster], Tuple[Dict, AuditEntry]]


class CacheRepository(ABC):

    @abstractmethod
    def fetch(self, key: str) -> Optional[CacheEntry]:
        raise NotImplementedError

    @abstractmethod
    def upsert(self, entry: CacheEntry) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete the entry if present. Absent keys are not an error."""
        raise NotImplementedError

    @abstractmethod
    def remove_if_expired(self, key: str, now: datetime) -> bool:
        """
        Delete the entry only if it is still expired at `now`.

        Guards lazy eviction against deleting a value that a concurrent
        set() refreshed between the read and the delete.
        """
        raise NotImplementedError

    @abstractmethod
    def remove_expired(self, now: datetime) -> int:
        """Delete every entry with expires_at <= now. Returns the count removed."""
        raise NotImplementedError


class ResourceRepository(ABC):

    @abstractmethod
    def get(self, resource_id: str) -> Optional[Resource]:
        raise NotImplementedError

    @abstractmethod
    def add(self, resource: Resource) -> Resource:
        raise NotImplementedError

    def add_many(self, resources: Iterable[Resource]) -> List[Resource]:
        return [self.add(resource) for resource in resources]

    @abstractmethod
    def set_status(self, resource_id: str, status: ResourceStatus, updated_at: datetime) -> Resource:
        raise NotImplementedError

    @abstractmethod
    def candidates(
        self,
        min_latitude: float,
        max_latitude: float,
        status: Optional[ResourceStatus] = None,
        disaster_id: Optional[str] = None,
    ) -> List[Resource]:
        """
        Resources inside a latitude band, optionally filtered by status and
        disaster. A superset of the final answer; exact distance filtering
        happens in GeoIndex.
        """
        raise NotImplementedError


class DisasterRepository(ABC):

    @abstractmethod
    def get(self, disaster_id: str) -> Optional[Disaster]:
        raise NotImplementedError

    @abstractmethod
    def list(
        self,
        tag: Optional[str] = None,
        owner_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Disaster]:
        """Newest first."""
        raise NotImplementedError

    @abstractmethod
    def create(self, disaster: Disaster) -> Disaster:
        """Insert a record whose audit_trail already holds its create entry."""
        raise NotImplementedError

    @abstractmethod
    def update(self, disaster_id: str, mutate: DisasterMutation) -> Disaster:
        """
        Atomically read the current record, apply mutate(), write the changed
        fields and append the returned entry to the audit trail.

        Raises DisasterNotFound if the record does not exist. Any exception
        raised by mutate() aborts the write.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, disaster_id: str, make_entry: Callable[[Disaster], AuditEntry]) -> Disaster:
        """
        Atomically remove the record and archive it, with make_entry()'s
        delete entry appended to its trail. Returns the archived record.
        """
        raise NotImplementedError

    @abstractmethod
    def get_archived(self, disaster_id: str) -> Optional[Disaster]:
        raise NotImplementedError


class FeedRepository(ABC):
    """Persistence for fetched intelligence. Duplicates are ignored on insert."""

    @abstractmethod
    def save_social_reports(self, disaster_id: str, reports: List[SocialMediaReport]) -> int:
        raise NotImplementedError

    @abstractmethod
    def list_social_reports(
        self, disaster_id: str, priority: Optional[Priority] = None, limit: int = 20
    ) -> List[SocialMediaReport]:
        raise NotImplementedError

    @abstractmethod
    def save_official_updates(self, disaster_id: str, updates: List[OfficialUpdate]) -> int:
        raise NotImplementedError

    @abstractmethod
    def list_official_updates(
        self, disaster_id: str, urgency: Optional[Priority] = None, limit: int = 10
    ) -> List[OfficialUpdate]:
        raise NotImplementedError

    @abstractmethod
    def list_recent_official_updates(
        self, urgency: Optional[Priority] = None, limit: int = 50
    ) -> List[OfficialUpdate]:
        """Newest first, across all disasters."""
        raise NotImplementedError

    @abstractmethod
    def add_verification(self, verification: ImageVerification) -> ImageVerification:
        raise NotImplementedError

    @abstractmethod
    def list_verifications(self, disaster_id: str, limit: int = 20, offset: int = 0) -> List[ImageVerification]:
        raise NotImplementedError

    @abstractmethod
    def list_suspicious_verifications(self, threshold: int = 50, limit: int = 20) -> List[ImageVerification]:
        """Verifications scoring strictly below threshold, lowest score first."""
        raise NotImplementedError


@dataclass
class Repositories:
    """The storage handles a running app is wired with."""
    cache: CacheRepository
    resources: ResourceRepository
    disasters: DisasterRepository
    feeds: FeedRepository
    backend: str = "memory"

    def ping(self) -> bool:
        """Cheap connectivity check for /health/db."""
        self.disasters.list(limit=1)
        return True
