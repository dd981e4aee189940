"""
Firestore-backed repositories.

Collections:
- cache                 doc id = sha256(key); fields key, value, expires_at, created_at
- resources             latitude/longitude point, status, type, disaster_id, ...
- disasters             record fields + embedded audit_trail array
- deleted_disasters     archive of deleted records with their complete trail
- social_media_reports  doc id = external post id
- official_updates      doc id = hash of (disaster_id, title, source)
- image_verifications

Atomicity:
- Cache writes are single-document set/delete calls (atomic per key).
- Disaster mutations run inside a Firestore transaction; the audit entry is
  appended with ArrayUnion in the same commit as the field changes.
"""

import hashlib
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from firebase_admin import firestore
from google.api_core.exceptions import AlreadyExists

from app.core.exceptions import DisasterNotFound, ResourceNotFound
from app.models.base import GeoPoint, utcnow
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
from app.utils.firestore_helpers import where_filter

logger = logging.getLogger(__name__)

# Firestore caps a write batch at 500 operations
BATCH_LIMIT = 500


def _doc_id(*parts: str) -> str:
    return hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()


def _encode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Translate model-level field values into stored document fields."""
    encoded: Dict[str, Any] = {}
    for name, value in fields.items():
        if name == "location":
            encoded["latitude"] = value.latitude if isinstance(value, GeoPoint) else None
            encoded["longitude"] = value.longitude if isinstance(value, GeoPoint) else None
        elif isinstance(value, datetime):
            encoded[name] = value.isoformat()
        elif hasattr(value, "value"):
            encoded[name] = value.value
        else:
            encoded[name] = value
    return encoded


class FirestoreCacheRepository(CacheRepository):

    def __init__(self, db: firestore.Client, collection: str = "cache"):
        self.db = db
        self._collection = db.collection(collection)

    def _ref(self, key: str):
        return self._collection.document(_doc_id(key))

    def fetch(self, key: str) -> Optional[CacheEntry]:
        snapshot = self._ref(key).get()
        if not snapshot.exists:
            return None
        data = snapshot.to_dict()
        return CacheEntry(key=data["key"], value=data.get("value"), expires_at=data["expires_at"])

    def upsert(self, entry: CacheEntry) -> None:
        self._ref(entry.key).set({
            "key": entry.key,
            "value": entry.value,
            "expires_at": entry.expires_at,
            "created_at": firestore.SERVER_TIMESTAMP,
        })

    def remove(self, key: str) -> None:
        # Firestore delete() on a missing document is a no-op
        self._ref(key).delete()

    def remove_if_expired(self, key: str, now: datetime) -> bool:
        ref = self._ref(key)

        @firestore.transactional
        def _evict(transaction) -> bool:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists or snapshot.to_dict()["expires_at"] > now:
                return False
            transaction.delete(ref)
            return True

        return _evict(self.db.transaction())

    def remove_expired(self, now: datetime) -> int:
        query = where_filter(self._collection, "expires_at", "<=", now)
        removed = 0
        batch = self.db.batch()
        pending = 0
        for snapshot in query.stream():
            batch.delete(snapshot.reference)
            pending += 1
            if pending == BATCH_LIMIT:
                batch.commit()
                removed += pending
                batch = self.db.batch()
                pending = 0
        if pending:
            batch.commit()
            removed += pending
        return removed


class FirestoreResourceRepository(ResourceRepository):

    def __init__(self, db: firestore.Client, collection: str = "resources"):
        self.db = db
        self._collection = db.collection(collection)

    def get(self, resource_id: str) -> Optional[Resource]:
        snapshot = self._collection.document(resource_id).get()
        if not snapshot.exists:
            return None
        return Resource.from_document(snapshot.id, snapshot.to_dict())

    def add(self, resource: Resource) -> Resource:
        self._collection.document(resource.id).set(resource.to_document())
        return resource

    def add_many(self, resources) -> List[Resource]:
        resources = list(resources)
        batch = self.db.batch()
        for resource in resources:
            batch.set(self._collection.document(resource.id), resource.to_document())
        batch.commit()
        return resources

    def set_status(self, resource_id: str, status: ResourceStatus, updated_at: datetime) -> Resource:
        ref = self._collection.document(resource_id)

        @firestore.transactional
        def _apply(transaction) -> Resource:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise ResourceNotFound(resource_id)
            transaction.update(ref, {"status": status.value, "updated_at": updated_at.isoformat()})
            current = Resource.from_document(snapshot.id, snapshot.to_dict())
            return current.model_copy(update={"status": status, "updated_at": updated_at})

        return _apply(self.db.transaction())

    def candidates(
        self,
        min_latitude: float,
        max_latitude: float,
        status: Optional[ResourceStatus] = None,
        disaster_id: Optional[str] = None,
    ) -> List[Resource]:
        # One range filter (latitude band); the rest are equality filters
        query = where_filter(self._collection, "latitude", ">=", min_latitude)
        query = where_filter(query, "latitude", "<=", max_latitude)
        if status is not None:
            query = where_filter(query, "status", "==", status.value)
        if disaster_id is not None:
            query = where_filter(query, "disaster_id", "==", disaster_id)

        results = []
        for snapshot in query.stream():
            data = snapshot.to_dict()
            if data.get("latitude") is None or data.get("longitude") is None:
                continue
            results.append(Resource.from_document(snapshot.id, data))
        return results


class FirestoreDisasterRepository(DisasterRepository):

    def __init__(self, db: firestore.Client, collection: str = "disasters", archive: str = "deleted_disasters"):
        self.db = db
        self._collection = db.collection(collection)
        self._archive = db.collection(archive)

    def get(self, disaster_id: str) -> Optional[Disaster]:
        snapshot = self._collection.document(disaster_id).get()
        if not snapshot.exists:
            return None
        return Disaster.from_document(snapshot.id, snapshot.to_dict())

    def list(
        self,
        tag: Optional[str] = None,
        owner_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Disaster]:
        query = self._collection
        if tag:
            query = where_filter(query, "tags", "array_contains", tag)
        if owner_id:
            query = where_filter(query, "owner_id", "==", owner_id)
        query = query.order_by("created_at", direction=firestore.Query.DESCENDING)
        if offset:
            query = query.offset(offset)
        return [Disaster.from_document(doc.id, doc.to_dict()) for doc in query.limit(limit).stream()]

    def create(self, disaster: Disaster) -> Disaster:
        # create() fails if the document exists: one write, record and trail together
        self._collection.document(disaster.id).create(disaster.to_document())
        return disaster

    def update(self, disaster_id: str, mutate: DisasterMutation) -> Disaster:
        ref = self._collection.document(disaster_id)

        @firestore.transactional
        def _apply(transaction) -> Disaster:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise DisasterNotFound(disaster_id)
            current = Disaster.from_document(snapshot.id, snapshot.to_dict())
            fields, entry = mutate(current)
            transaction.update(ref, {
                **_encode_fields(fields),
                "audit_trail": firestore.ArrayUnion([entry.to_document()]),
            })
            return current.model_copy(update={**fields, "audit_trail": [*current.audit_trail, entry]})

        return _apply(self.db.transaction())

    def delete(self, disaster_id: str, make_entry: Callable[[Disaster], AuditEntry]) -> Disaster:
        ref = self._collection.document(disaster_id)
        archive_ref = self._archive.document(disaster_id)

        @firestore.transactional
        def _apply(transaction) -> Disaster:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise DisasterNotFound(disaster_id)
            current = Disaster.from_document(snapshot.id, snapshot.to_dict())
            archived = current.model_copy(update={"audit_trail": [*current.audit_trail, make_entry(current)]})
            document = archived.to_document()
            document["deleted_at"] = utcnow().isoformat()
            transaction.set(archive_ref, document)
            transaction.delete(ref)
            return archived

        return _apply(self.db.transaction())

    def get_archived(self, disaster_id: str) -> Optional[Disaster]:
        snapshot = self._archive.document(disaster_id).get()
        if not snapshot.exists:
            return None
        return Disaster.from_document(snapshot.id, snapshot.to_dict())


class FirestoreFeedRepository(FeedRepository):

    def __init__(self, db: firestore.Client):
        self.db = db
        self._social = db.collection("social_media_reports")
        self._updates = db.collection("official_updates")
        self._verifications = db.collection("image_verifications")

    def _create_ignoring_duplicates(self, ref, document: Dict[str, Any]) -> bool:
        try:
            ref.create(document)
            return True
        except AlreadyExists:
            return False

    def save_social_reports(self, disaster_id: str, reports: List[SocialMediaReport]) -> int:
        inserted = 0
        for report in reports:
            document = report.model_dump(mode="json")
            document["disaster_id"] = disaster_id
            document["created_at"] = firestore.SERVER_TIMESTAMP
            if self._create_ignoring_duplicates(self._social.document(report.id), document):
                inserted += 1
        return inserted

    def list_social_reports(
        self, disaster_id: str, priority: Optional[Priority] = None, limit: int = 20
    ) -> List[SocialMediaReport]:
        query = where_filter(self._social, "disaster_id", "==", disaster_id)
        if priority is not None:
            query = where_filter(query, "priority", "==", priority.value)
        query = query.order_by("published_at", direction=firestore.Query.DESCENDING).limit(limit)
        return [SocialMediaReport(**doc.to_dict()) for doc in query.stream()]

    def save_official_updates(self, disaster_id: str, updates: List[OfficialUpdate]) -> int:
        inserted = 0
        for update in updates:
            document = update.model_dump(mode="json")
            document["disaster_id"] = disaster_id
            document["created_at"] = firestore.SERVER_TIMESTAMP
            ref = self._updates.document(_doc_id(disaster_id, update.title, update.source))
            if self._create_ignoring_duplicates(ref, document):
                inserted += 1
        return inserted

    def list_official_updates(
        self, disaster_id: str, urgency: Optional[Priority] = None, limit: int = 10
    ) -> List[OfficialUpdate]:
        query = where_filter(self._updates, "disaster_id", "==", disaster_id)
        if urgency is not None:
            query = where_filter(query, "urgency", "==", urgency.value)
        query = query.order_by("published_at", direction=firestore.Query.DESCENDING).limit(limit)
        return [OfficialUpdate(**doc.to_dict()) for doc in query.stream()]

    def list_recent_official_updates(
        self, urgency: Optional[Priority] = None, limit: int = 50
    ) -> List[OfficialUpdate]:
        query = self._updates
        if urgency is not None:
            query = where_filter(query, "urgency", "==", urgency.value)
        query = query.order_by("published_at", direction=firestore.Query.DESCENDING).limit(limit)
        return [OfficialUpdate(**doc.to_dict()) for doc in query.stream()]

    def add_verification(self, verification: ImageVerification) -> ImageVerification:
        document = verification.model_dump(mode="json", exclude={"id"})
        document["verified_at"] = verification.verified_at
        _, ref = self._verifications.add(document)
        return verification.model_copy(update={"id": ref.id})

    def list_verifications(self, disaster_id: str, limit: int = 20, offset: int = 0) -> List[ImageVerification]:
        query = where_filter(self._verifications, "disaster_id", "==", disaster_id)
        query = query.order_by("verified_at", direction=firestore.Query.DESCENDING)
        if offset:
            query = query.offset(offset)
        return [ImageVerification(id=doc.id, **doc.to_dict()) for doc in query.limit(limit).stream()]

    def list_suspicious_verifications(self, threshold: int = 50, limit: int = 20) -> List[ImageVerification]:
        # Range filter and first ordering on the same field: no composite index needed
        query = where_filter(self._verifications, "verification_score", "<", threshold)
        query = query.order_by("verification_score", direction=firestore.Query.ASCENDING).limit(limit)
        return [ImageVerification(id=doc.id, **doc.to_dict()) for doc in query.stream()]


def build_firestore_repositories(db: firestore.Client) -> Repositories:
    return Repositories(
        cache=FirestoreCacheRepository(db),
        resources=FirestoreResourceRepository(db),
        disasters=FirestoreDisasterRepository(db),
        feeds=FirestoreFeedRepository(db),
        backend="firestore",
    )
