from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from firebase_admin import firestore

from app.core.exceptions import DisasterNotFound
from app.models.base import GeoPoint
from app.models.disaster import AuditAction, Disaster
from app.repositories.firestore_repository import FirestoreDisasterRepository
from app.services.audit_trail import AuditTrail


def _disaster() -> Disaster:
    return Disaster(
        id="d1",
        title="NYC Flood",
        description="Heavy flooding in Manhattan",
        location_name="Manhattan, NYC",
        location=GeoPoint(latitude=40.7831, longitude=-73.9712),
        tags=["flood"],
        owner_id="netrunnerX",
    )


class FakeFirestore:
    """Just enough of a Firestore client to drive one transactional write."""

    def __init__(self, document=None):
        self.db = MagicMock()
        self.collections = {"disasters": MagicMock(), "deleted_disasters": MagicMock()}
        self.db.collection.side_effect = lambda name: self.collections[name]

        self.ref = self.collections["disasters"].document.return_value
        self.archive_ref = self.collections["deleted_disasters"].document.return_value
        snapshot = MagicMock(id="d1", exists=document is not None)
        snapshot.to_dict.return_value = document
        self.ref.get.return_value = snapshot
        self.transaction = self.db.transaction.return_value


@pytest.fixture(autouse=True)
def plain_transactions(monkeypatch):
    # firestore.transactional needs a live Transaction; run the body once instead
    monkeypatch.setattr("app.repositories.firestore_repository.firestore.transactional", lambda fn: fn)


@pytest.fixture
def stored() -> Disaster:
    return AuditTrail(FirestoreDisasterRepository(FakeFirestore().db)).create(_disaster(), "netrunnerX")


def test_update_appends_entry_with_array_union(stored, clock) -> None:
    fake = FakeFirestore(stored.to_document())
    trail = AuditTrail(FirestoreDisasterRepository(fake.db), clock=clock)

    updated = trail.update("d1", "netrunnerX", lambda current: {"title": "Renamed"})

    fake.ref.get.assert_called_once_with(transaction=fake.transaction)
    fake.transaction.update.assert_called_once()
    ref, written = fake.transaction.update.call_args.args
    assert ref is fake.ref
    assert written["title"] == "Renamed"
    assert written["updated_at"] == clock().isoformat()

    appended = written["audit_trail"]
    assert isinstance(appended, firestore.ArrayUnion)
    assert len(appended.values) == 1
    assert appended.values[0]["action"] == AuditAction.UPDATE.value
    assert appended.values[0]["changes"] == {"title": {"from": "NYC Flood", "to": "Renamed"}}

    assert [e.action for e in updated.audit_trail] == [AuditAction.CREATE, AuditAction.UPDATE]


def test_update_of_missing_document_writes_nothing() -> None:
    fake = FakeFirestore(document=None)
    repository = FirestoreDisasterRepository(fake.db)

    with pytest.raises(DisasterNotFound):
        repository.update("d1", lambda current: ({}, None))
    fake.transaction.update.assert_not_called()


def test_delete_archives_then_removes_in_one_transaction(stored, clock) -> None:
    fake = FakeFirestore(stored.to_document())
    trail = AuditTrail(FirestoreDisasterRepository(fake.db), clock=clock)

    archived = trail.delete("d1", "netrunnerX")

    fake.collections["deleted_disasters"].document.assert_called_with("d1")
    archive_ref, document = fake.transaction.set.call_args.args
    assert archive_ref is fake.archive_ref
    assert [e["action"] for e in document["audit_trail"]] == ["create", "delete"]
    assert "deleted_at" in document
    fake.transaction.delete.assert_called_once_with(fake.ref)

    assert archived.audit_trail[-1].action == AuditAction.DELETE
    assert archived.audit_trail[-1].changes == {"title": "NYC Flood"}


def test_delete_of_missing_document_archives_nothing() -> None:
    fake = FakeFirestore(document=None)
    repository = FirestoreDisasterRepository(fake.db)

    with pytest.raises(DisasterNotFound):
        repository.delete("d1", lambda current: None)
    fake.transaction.set.assert_not_called()
    fake.transaction.delete.assert_not_called()
