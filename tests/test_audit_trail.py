from __future__ import annotations

import threading

import pytest

from app.core.exceptions import AuditWriteError, DisasterNotFound, PermissionDenied
from app.models.base import GeoPoint
from app.models.disaster import AuditAction, Disaster
from app.repositories.memory_repository import MemoryDisasterRepository
from app.services.audit_trail import AuditTrail, diff


def _disaster(disaster_id: str = "d1", owner_id: str = "netrunnerX") -> Disaster:
    return Disaster(
        id=disaster_id,
        title="NYC Flood",
        description="Heavy flooding in Manhattan",
        location_name="Manhattan, NYC",
        location=GeoPoint(latitude=40.7831, longitude=-73.9712),
        tags=["flood"],
        owner_id=owner_id,
    )


class _FailingAppendRepository(MemoryDisasterRepository):
    """Simulates the store rejecting the write after the change was computed."""

    def update(self, disaster_id, mutate):
        with self._lock_for(disaster_id):
            current = self.get(disaster_id)
            if current is None:
                raise DisasterNotFound(disaster_id)
            mutate(current)
            raise ConnectionError("audit append rejected")


@pytest.fixture
def repository() -> MemoryDisasterRepository:
    return MemoryDisasterRepository()


@pytest.fixture
def trail(repository, clock) -> AuditTrail:
    return AuditTrail(repository, clock=clock)


def test_diff_reports_changed_fields_only() -> None:
    before = {"title": "A", "tags": ["flood"], "location_name": None}
    after = {"title": "B", "tags": ["flood"], "location_name": "NYC"}
    assert diff(before, after) == {
        "location_name": {"from": None, "to": "NYC"},
        "title": {"from": "A", "to": "B"},
    }


def test_create_starts_trail(trail) -> None:
    created = trail.create(_disaster(), "netrunnerX", severity_analysis={"severity_score": 6})
    assert len(created.audit_trail) == 1
    entry = created.audit_trail[0]
    assert entry.action == AuditAction.CREATE
    assert entry.user_id == "netrunnerX"
    assert entry.changes["title"] == "NYC Flood"
    assert entry.severity_analysis == {"severity_score": 6}


def test_each_mutation_appends_exactly_one_entry(trail, clock) -> None:
    trail.create(_disaster(), "netrunnerX")
    clock.advance(minutes=1)
    trail.update("d1", "reliefAdmin", lambda current: {"title": "NYC Flood (update)"})
    clock.advance(minutes=1)
    updated = trail.update("d1", "reliefAdmin", lambda current: {"tags": ["flood", "urgent"]})

    actions = [entry.action for entry in updated.audit_trail]
    assert actions == [AuditAction.CREATE, AuditAction.UPDATE, AuditAction.UPDATE]
    timestamps = [entry.timestamp for entry in updated.audit_trail]
    assert timestamps == sorted(timestamps)
    assert updated.audit_trail[1].changes == {"title": {"from": "NYC Flood", "to": "NYC Flood (update)"}}
    assert updated.audit_trail[2].changes == {"tags": {"from": ["flood"], "to": ["flood", "urgent"]}}
    assert updated.updated_at == clock()


def test_update_without_changes_is_still_recorded(trail) -> None:
    trail.create(_disaster(), "netrunnerX")
    updated = trail.update("d1", "netrunnerX", lambda current: {"title": current.title})
    assert len(updated.audit_trail) == 2
    assert updated.audit_trail[-1].changes == {}


def test_concurrent_updates_lose_no_entries(trail, repository) -> None:
    trail.create(_disaster(), "netrunnerX")
    workers = 8
    per_worker = 10
    barrier = threading.Barrier(workers)

    def work(worker: int) -> None:
        barrier.wait()
        for i in range(per_worker):
            trail.update("d1", f"user{worker}", lambda current, w=worker, n=i: {"description": f"w{w}-{n}"})

    threads = [threading.Thread(target=work, args=(w,)) for w in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    record = repository.get("d1")
    assert len(record.audit_trail) == 1 + workers * per_worker
    assert len({entry.id for entry in record.audit_trail}) == len(record.audit_trail)


def test_failed_append_rejects_mutation(clock) -> None:
    repository = _FailingAppendRepository()
    trail = AuditTrail(repository, clock=clock)
    trail.create(_disaster(), "netrunnerX")

    with pytest.raises(AuditWriteError) as exc_info:
        trail.update("d1", "netrunnerX", lambda current: {"title": "Changed"})

    assert exc_info.value.disaster_id == "d1"
    record = repository.get("d1")
    assert record.title == "NYC Flood"
    assert len(record.audit_trail) == 1


def test_update_of_missing_record_is_not_found(trail) -> None:
    with pytest.raises(DisasterNotFound):
        trail.update("nope", "netrunnerX", lambda current: {"title": "x"})


def test_permission_denied_in_compute_aborts(trail, repository) -> None:
    trail.create(_disaster(), "netrunnerX")

    def compute(current):
        raise PermissionDenied("not the owner")

    with pytest.raises(PermissionDenied):
        trail.update("d1", "intruder", compute)
    assert len(repository.get("d1").audit_trail) == 1


def test_delete_archives_full_trail(trail, repository) -> None:
    trail.create(_disaster(), "netrunnerX")
    trail.update("d1", "netrunnerX", lambda current: {"title": "Renamed"})

    archived = trail.delete("d1", "netrunnerX")

    assert repository.get("d1") is None
    assert [entry.action for entry in archived.audit_trail] == [
        AuditAction.CREATE, AuditAction.UPDATE, AuditAction.DELETE,
    ]
    assert archived.audit_trail[-1].changes == {"title": "Renamed"}

    total, entries = trail.history("d1")
    assert total == 3
    assert entries[-1].action == AuditAction.DELETE


def test_delete_releases_record_lock(trail, repository) -> None:
    trail.create(_disaster(), "netrunnerX")
    trail.update("d1", "netrunnerX", lambda current: {"title": "Renamed"})
    assert "d1" in repository._locks

    trail.delete("d1", "netrunnerX")
    assert "d1" not in repository._locks


def test_delete_authorization_runs_inside_the_write(trail, repository) -> None:
    trail.create(_disaster(), "netrunnerX")

    def authorize(current):
        raise PermissionDenied("no")

    with pytest.raises(PermissionDenied):
        trail.delete("d1", "intruder", authorize=authorize)
    assert repository.get("d1") is not None
    assert repository.get_archived("d1") is None


def test_history_pagination(trail) -> None:
    trail.create(_disaster(), "netrunnerX")
    for n in range(4):
        trail.update("d1", "netrunnerX", lambda current, n=n: {"description": f"step {n}"})

    total, page = trail.history("d1", limit=2, offset=1)
    assert total == 5
    assert [entry.changes["description"]["to"] for entry in page] == ["step 0", "step 1"]


def test_history_of_unknown_record(trail) -> None:
    with pytest.raises(DisasterNotFound):
        trail.history("missing")


def test_entries_are_immutable(trail) -> None:
    created = trail.create(_disaster(), "netrunnerX")
    with pytest.raises(Exception):
        created.audit_trail[0].user_id = "someone-else"
