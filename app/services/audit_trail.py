"""
Append-only audit trail for disaster records.

DESIGN PRINCIPLES:
- Every tracked mutation (create, update, delete) writes exactly one entry
- The entry is written in the same atomic unit as the mutation; if either
  fails, neither is persisted and the mutation is rejected
- Entries are immutable; the trail only grows, in chronological order
- Concurrent mutations of one record serialize at the storage layer, so no
  append is ever lost
"""

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.core.exceptions import AuditWriteError, DisasterNotFound, PermissionDenied
from app.models.base import utcnow
from app.models.disaster import AuditAction, AuditEntry, Disaster
from app.repositories.base import DisasterRepository

logger = logging.getLogger(__name__)

# compute(current) -> new values for the fields being changed
FieldChanges = Callable[[Disaster], Dict[str, Any]]


def diff(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Field-level change set between two snapshots.

    Returns {field: {"from": old, "to": new}} for changed fields only.
    """
    changes = {}
    for field in sorted(set(before) | set(after)):
        old = before.get(field)
        new = after.get(field)
        if old != new:
            changes[field] = {"from": old, "to": new}
    return changes


class AuditTrail:
    """
    Tracked mutations of disaster records.

    Each method returns the record as persisted, audit trail included.
    """

    # Domain errors pass through; anything else means the atomic write failed
    PASSTHROUGH_ERRORS = (DisasterNotFound, PermissionDenied)

    def __init__(self, repository: DisasterRepository, clock: Callable = utcnow):
        self.repository = repository
        self.clock = clock

    def build_entry(
        self,
        action: AuditAction,
        user_id: str,
        changes: Optional[Dict[str, Any]] = None,
        severity_analysis: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        return AuditEntry(
            id=str(uuid.uuid4()),
            action=action,
            user_id=user_id,
            timestamp=self.clock(),
            changes=changes or {},
            severity_analysis=severity_analysis,
        )

    def _write(self, operation: Callable[[], Disaster], disaster_id: str, action: AuditAction) -> Disaster:
        try:
            return operation()
        except self.PASSTHROUGH_ERRORS:
            raise
        except Exception as e:
            logger.error(f"Audited {action.value} of disaster {disaster_id} rejected: {e}", exc_info=True)
            raise AuditWriteError(
                f"Could not persist {action.value} of disaster {disaster_id} with its audit entry: {e}",
                disaster_id=disaster_id,
            ) from e

    def create(
        self,
        disaster: Disaster,
        user_id: str,
        severity_analysis: Optional[Dict[str, Any]] = None,
    ) -> Disaster:
        """Insert a new record whose trail starts with its create entry."""
        entry = self.build_entry(AuditAction.CREATE, user_id, disaster.tracked_fields(), severity_analysis)
        record = disaster.model_copy(update={"audit_trail": [entry]})
        created = self._write(lambda: self.repository.create(record), disaster.id, AuditAction.CREATE)
        logger.info(f"Audit: create {disaster.id} by {user_id}")
        return created

    def update(
        self,
        disaster_id: str,
        user_id: str,
        compute: FieldChanges,
        severity_analysis: Optional[Dict[str, Any]] = None,
    ) -> Disaster:
        """
        Apply compute() to the current record and append one update entry.

        compute() runs inside the atomic unit and may run more than once if
        the store retries on contention; it must not have side effects.
        It may raise PermissionDenied to abort the mutation.
        """

        def mutate(current: Disaster) -> Tuple[Dict[str, Any], AuditEntry]:
            fields = dict(compute(current))
            after = current.model_copy(update=fields)
            changes = diff(current.tracked_fields(), after.tracked_fields())
            fields["updated_at"] = self.clock()
            return fields, self.build_entry(AuditAction.UPDATE, user_id, changes, severity_analysis)

        updated = self._write(
            lambda: self.repository.update(disaster_id, mutate), disaster_id, AuditAction.UPDATE
        )
        logger.info(f"Audit: update {disaster_id} by {user_id} (trail length {len(updated.audit_trail)})")
        return updated

    def delete(
        self,
        disaster_id: str,
        user_id: str,
        authorize: Optional[Callable[[Disaster], None]] = None,
    ) -> Disaster:
        """Remove the record; its trail, ending in a delete entry, is archived."""

        def make_entry(current: Disaster) -> AuditEntry:
            if authorize is not None:
                authorize(current)
            return self.build_entry(AuditAction.DELETE, user_id, {"title": current.title})

        archived = self._write(
            lambda: self.repository.delete(disaster_id, make_entry), disaster_id, AuditAction.DELETE
        )
        logger.info(f"Audit: delete {disaster_id} by {user_id}")
        return archived

    def history(self, disaster_id: str, limit: Optional[int] = None, offset: int = 0) -> Tuple[int, List[AuditEntry]]:
        """
        Full ordered trail (total, entries[offset:offset+limit]).

        Falls back to the archive for deleted records.
        """
        record = self.repository.get(disaster_id) or self.repository.get_archived(disaster_id)
        if record is None:
            raise DisasterNotFound(disaster_id)
        entries = record.audit_trail
        end = None if limit is None else offset + limit
        return len(entries), list(entries[offset:end])
