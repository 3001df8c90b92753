"""
Append-only audit trail of access decisions and administrative mutations.
"""
import itertools
import threading
from datetime import datetime
from typing import List, Optional

from app.features.access.domain import AuditEntry, AuditKind, as_utc
from app.features.access.store import AccessStore, NullStore
from app.utils import get_logger


log = get_logger(__name__)


class AuditLog:
    """
    In-memory audit log. Entries are never updated or deleted; retention is
    handled outside the service.
    """

    def __init__(self, store: Optional[AccessStore] = None):
        self.lock = threading.Lock()
        self._entries: List[AuditEntry] = []
        self._sequence = itertools.count(1)
        self._store = store or NullStore()

    def __len__(self) -> int:
        with self.lock:
            return len(self._entries)

    def record(self, entry: AuditEntry) -> AuditEntry:
        with self.lock:
            entry = entry.model_copy(update={"sequence": next(self._sequence)})
            self._store.append_audit(entry)
            self._entries.append(entry)
        if entry.kind == AuditKind.MUTATION:
            log.info(
                "Audit: user=%s action=%s resource=%s:%s granted=%s",
                entry.user_id, entry.action, entry.resource, entry.resource_id, entry.granted,
            )
        return entry

    def restore(self, entries: List[AuditEntry]) -> None:
        """Load previously persisted entries, keeping their order."""
        with self.lock:
            ordered = sorted(entries, key=lambda e: (e.timestamp, e.sequence))
            self._entries = list(ordered)
            last = max((e.sequence for e in ordered), default=0)
            self._sequence = itertools.count(last + 1)

    def query(
        self,
        user_id: Optional[str] = None,
        resource: Optional[str] = None,
        granted: Optional[bool] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        kind: Optional[AuditKind] = None,
    ) -> List[AuditEntry]:
        """
        Filter entries; newest first. `since` and `until` are inclusive.
        """
        with self.lock:
            entries = list(self._entries)

        if user_id is not None:
            entries = [e for e in entries if e.user_id == user_id]
        if resource is not None:
            entries = [e for e in entries if e.resource == resource]
        if granted is not None:
            entries = [e for e in entries if e.granted == granted]
        if kind is not None:
            entries = [e for e in entries if e.kind == kind]
        if since is not None:
            since = as_utc(since)
            entries = [e for e in entries if e.timestamp >= since]
        if until is not None:
            until = as_utc(until)
            entries = [e for e in entries if e.timestamp <= until]

        entries.sort(key=lambda e: (e.timestamp, e.sequence), reverse=True)
        return entries
