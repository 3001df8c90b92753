"""
Assignment store: which users hold which roles, where, and until when.

"Active" here means the soft-revoke flag. Expiry is interpreted only by
active_roles_for(), which the decision engine reads; an elapsed assignment
keeps its flag until expire() runs.
"""
import threading
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from app.features.access.audit import AuditLog
from app.features.access.domain import Assignment, AssignmentScope, AuditEntry, AuditKind, as_utc, utcnow
from app.features.access.errors import (
    AccessControlError,
    ApprovalRequired,
    AssignmentNotFound,
    DuplicateAssignment,
    InvalidScope,
    RoleCapacityExceeded,
    RoleInactive,
)
from app.features.access.roles import RoleRegistry
from app.features.access.store import AccessStore, NullStore
from app.utils import get_logger


log = get_logger(__name__)


class AssignmentStore:
    def __init__(
        self,
        roles: RoleRegistry,
        audit: AuditLog,
        store: Optional[AccessStore] = None,
    ):
        self.lock = threading.RLock()
        self._roles = roles
        self._audit = audit
        self._store = store or NullStore()
        self._assignments: Dict[str, Assignment] = {}
        self._by_user: Dict[str, List[str]] = defaultdict(list)

    def restore(self, assignments: Iterable[Assignment]) -> None:
        with self.lock:
            self._assignments = {}
            self._by_user = defaultdict(list)
            for assignment in assignments:
                self._put(assignment)

    def _put(self, assignment: Assignment) -> None:
        if assignment.id not in self._assignments:
            self._by_user[assignment.user_id].append(assignment.id)
        self._assignments[assignment.id] = assignment

    def _for_user(self, user_id: str) -> List[Assignment]:
        return [self._assignments[i] for i in self._by_user.get(user_id, ())]

    def _find_active(self, user_id: str, role_id: str) -> Optional[Assignment]:
        for assignment in self._for_user(user_id):
            if assignment.role_id == role_id and assignment.is_active:
                return assignment
        return None

    def _audit_attempt(
        self,
        actor: str,
        action: str,
        user_id: str,
        role_id: str,
        assignment: Optional[Assignment] = None,
        error: Optional[Exception] = None,
    ) -> None:
        details: Dict[str, Any] = {"target_user_id": user_id}
        if assignment is not None:
            details["assignment_id"] = assignment.id
        if error is not None:
            details["error"] = getattr(error, "code", type(error).__name__)
        self._audit.record(AuditEntry(
            user_id=actor,
            action=action,
            resource="user_roles",
            resource_id=role_id,
            granted=error is None,
            reason=str(error) if error is not None else None,
            kind=AuditKind.MUTATION,
            details=details,
        ))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def active_roles_for(self, user_id: str, at: Optional[datetime] = None) -> List[Assignment]:
        """Assignments that are flagged active and not expired at `at` (default now)."""
        at = as_utc(at) or utcnow()
        with self.lock:
            return [a for a in self._for_user(user_id) if a.is_effective(at)]

    def for_user(self, user_id: str, include_inactive: bool = False) -> List[Assignment]:
        with self.lock:
            assignments = self._for_user(user_id)
        if not include_inactive:
            assignments = [a for a in assignments if a.is_active]
        return assignments

    def get_active(self, user_id: str, role_id: str) -> Optional[Assignment]:
        with self.lock:
            return self._find_active(user_id, role_id)

    def count_active(self, role_id: str) -> int:
        with self.lock:
            return sum(1 for a in self._assignments.values() if a.role_id == role_id and a.is_active)

    def all_active(self) -> List[Assignment]:
        with self.lock:
            return [a for a in self._assignments.values() if a.is_active]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def assign(
        self,
        user_id: str,
        role_id: str,
        assigned_by: str,
        expires_at: Optional[datetime] = None,
        scope: Optional[AssignmentScope] = None,
        via_approval: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Assignment:
        """
        Grant `role_id` to `user_id`.

        Every attempt is audited, successful or not.

        Raises:
            RoleNotFound, RoleInactive, ApprovalRequired, InvalidScope,
            DuplicateAssignment, RoleCapacityExceeded
            Store errors propagate and leave no grant behind.
        """
        with self._roles.lock, self.lock:
            try:
                role = self._roles.get(role_id)
                if not role.is_active:
                    raise RoleInactive(role_id)
                if role.restrictions.requires_approval and not via_approval:
                    raise ApprovalRequired(role_id)
                if role.restrictions.church_specific and (scope is None or not scope.church_ids):
                    raise InvalidScope(f"Role {role.name!r} must be scoped to at least one church")
                if self._find_active(user_id, role_id) is not None:
                    raise DuplicateAssignment(user_id, role_id)
                limit = role.restrictions.max_assignees
                if limit is not None and self.count_active(role_id) >= limit:
                    raise RoleCapacityExceeded(role_id, limit)
            except AccessControlError as e:
                self._audit_attempt(assigned_by, "assign", user_id, role_id, error=e)
                log.info("Refused to assign role %s to %s: %s", role_id, user_id, e)
                raise

            assignment = Assignment(
                user_id=user_id,
                role_id=role_id,
                assigned_by=assigned_by,
                expires_at=as_utc(expires_at),
                scope=scope if scope is not None and not scope.is_empty() else None,
                metadata=metadata or {},
            )
            try:
                self._store.save_assignment(assignment)
            except Exception as e:
                self._audit_attempt(assigned_by, "assign", user_id, role_id, error=e)
                log.error("Could not persist role %s for user %s: %s", role_id, user_id, e)
                raise
            self._put(assignment)
            self._audit_attempt(assigned_by, "assign", user_id, role_id, assignment=assignment)

        log.info("Assigned role %r to user %s (by %s)", role.name, user_id, assigned_by)
        return assignment

    def revoke(self, user_id: str, role_id: str, revoked_by: str = "system") -> Assignment:
        """
        Soft-revoke the active assignment. A second revoke of the same pair
        raises AssignmentNotFound.
        """
        with self.lock:
            assignment = self._find_active(user_id, role_id)
            if assignment is None:
                raise AssignmentNotFound(user_id, role_id)
            assignment = assignment.model_copy(update={
                "is_active": False,
                "revoked_by": revoked_by,
                "revoked_at": utcnow(),
            })
            self._store.save_assignment(assignment)
            self._put(assignment)
            self._audit_attempt(revoked_by, "revoke", user_id, role_id, assignment=assignment)

        log.info("Revoked role %s from user %s (by %s)", role_id, user_id, revoked_by)
        return assignment

    def expire(self, at: Optional[datetime] = None, actor: str = "system") -> List[Assignment]:
        """
        Maintenance pass: deactivate every flagged-active assignment whose
        expiry has passed. Returns the assignments it flipped.
        """
        at = as_utc(at) or utcnow()
        expired: List[Assignment] = []
        with self.lock:
            for assignment in list(self._assignments.values()):
                if assignment.is_active and assignment.expires_at is not None and assignment.expires_at <= at:
                    assignment = assignment.model_copy(update={"is_active": False, "revoked_by": actor, "revoked_at": at})
                    self._store.save_assignment(assignment)
                    self._put(assignment)
                    self._audit_attempt(actor, "expire", assignment.user_id, assignment.role_id, assignment=assignment)
                    expired.append(assignment)

        if expired:
            log.info("Expired %d assignment(s)", len(expired))
        return expired
