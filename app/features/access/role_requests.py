"""
Role request workflow: pending -> approved | rejected, terminal either way.

Approval materializes the grant through the assignment store. If that grant
fails the request is rejected instead, so an approved request always has a
matching assignment.
"""
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Union

from app.features.access.assignments import AssignmentStore
from app.features.access.audit import AuditLog
from app.features.access.domain import (
    AssignmentScope,
    AuditEntry,
    AuditKind,
    RequestStatus,
    RoleRequest,
    utcnow,
)
from app.features.access.errors import (
    AccessControlError,
    AlreadyReviewed,
    InvalidDecision,
    RequestNotFound,
)
from app.features.access.roles import RoleRegistry
from app.features.access.store import AccessStore, NullStore
from app.utils import get_logger


log = get_logger(__name__)

AUTO_REJECT_PREFIX = "Auto-rejected: "


class RequestWorkflow:
    def __init__(
        self,
        roles: RoleRegistry,
        assignments: AssignmentStore,
        audit: AuditLog,
        store: Optional[AccessStore] = None,
    ):
        self.lock = threading.RLock()
        self._roles = roles
        self._assignments = assignments
        self._audit = audit
        self._store = store or NullStore()
        self._requests: Dict[str, RoleRequest] = {}

    def restore(self, requests: Iterable[RoleRequest]) -> None:
        with self.lock:
            self._requests = {r.id: r for r in requests}

    def _save(self, request: RoleRequest) -> None:
        self._store.save_request(request)
        self._requests[request.id] = request

    def _record(self, actor: str, action: str, request: RoleRequest, granted: bool = True) -> None:
        self._audit.record(AuditEntry(
            user_id=actor,
            action=action,
            resource="role_requests",
            resource_id=request.id,
            granted=granted,
            reason=request.review_notes if not granted else None,
            kind=AuditKind.MUTATION,
            details={
                "target_user_id": request.user_id,
                "role_id": request.requested_role_id,
                "status": request.status.value,
            },
        ))

    def get(self, request_id: str) -> RoleRequest:
        with self.lock:
            request = self._requests.get(request_id)
        if request is None:
            raise RequestNotFound(request_id)
        return request

    def list(self, status: Optional[RequestStatus] = None) -> List[RoleRequest]:
        with self.lock:
            requests = list(self._requests.values())
        if status is not None:
            requests = [r for r in requests if r.status == status]
        return sorted(requests, key=lambda r: r.requested_at, reverse=True)

    def create(
        self,
        user_id: str,
        requested_role_id: str,
        requested_by: str,
        reason: str = "",
        expires_at: Optional[datetime] = None,
        scope: Optional[AssignmentScope] = None,
    ) -> RoleRequest:
        # Unknown roles are rejected now; inactive ones are caught at approval.
        self._roles.get(requested_role_id)

        request = RoleRequest(
            user_id=user_id,
            requested_role_id=requested_role_id,
            requested_by=requested_by,
            reason=reason,
            expires_at=expires_at,
            scope=scope,
        )
        with self.lock:
            self._save(request)
            self._record(requested_by, "request", request)

        log.info("User %s requested role %s for %s", requested_by, requested_role_id, user_id)
        return request

    def review(
        self,
        request_id: str,
        reviewer_id: str,
        decision: Union[RequestStatus, str],
        notes: Optional[str] = None,
    ) -> RoleRequest:
        """
        Approve or reject a pending request.

        Raises:
            RequestNotFound, InvalidDecision, AlreadyReviewed
            Store errors propagate with the request still pending.
        """
        try:
            decision = RequestStatus(decision)
        except ValueError:
            raise InvalidDecision(f"Decision must be 'approved' or 'rejected', got {decision!r}")
        if decision == RequestStatus.PENDING:
            raise InvalidDecision("Decision must be 'approved' or 'rejected', got 'pending'")

        with self.lock:
            request = self.get(request_id)
            if not request.is_pending:
                raise AlreadyReviewed(request_id, request.status.value)

            status, review_notes, granted = decision, notes, None
            if decision == RequestStatus.APPROVED:
                try:
                    granted = self._assignments.assign(
                        user_id=request.user_id,
                        role_id=request.requested_role_id,
                        assigned_by=reviewer_id,
                        expires_at=request.expires_at,
                        scope=request.scope,
                        via_approval=True,
                        metadata={"request_id": request.id},
                    )
                except AccessControlError as e:
                    status, review_notes = RequestStatus.REJECTED, f"{AUTO_REJECT_PREFIX}{e}"
                    log.warning("Auto-rejected role request %s: %s", request_id, e)

            request = request.model_copy(update={
                "status": status,
                "reviewed_by": reviewer_id,
                "reviewed_at": utcnow(),
                "review_notes": review_notes,
            })
            try:
                self._save(request)
            except Exception:
                # The request stays pending, so the grant is withdrawn
                if granted is not None:
                    self._assignments.revoke(granted.user_id, granted.role_id, revoked_by=reviewer_id)
                raise
            self._record(reviewer_id, "review", request, granted=status == RequestStatus.APPROVED)

        log.info("Role request %s %s by %s", request_id, status.value, reviewer_id)
        return request
