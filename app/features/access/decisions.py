"""
Decision engine: answers allow/deny for (user, resource, action, scope).

Owns no state. Roles are combined with OR semantics; the first matching
permission short-circuits. Every call, grant or deny, is audited.
"""
from datetime import datetime
from typing import List, Optional

from app.features.access.assignments import AssignmentStore
from app.features.access.audit import AuditLog
from app.features.access.catalog import PermissionCatalog
from app.features.access.domain import (
    Assignment,
    AuditEntry,
    AuditKind,
    Decision,
    Permission,
    PermissionScope,
    ScopeContext,
    utcnow,
)
from app.features.access.roles import RoleRegistry
from app.utils import get_logger


log = get_logger(__name__)

DENY_REASON = "insufficient permissions"


def scope_matches(
    permission: Permission,
    role_id: str,
    assignments: List[Assignment],
    context: ScopeContext,
) -> bool:
    """
    Whether `permission`, held through `role_id`, applies in `context`.

    Church and team permissions need an id in the context and an active
    assignment of that same role whose scope lists it.
    """
    if permission.scope in (PermissionScope.GLOBAL, PermissionScope.SELF):
        return True

    held = [a for a in assignments if a.role_id == role_id]
    if permission.scope == PermissionScope.CHURCH:
        return context.church_id is not None and any(a.covers_church(context.church_id) for a in held)
    if permission.scope == PermissionScope.TEAM:
        return context.team_id is not None and any(a.covers_team(context.team_id) for a in held)
    return False


class DecisionEngine:
    def __init__(
        self,
        catalog: PermissionCatalog,
        roles: RoleRegistry,
        assignments: AssignmentStore,
        audit: AuditLog,
    ):
        self._catalog = catalog
        self._roles = roles
        self._assignments = assignments
        self._audit = audit

    def evaluate(
        self,
        user_id: str,
        resource: str,
        action: str,
        context: Optional[ScopeContext] = None,
        at: Optional[datetime] = None,
    ) -> Decision:
        """Decide without auditing. Resource and action match case-insensitively."""
        resource, action = resource.lower(), action.lower()
        context = context or ScopeContext()
        assignments = self._assignments.active_roles_for(user_id, at or utcnow())

        seen = set()
        for assignment in assignments:
            if assignment.role_id in seen:
                continue
            seen.add(assignment.role_id)

            role = self._roles.find(assignment.role_id)
            if role is None or not role.is_active:
                continue

            for permission in self._catalog.active_match(role.permission_ids, resource, action):
                if scope_matches(permission, role.id, assignments, context):
                    return Decision(True, permission.id)

        return Decision(False, "")

    def has_permission(
        self,
        user_id: str,
        resource: str,
        action: str,
        context: Optional[ScopeContext] = None,
        resource_id: Optional[str] = None,
    ) -> Decision:
        resource, action = resource.lower(), action.lower()
        decision = self.evaluate(user_id, resource, action, context)
        details = {}
        if context is not None:
            details = context.model_dump(exclude_none=True)

        self._audit.record(AuditEntry(
            user_id=user_id,
            action=action,
            resource=resource,
            resource_id=resource_id,
            permission_id=decision.permission_id,
            granted=decision.granted,
            reason=None if decision.granted else DENY_REASON,
            kind=AuditKind.DECISION,
            details=details,
        ))

        if decision.granted:
            log.debug("User %s granted %s on %s via %s", user_id, action, resource, decision.permission_id)
        else:
            log.debug("User %s denied %s on %s", user_id, action, resource)
        return decision
