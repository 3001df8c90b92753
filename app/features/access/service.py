"""
AccessControlService: the one object the HTTP layer talks to.

Built once at startup (see app.main) and handed to routes through a
dependency. It wires the registries together and exposes the operations the
admin UI needs.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from app.features.access.assignments import AssignmentStore
from app.features.access.audit import AuditLog
from app.features.access.catalog import PermissionCatalog
from app.features.access.decisions import DecisionEngine
from app.features.access.defaults import SUPER_ADMINISTRATOR, default_permissions, default_templates, system_roles
from app.features.access.domain import (
    Assignment,
    AssignmentScope,
    AuditEntry,
    AuditKind,
    Decision,
    Permission,
    PermissionCategory,
    PermissionScope,
    RequestStatus,
    Role,
    RoleRequest,
    RoleTemplate,
    ScopeContext,
    utcnow,
)
from app.features.access.errors import RoleNotFound
from app.features.access.role_requests import RequestWorkflow
from app.features.access.roles import HierarchyNode, RoleRegistry
from app.features.access.store import AccessSnapshot, AccessStore, NullStore
from app.features.access.templates import TemplateLibrary
from app.utils import get_logger


log = get_logger(__name__)


class UserRoles(NamedTuple):
    roles: List[Role]
    assignments: List[Assignment]


class AccessControlService:
    def __init__(self, store: Optional[AccessStore] = None):
        self.store = store or NullStore()
        self.audit = AuditLog(self.store)
        self.catalog = PermissionCatalog(self.store)
        self.roles = RoleRegistry(self.catalog, self.audit, self.store)
        self.assignments = AssignmentStore(self.roles, self.audit, self.store)
        self.roles.attach_usage(self.assignments.count_active)
        self.engine = DecisionEngine(self.catalog, self.roles, self.assignments, self.audit)
        self.requests = RequestWorkflow(self.roles, self.assignments, self.audit, self.store)
        self.templates = TemplateLibrary(self.roles, self.store)

    @classmethod
    def from_store(cls, store: AccessStore, seed_defaults: bool = False) -> "AccessControlService":
        """Rebuild the service from persisted state, seeding defaults into an empty store."""
        service = cls(store)
        snapshot = store.load()
        service.restore(snapshot)
        if seed_defaults and snapshot.is_empty():
            service.load_defaults()
        return service

    def restore(self, snapshot: AccessSnapshot) -> None:
        self.catalog.restore(snapshot.permissions)
        self.roles.restore(snapshot.roles)
        self.templates.restore(snapshot.templates)
        self.assignments.restore(snapshot.assignments)
        self.requests.restore(snapshot.requests)
        self.audit.restore(snapshot.audit)

    def load_defaults(self) -> None:
        """Register the default catalog, system roles and templates that are missing."""
        permissions = default_permissions()
        added = 0
        for permission in permissions:
            if permission.id not in self.catalog:
                self.catalog.register(permission)
                added += 1

        for role in system_roles(permissions):
            if self.roles.find_by_name(role.name) is None:
                self.roles.create(role)

        for template in default_templates():
            if self.templates.find_by_name(template.name) is None:
                self.templates.add(template)

        log.info("Loaded defaults: %d new permission(s), %d role(s)", added, len(self.roles))

    def bootstrap_admin(self, user_id: str) -> Optional[Assignment]:
        """Make sure `user_id` holds the Super Administrator role."""
        role = self.roles.find_by_name(SUPER_ADMINISTRATOR)
        if role is None:
            raise RoleNotFound(SUPER_ADMINISTRATOR)
        if self.assignments.get_active(user_id, role.id) is not None:
            return None
        log.warning("Bootstrapping %s as %s", user_id, SUPER_ADMINISTRATOR)
        return self.assignments.assign(user_id, role.id, assigned_by="system")

    def _record_mutation(self, actor: str, action: str, resource: str, resource_id: str,
                         details: Optional[Dict[str, Any]] = None) -> None:
        self.audit.record(AuditEntry(
            user_id=actor,
            action=action,
            resource=resource,
            resource_id=resource_id,
            granted=True,
            kind=AuditKind.MUTATION,
            details=details or {},
        ))

    # ========================================================================
    # Decisions
    # ========================================================================

    def has_permission(
        self,
        user_id: str,
        resource: str,
        action: str,
        church_id: Optional[str] = None,
        team_id: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> Decision:
        context = ScopeContext(church_id=church_id, team_id=team_id)
        return self.engine.has_permission(user_id, resource, action, context, resource_id=resource_id)

    # ========================================================================
    # Permissions
    # ========================================================================

    def register_permission(self, permission: Permission, registered_by: str = "system") -> Permission:
        self.catalog.register(permission)
        self._record_mutation(registered_by, "create", "permissions", permission.id, {"scope": permission.scope.value})
        return permission

    def get_permission(self, permission_id: str) -> Permission:
        return self.catalog.get(permission_id)

    def list_permissions(
        self,
        resource: Optional[str] = None,
        category: Optional[PermissionCategory] = None,
        scope: Optional[PermissionScope] = None,
    ) -> List[Permission]:
        return self.catalog.list(resource=resource, category=category, scope=scope)

    def permissions_by_category(self) -> Dict[str, List[Permission]]:
        return self.catalog.by_category()

    def deactivate_permission(self, permission_id: str, deactivated_by: str = "system") -> Permission:
        permission = self.catalog.deactivate(permission_id)
        self._record_mutation(deactivated_by, "deactivate", "permissions", permission_id)
        return permission

    # ========================================================================
    # Roles
    # ========================================================================

    def create_role(self, role: Role) -> Role:
        return self.roles.create(role)

    def get_role(self, role_id: str) -> Role:
        return self.roles.get(role_id)

    def update_role(self, role_id: str, changes: Dict[str, Any], updated_by: str) -> Role:
        return self.roles.update(role_id, changes, updated_by)

    def delete_role(self, role_id: str, deleted_by: str) -> None:
        self.roles.delete(role_id, deleted_by)

    def list_roles(self, include_inactive: bool = False) -> List[Role]:
        return self.roles.list(include_inactive=include_inactive)

    def role_hierarchy(self) -> List[HierarchyNode]:
        return self.roles.hierarchy()

    def list_templates(self, church_type: Optional[str] = None) -> List[RoleTemplate]:
        return self.templates.list(church_type=church_type)

    def create_role_from_template(
        self,
        template_id: str,
        created_by: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        additional_permissions: Iterable[str] = (),
        removed_permissions: Iterable[str] = (),
    ) -> Role:
        return self.templates.instantiate(
            template_id,
            created_by=created_by,
            name=name,
            description=description,
            additional_permissions=additional_permissions,
            removed_permissions=removed_permissions,
        )

    # ========================================================================
    # Assignments
    # ========================================================================

    def assign_role(
        self,
        user_id: str,
        role_id: str,
        assigned_by: str,
        expires_at: Optional[datetime] = None,
        scope: Optional[AssignmentScope] = None,
    ) -> Assignment:
        return self.assignments.assign(user_id, role_id, assigned_by, expires_at=expires_at, scope=scope)

    def revoke_role(self, user_id: str, role_id: str, revoked_by: str = "system") -> Assignment:
        return self.assignments.revoke(user_id, role_id, revoked_by=revoked_by)

    def list_roles_for_user(self, user_id: str) -> UserRoles:
        """Roles held through active (not revoked) assignments, with those assignments."""
        assignments = self.assignments.for_user(user_id)
        roles = []
        for assignment in assignments:
            role = self.roles.find(assignment.role_id)
            if role is not None and role not in roles:
                roles.append(role)
        return UserRoles(roles=roles, assignments=assignments)

    def active_roles_for(self, user_id: str, at: Optional[datetime] = None) -> List[Assignment]:
        return self.assignments.active_roles_for(user_id, at)

    def user_level(self, user_id: str) -> int:
        """Highest level among the user's effective, active roles; 0 when none."""
        levels = [0]
        for assignment in self.assignments.active_roles_for(user_id):
            role = self.roles.find(assignment.role_id)
            if role is not None and role.is_active:
                levels.append(role.level)
        return max(levels)

    def has_role(self, user_id: str, role_name: str) -> bool:
        role = self.roles.find_by_name(role_name)
        if role is None or not role.is_active:
            return False
        return any(a.role_id == role.id for a in self.assignments.active_roles_for(user_id))

    def expire_assignments(self, at: Optional[datetime] = None, actor: str = "system") -> List[Assignment]:
        return self.assignments.expire(at or utcnow(), actor=actor)

    # ========================================================================
    # Role requests
    # ========================================================================

    def create_role_request(
        self,
        user_id: str,
        requested_role_id: str,
        requested_by: str,
        reason: str = "",
        expires_at: Optional[datetime] = None,
        scope: Optional[AssignmentScope] = None,
    ) -> RoleRequest:
        return self.requests.create(user_id, requested_role_id, requested_by, reason, expires_at, scope)

    def review_role_request(
        self,
        request_id: str,
        reviewer_id: str,
        decision: RequestStatus | str,
        notes: Optional[str] = None,
    ) -> RoleRequest:
        return self.requests.review(request_id, reviewer_id, decision, notes)

    def get_role_request(self, request_id: str) -> RoleRequest:
        return self.requests.get(request_id)

    def list_role_requests(self, status: Optional[RequestStatus] = None) -> List[RoleRequest]:
        return self.requests.list(status=status)

    # ========================================================================
    # Audit
    # ========================================================================

    def query_audit_log(
        self,
        user_id: Optional[str] = None,
        resource: Optional[str] = None,
        granted: Optional[bool] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        kind: Optional[AuditKind] = None,
    ) -> List[AuditEntry]:
        return self.audit.query(user_id=user_id, resource=resource, granted=granted, since=since, until=until, kind=kind)
