"""
Role registry: named bundles of permissions with restrictions.

System roles are fixed at creation apart from their active flag. Custom
roles can be edited freely until someone holds them; after that their
permission set and restrictions are locked until every assignment is
revoked.
"""
import threading
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional

from pydantic import ValidationError

from app.features.access.audit import AuditLog
from app.features.access.catalog import PermissionCatalog
from app.features.access.domain import AuditEntry, AuditKind, Role, utcnow
from app.features.access.errors import (
    DuplicateRoleId,
    DuplicateRoleName,
    ImmutableSystemRole,
    InvalidRolePatch,
    RoleInUse,
    RoleNotFound,
    SystemRoleProtected,
)
from app.features.access.store import AccessStore, NullStore
from app.utils import get_logger


log = get_logger(__name__)

EDITABLE_FIELDS = frozenset({"name", "description", "level", "permission_ids", "restrictions", "is_active"})
LOCKED_WHILE_ASSIGNED = ("permission_ids", "restrictions")


class HierarchyNode(NamedTuple):
    role: Role
    children: List[Role]


def _changed(field: str, before: Role, after: Role) -> bool:
    # Permission order carries no meaning
    if field == "permission_ids":
        return set(before.permission_ids) != set(after.permission_ids)
    return getattr(before, field) != getattr(after, field)


class RoleRegistry:
    def __init__(
        self,
        catalog: PermissionCatalog,
        audit: AuditLog,
        store: Optional[AccessStore] = None,
    ):
        self.lock = threading.RLock()
        self._catalog = catalog
        self._audit = audit
        self._store = store or NullStore()
        self._roles: Dict[str, Role] = {}
        self._active_assignments: Callable[[str], int] = lambda role_id: 0

    def attach_usage(self, counter: Callable[[str], int]) -> None:
        """Install the callback reporting active assignments for a role id."""
        self._active_assignments = counter

    def restore(self, roles: Iterable[Role]) -> None:
        with self.lock:
            self._roles = {r.id: r for r in roles}

    def __len__(self) -> int:
        with self.lock:
            return len(self._roles)

    def _name_taken(self, name: str, exclude_id: Optional[str] = None) -> bool:
        wanted = name.strip().lower()
        return any(
            r.name.strip().lower() == wanted and r.id != exclude_id
            for r in self._roles.values()
        )

    def _record(self, actor: str, action: str, role: Role, details: Optional[Dict[str, Any]] = None) -> None:
        self._audit.record(AuditEntry(
            user_id=actor,
            action=action,
            resource="roles",
            resource_id=role.id,
            granted=True,
            kind=AuditKind.MUTATION,
            details={"name": role.name, **(details or {})},
        ))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, role_id: str) -> Role:
        with self.lock:
            role = self._roles.get(role_id)
        if role is None:
            raise RoleNotFound(role_id)
        return role

    def find(self, role_id: str) -> Optional[Role]:
        with self.lock:
            return self._roles.get(role_id)

    def find_by_name(self, name: str) -> Optional[Role]:
        wanted = name.strip().lower()
        with self.lock:
            for role in self._roles.values():
                if role.name.strip().lower() == wanted:
                    return role
        return None

    def list(self, include_inactive: bool = False) -> List[Role]:
        with self.lock:
            roles = list(self._roles.values())
        if not include_inactive:
            roles = [r for r in roles if r.is_active]
        return sorted(roles, key=lambda r: (-r.level, r.name))

    def hierarchy(self) -> List[HierarchyNode]:
        """Active roles, highest level first, each with the active roles below it."""
        roles = self.list()
        return [
            HierarchyNode(role=role, children=[r for r in roles if r.level < role.level])
            for role in roles
        ]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, role: Role) -> Role:
        with self.lock:
            if role.id in self._roles:
                raise DuplicateRoleId(role.id)
            if self._name_taken(role.name):
                raise DuplicateRoleName(role.name)
            self._catalog.require_all(role.permission_ids)

            self._store.save_role(role)
            self._roles[role.id] = role
            self._record(role.created_by, "create", role, {"permissions": len(role.permission_ids)})

        log.info("Created %s role %r (%s)", role.type.value, role.name, role.id)
        return role

    def update(self, role_id: str, changes: Dict[str, Any], updated_by: str) -> Role:
        """
        Apply a partial update.

        Raises:
            InvalidRolePatch: unknown fields or invalid values
            ImmutableSystemRole: system role patch touching anything but is_active
            RoleInUse: permission set or restrictions change on an assigned custom role
            UnknownPermission: permission ids missing from the catalog
            DuplicateRoleName: name clashes with another role
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidRolePatch(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        with self.lock:
            role = self.get(role_id)

            if role.is_system:
                protected = set(changes) - {"is_active"}
                if protected:
                    raise ImmutableSystemRole(role_id, protected)

            merged = {**role.model_dump(), **changes, "updated_at": utcnow()}
            try:
                updated = Role.model_validate(merged)
            except ValidationError as e:
                raise InvalidRolePatch(str(e)) from e

            locked = [f for f in LOCKED_WHILE_ASSIGNED if f in changes and _changed(f, role, updated)]
            if locked:
                in_use = self._active_assignments(role_id)
                if in_use:
                    raise RoleInUse(role_id, in_use)

            if "permission_ids" in changes:
                self._catalog.require_all(updated.permission_ids)
            if "name" in changes and self._name_taken(updated.name, exclude_id=role_id):
                raise DuplicateRoleName(updated.name)

            self._store.save_role(updated)
            self._roles[role_id] = updated
            self._record(updated_by, "update", updated, {"fields": sorted(changes)})

        log.info("Updated role %s fields=%s", role_id, sorted(changes))
        return updated

    def delete(self, role_id: str, deleted_by: str) -> None:
        with self.lock:
            role = self.get(role_id)
            if role.is_system:
                raise SystemRoleProtected(role_id)
            in_use = self._active_assignments(role_id)
            if in_use:
                raise RoleInUse(role_id, in_use)

            self._store.delete_role(role_id)
            del self._roles[role_id]
            self._record(deleted_by, "delete", role)

        log.info("Deleted role %r (%s)", role.name, role_id)
