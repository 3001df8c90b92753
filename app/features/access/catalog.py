"""
Permission catalog: the registry of (resource, action) capabilities.
"""
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from app.features.access.domain import (
    Permission,
    PermissionCategory,
    PermissionScope,
    normalize_permission_id,
    utcnow,
)
from app.features.access.errors import DuplicateResourceAction, PermissionNotFound, UnknownPermission
from app.features.access.store import AccessStore, NullStore
from app.utils import get_logger


log = get_logger(__name__)


class PermissionCatalog:
    """
    Keyed store of permissions.

    A permission's meaning never changes once registered; the only edit is
    deactivation, which does not touch the roles that reference it.
    """

    def __init__(self, store: Optional[AccessStore] = None):
        self.lock = threading.RLock()
        self._permissions: Dict[str, Permission] = {}
        self._store = store or NullStore()

    def __len__(self) -> int:
        with self.lock:
            return len(self._permissions)

    def __contains__(self, permission_id: str) -> bool:
        with self.lock:
            return normalize_permission_id(permission_id) in self._permissions

    def restore(self, permissions: Iterable[Permission]) -> None:
        with self.lock:
            self._permissions = {p.id: p for p in permissions}

    def register(self, permission: Permission) -> str:
        with self.lock:
            if permission.id in self._permissions:
                raise DuplicateResourceAction(permission.resource, permission.action)
            self._store.save_permission(permission)
            self._permissions[permission.id] = permission
        log.debug("Registered permission %s", permission.id)
        return permission.id

    def get(self, permission_id: str) -> Permission:
        with self.lock:
            permission = self._permissions.get(normalize_permission_id(permission_id))
        if permission is None:
            raise PermissionNotFound(permission_id)
        return permission

    def find(self, permission_id: str) -> Optional[Permission]:
        with self.lock:
            return self._permissions.get(normalize_permission_id(permission_id))

    def list(
        self,
        resource: Optional[str] = None,
        category: Optional[PermissionCategory] = None,
        scope: Optional[PermissionScope] = None,
    ) -> List[Permission]:
        with self.lock:
            permissions = list(self._permissions.values())

        if resource is not None:
            resource = resource.lower()
            permissions = [p for p in permissions if p.resource == resource]
        if category is not None:
            permissions = [p for p in permissions if p.category == category]
        if scope is not None:
            permissions = [p for p in permissions if p.scope == scope]
        return permissions

    def by_category(self) -> Dict[str, List[Permission]]:
        grouped: Dict[str, List[Permission]] = defaultdict(list)
        for permission in self.list():
            grouped[permission.category.value].append(permission)
        return dict(grouped)

    def deactivate(self, permission_id: str) -> Permission:
        with self.lock:
            permission = self.get(permission_id)
            if not permission.is_active:
                return permission
            permission = permission.model_copy(update={"is_active": False, "updated_at": utcnow()})
            self._store.save_permission(permission)
            self._permissions[permission.id] = permission
        log.info("Deactivated permission %s", permission.id)
        return permission

    def require_all(self, permission_ids: Iterable[str]) -> None:
        """Raise UnknownPermission naming every id not in the catalog."""
        with self.lock:
            missing = {pid for pid in permission_ids if normalize_permission_id(pid) not in self._permissions}
        if missing:
            raise UnknownPermission(missing)

    def active_match(self, permission_ids: Iterable[str], resource: str, action: str) -> List[Permission]:
        """Active permissions among `permission_ids` for this resource and action."""
        with self.lock:
            candidates = [self._permissions.get(normalize_permission_id(pid)) for pid in permission_ids]
        resource, action = resource.lower(), action.lower()
        return [
            p for p in candidates
            if p is not None and p.is_active and p.resource == resource and p.action == action
        ]
