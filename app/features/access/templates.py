"""
Role templates: reusable permission sets for creating custom roles.
"""
import threading
from typing import Dict, Iterable, List, Optional

from app.features.access.domain import Role, RoleTemplate, RoleType, normalize_permission_id
from app.features.access.errors import TemplateNotFound
from app.features.access.roles import RoleRegistry
from app.features.access.store import AccessStore, NullStore
from app.utils import get_logger


log = get_logger(__name__)

# Level given to roles created from a template
TEMPLATE_ROLE_LEVEL = 5


class TemplateLibrary:
    def __init__(self, roles: RoleRegistry, store: Optional[AccessStore] = None):
        self.lock = threading.RLock()
        self._roles = roles
        self._store = store or NullStore()
        self._templates: Dict[str, RoleTemplate] = {}

    def restore(self, templates: Iterable[RoleTemplate]) -> None:
        with self.lock:
            self._templates = {t.id: t for t in templates}

    def add(self, template: RoleTemplate) -> RoleTemplate:
        with self.lock:
            self._store.save_template(template)
            self._templates[template.id] = template
        return template

    def get(self, template_id: str) -> RoleTemplate:
        with self.lock:
            template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        return template

    def find_by_name(self, name: str) -> Optional[RoleTemplate]:
        with self.lock:
            return next((t for t in self._templates.values() if t.name == name), None)

    def list(self, church_type: Optional[str] = None) -> List[RoleTemplate]:
        with self.lock:
            templates = list(self._templates.values())
        if church_type is not None:
            templates = [t for t in templates if not t.church_types or church_type in t.church_types]
        return sorted(templates, key=lambda t: (not t.is_default, t.name))

    def instantiate(
        self,
        template_id: str,
        created_by: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        additional_permissions: Iterable[str] = (),
        removed_permissions: Iterable[str] = (),
    ) -> Role:
        """
        Create a custom role from a template, adding and then removing
        permission ids. Unknown ids fail the role creation.
        """
        template = self.get(template_id)
        removed = {normalize_permission_id(pid) for pid in removed_permissions}
        permission_ids = [
            pid for pid in (*template.permission_ids, *additional_permissions)
            if normalize_permission_id(pid) not in removed
        ]

        role = self._roles.create(Role(
            name=name or template.name,
            description=description or template.description,
            level=TEMPLATE_ROLE_LEVEL,
            type=RoleType.CUSTOM,
            permission_ids=permission_ids,
            created_by=created_by,
        ))
        log.info("Created role %r from template %r", role.name, template.name)
        return role
