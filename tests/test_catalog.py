# tests/test_catalog.py

"""
Tests for the permission catalog.
"""

import pytest

from app.features.access.catalog import PermissionCatalog
from app.features.access.domain import Permission, PermissionCategory, PermissionScope
from app.features.access.errors import DuplicateResourceAction, PermissionNotFound, UnknownPermission


def make_permission(resource="events", action="view", **kwargs) -> Permission:
    kwargs.setdefault("name", f"{action} {resource}")
    return Permission(resource=resource, action=action, **kwargs)


def test_register_returns_resource_action_id():
    catalog = PermissionCatalog()
    assert catalog.register(make_permission()) == "events:view"
    assert "events:view" in catalog
    assert len(catalog) == 1


def test_resource_and_action_are_lowercased():
    permission = make_permission(resource="Events", action="View")
    assert permission.id == "events:view"


def test_lookups_ignore_case():
    catalog = PermissionCatalog()
    catalog.register(make_permission(resource="Events", action="Create"))

    assert "Events:Create" in catalog
    assert catalog.get("Events:Create").id == "events:create"
    assert [p.id for p in catalog.list(resource="Events")] == ["events:create"]
    assert catalog.deactivate("EVENTS:CREATE").is_active is False
    catalog.require_all(["Events:Create"])


def test_colon_in_action_is_rejected():
    with pytest.raises(ValueError):
        make_permission(action="view:all")


def test_duplicate_resource_action_is_rejected():
    catalog = PermissionCatalog()
    catalog.register(make_permission(scope=PermissionScope.CHURCH))

    with pytest.raises(DuplicateResourceAction):
        catalog.register(make_permission(name="Another name", scope=PermissionScope.GLOBAL))

    assert len(catalog) == 1
    assert catalog.get("events:view").scope == PermissionScope.CHURCH


def test_get_unknown_permission():
    with pytest.raises(PermissionNotFound):
        PermissionCatalog().get("nothing:here")


def test_list_filters():
    catalog = PermissionCatalog()
    catalog.register(make_permission("events", "view", scope=PermissionScope.CHURCH, category=PermissionCategory.MINISTRY))
    catalog.register(make_permission("events", "delete", scope=PermissionScope.CHURCH, category=PermissionCategory.ADMIN))
    catalog.register(make_permission("system", "manage", category=PermissionCategory.ADMIN))

    assert {p.id for p in catalog.list(resource="events")} == {"events:view", "events:delete"}
    assert {p.id for p in catalog.list(category=PermissionCategory.ADMIN)} == {"events:delete", "system:manage"}
    assert [p.id for p in catalog.list(scope=PermissionScope.GLOBAL)] == ["system:manage"]

    grouped = catalog.by_category()
    assert set(grouped) == {"ministry", "admin"}
    assert len(grouped["admin"]) == 2


def test_deactivate_keeps_entry_and_is_idempotent():
    catalog = PermissionCatalog()
    catalog.register(make_permission())

    first = catalog.deactivate("events:view")
    second = catalog.deactivate("events:view")

    assert first.is_active is False
    assert second == first
    assert "events:view" in catalog
    assert catalog.active_match(["events:view"], "events", "view") == []


def test_require_all_names_every_missing_id():
    catalog = PermissionCatalog()
    catalog.register(make_permission())

    with pytest.raises(UnknownPermission) as exc_info:
        catalog.require_all(["events:view", "b:x", "a:y"])

    assert exc_info.value.permission_ids == ["a:y", "b:x"]


def test_default_catalog_has_no_duplicates(service):
    ids = [p.id for p in service.list_permissions()]
    assert len(ids) == len(set(ids))
    assert "users:manage" in ids
    assert service.get_permission("profile:update").scope == PermissionScope.SELF
