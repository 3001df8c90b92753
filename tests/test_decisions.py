# tests/test_decisions.py

"""
Tests for permission decisions and scope matching.
"""

from datetime import datetime, timedelta, timezone

from app.features.access.decisions import DENY_REASON
from app.features.access.domain import (
    AssignmentScope,
    AuditKind,
    Decision,
    Permission,
    PermissionCategory,
    PermissionScope,
    Role,
)


def test_church_scoped_permission(bare_service, church_permission):
    pastor = bare_service.create_role(Role(name="Pastor", level=7, permission_ids=[church_permission.id]))
    bare_service.assign_role("user-1", pastor.id, "admin", scope=AssignmentScope(church_ids={"church1"}))

    decision = bare_service.has_permission("user-1", "events", "create", church_id="church1")
    assert decision.granted is True
    assert decision.permission_id == church_permission.id

    decision = bare_service.has_permission("user-1", "events", "create", church_id="church2")
    assert decision.granted is False
    assert decision.permission_id == ""

    # No church in the request context
    assert not bare_service.has_permission("user-1", "events", "create")


def test_church_permission_without_scoped_assignment(bare_service, church_permission):
    role = bare_service.create_role(Role(name="Helper", permission_ids=[church_permission.id]))
    bare_service.assign_role("user-1", role.id, "admin")
    assert not bare_service.has_permission("user-1", "events", "create", church_id="church1")


def test_team_scoped_permission(bare_service):
    permission = Permission(resource="groups", action="manage_members", name="Manage Members",
                            scope=PermissionScope.TEAM, category=PermissionCategory.MINISTRY)
    bare_service.register_permission(permission)
    role = bare_service.create_role(Role(name="Team Lead", permission_ids=[permission.id]))
    bare_service.assign_role("user-1", role.id, "admin", scope=AssignmentScope(team_ids={"team1"}))

    assert bare_service.has_permission("user-1", "groups", "manage_members", team_id="team1")
    assert not bare_service.has_permission("user-1", "groups", "manage_members", team_id="team2")
    assert not bare_service.has_permission("user-1", "groups", "manage_members", church_id="team1")


def test_self_and_global_scopes_ignore_context(bare_service, global_permission):
    profile = Permission(resource="profile", action="update", name="Edit Own Profile", scope=PermissionScope.SELF)
    bare_service.register_permission(profile)
    role = bare_service.create_role(Role(name="Member", permission_ids=[profile.id, global_permission.id]))
    bare_service.assign_role("user-1", role.id, "admin")

    checks = [("profile", "update", profile.id), ("people", "read", global_permission.id)]
    for resource, action, permission_id in checks:
        expected = Decision(True, permission_id)
        assert bare_service.has_permission("user-1", resource, action) == expected
        assert bare_service.has_permission("user-1", resource, action, church_id="anywhere") == expected
        assert bare_service.has_permission("user-1", resource, action, team_id="team1") == expected
        assert bare_service.has_permission("user-1", resource, action, church_id="c", team_id="t") == expected


def test_scope_belongs_to_the_role_holding_the_permission(bare_service, church_permission, global_permission):
    creator = bare_service.create_role(Role(name="Creator", permission_ids=[church_permission.id]))
    reader = bare_service.create_role(Role(name="Reader", permission_ids=[global_permission.id]))
    bare_service.assign_role("user-1", creator.id, "admin")
    bare_service.assign_role("user-1", reader.id, "admin", scope=AssignmentScope(church_ids={"church1"}))

    assert not bare_service.has_permission("user-1", "events", "create", church_id="church1")


def test_roles_combine_with_or(bare_service, church_permission, global_permission):
    a = bare_service.create_role(Role(name="A", permission_ids=[global_permission.id]))
    b = bare_service.create_role(Role(name="B", permission_ids=[church_permission.id]))
    bare_service.assign_role("user-1", a.id, "admin")
    bare_service.assign_role("user-1", b.id, "admin", scope=AssignmentScope(church_ids={"church1"}))

    assert bare_service.has_permission("user-1", "people", "read")
    assert bare_service.has_permission("user-1", "events", "create", church_id="church1")


def test_expired_assignment_denies(bare_service, custom_role, global_permission):
    bare_service.assign_role(
        "user-1", custom_role.id, "admin", expires_at=datetime.now(timezone.utc) - timedelta(hours=1)
    )
    assert not bare_service.has_permission("user-1", "people", "read")


def test_inactive_role_grants_nothing(bare_service, custom_role):
    bare_service.assign_role("user-1", custom_role.id, "admin")
    bare_service.update_role(custom_role.id, {"is_active": False}, updated_by="admin")

    assert not bare_service.has_permission("user-1", "people", "read")

    bare_service.update_role(custom_role.id, {"is_active": True}, updated_by="admin")
    assert bare_service.has_permission("user-1", "people", "read")


def test_deactivated_permission_grants_nothing(bare_service, custom_role, global_permission):
    bare_service.assign_role("user-1", custom_role.id, "admin")
    bare_service.deactivate_permission(global_permission.id)

    assert not bare_service.has_permission("user-1", "people", "read")
    assert bare_service.get_role(custom_role.id).permission_ids == (global_permission.id,)


def test_level_does_not_inherit_permissions(bare_service, global_permission):
    high = bare_service.create_role(Role(name="High", level=9))
    bare_service.create_role(Role(name="Low", level=2, permission_ids=[global_permission.id]))
    bare_service.assign_role("user-1", high.id, "admin")

    assert not bare_service.has_permission("user-1", "people", "read")


def test_unknown_user_is_denied(service):
    assert not service.has_permission("nobody", "people", "read")


def test_every_decision_is_audited(bare_service, custom_role):
    bare_service.assign_role("user-1", custom_role.id, "admin")

    bare_service.has_permission("user-1", "people", "read", resource_id="person-7")
    bare_service.has_permission("user-1", "people", "delete", church_id="church1")

    entries = bare_service.query_audit_log(kind=AuditKind.DECISION)
    assert len(entries) == 2
    denied, granted = entries
    assert denied.granted is False
    assert denied.reason == DENY_REASON
    assert denied.details == {"church_id": "church1"}
    assert granted.granted is True
    assert granted.permission_id == "people:read"
    assert granted.resource_id == "person-7"
    assert granted.reason is None


def test_evaluate_does_not_audit(bare_service, custom_role):
    bare_service.assign_role("user-1", custom_role.id, "admin")
    before = len(bare_service.audit)
    assert bare_service.engine.evaluate("user-1", "people", "read")
    assert len(bare_service.audit) == before


def test_system_roles_from_defaults(service):
    pastor = service.roles.find_by_name("Pastor")
    member = service.roles.find_by_name("Member")
    service.assign_role("pastor-1", pastor.id, "admin", scope=AssignmentScope(church_ids={"church1"}))
    service.assign_role("member-1", member.id, "admin")

    assert service.has_permission("pastor-1", "events", "create", church_id="church1")
    assert service.has_permission("pastor-1", "financial", "read", church_id="church1")
    assert not service.has_permission("pastor-1", "financial", "manage")
    assert not service.has_permission("pastor-1", "users", "manage")

    assert service.has_permission("member-1", "people", "read")
    assert service.has_permission("member-1", "profile", "update")
    assert not service.has_permission("member-1", "people", "update")


def test_bootstrap_admin_manages_users(service):
    service.bootstrap_admin("root")
    assert service.bootstrap_admin("root") is None
    assert service.has_permission("root", "users", "manage")
    assert service.has_permission("root", "system", "manage")
    assert service.user_level("root") == 10


def test_mixed_case_checks_match_registered_permission(bare_service):
    permission = Permission(resource="Events", action="Create", name="Create Events")
    bare_service.register_permission(permission)
    role = bare_service.create_role(Role(name="Planner", permission_ids=["Events:Create"]))
    bare_service.assign_role("user-1", role.id, "admin")

    assert bare_service.has_permission("user-1", "Events", "Create") == Decision(True, "events:create")
    assert bare_service.has_permission("user-1", "events", "CREATE")
    assert bare_service.get_permission("Events:Create") == permission
    assert role.grants("Events:Create")
