"""
Static default catalog: system permissions, system roles and role templates.

Loaded into an empty store at startup (SEED_DEFAULTS) or by
scripts/seed_access.py.
"""
from typing import Callable, List, NamedTuple, Tuple

from app.features.access.domain import (
    Permission,
    PermissionCategory as C,
    PermissionScope as S,
    Role,
    RoleRestrictions,
    RoleTemplate,
    RoleType,
    permission_key,
)


class PermissionSpec(NamedTuple):
    resource: str
    action: str
    scope: S
    category: C
    name: str
    description: str


class RoleSpec(NamedTuple):
    name: str
    description: str
    level: int
    restrictions: RoleRestrictions
    includes: Callable[[Permission], bool]


class TemplateSpec(NamedTuple):
    name: str
    description: str
    category: str
    permission_ids: Tuple[str, ...]
    is_default: bool = True
    church_types: Tuple[str, ...] = ()


DEFAULT_PERMISSIONS: Tuple[PermissionSpec, ...] = (
    # People
    PermissionSpec("people", "read", S.GLOBAL, C.CORE, "View People", "View member profiles and information"),
    PermissionSpec("people", "create", S.GLOBAL, C.CORE, "Create People", "Add new members to the system"),
    PermissionSpec("people", "update", S.GLOBAL, C.CORE, "Edit People", "Modify member information"),
    PermissionSpec("people", "delete", S.GLOBAL, C.ADMIN, "Delete People", "Remove members from the system"),

    # Churches
    PermissionSpec("churches", "read", S.GLOBAL, C.CORE, "View Churches", "View church information"),
    PermissionSpec("churches", "manage", S.GLOBAL, C.ADMIN, "Manage Churches", "Create and modify church information"),

    # Events
    PermissionSpec("events", "view", S.CHURCH, C.MINISTRY, "View Events", "View event information"),
    PermissionSpec("events", "create", S.CHURCH, C.MINISTRY, "Create Events", "Create new events"),
    PermissionSpec("events", "update", S.CHURCH, C.MINISTRY, "Update Events", "Update event information"),
    PermissionSpec("events", "delete", S.CHURCH, C.ADMIN, "Delete Events", "Delete events"),
    PermissionSpec("events", "manage_registrations", S.CHURCH, C.MINISTRY, "Manage Event Registrations",
                   "Manage event registrations and attendees"),
    PermissionSpec("events", "record_attendance", S.CHURCH, C.MINISTRY, "Record Event Attendance",
                   "Record and manage event attendance"),
    PermissionSpec("events", "view_analytics", S.CHURCH, C.MINISTRY, "View Event Analytics",
                   "View event analytics and reports"),

    # Reports
    PermissionSpec("reports", "read", S.CHURCH, C.CORE, "View Reports", "Access basic reports"),
    PermissionSpec("reports", "manage", S.GLOBAL, C.ADMIN, "Advanced Reports", "Access advanced analytics and reports"),

    # Financial
    PermissionSpec("financial", "read", S.CHURCH, C.FINANCIAL, "View Financial", "View financial information"),
    PermissionSpec("financial", "manage", S.GLOBAL, C.FINANCIAL, "Manage Financial", "Full financial management"),

    # Resources
    PermissionSpec("resources", "view", S.CHURCH, C.MINISTRY, "View Resources", "View resource information"),
    PermissionSpec("resources", "create", S.CHURCH, C.MINISTRY, "Create Resources", "Create new resources"),
    PermissionSpec("resources", "update", S.CHURCH, C.MINISTRY, "Update Resources", "Update resource information"),
    PermissionSpec("resources", "delete", S.CHURCH, C.ADMIN, "Delete Resources", "Delete resources"),
    PermissionSpec("resources", "book", S.CHURCH, C.MINISTRY, "Manage Resource Bookings",
                   "Manage resource bookings and schedules"),
    PermissionSpec("resources", "maintain", S.CHURCH, C.ADMIN, "Manage Resource Maintenance",
                   "Manage resource maintenance and repairs"),

    # Groups
    PermissionSpec("groups", "view", S.CHURCH, C.MINISTRY, "View Groups", "View group information"),
    PermissionSpec("groups", "create", S.CHURCH, C.MINISTRY, "Create Groups", "Create new groups"),
    PermissionSpec("groups", "update", S.CHURCH, C.MINISTRY, "Update Groups", "Update group information"),
    PermissionSpec("groups", "delete", S.CHURCH, C.ADMIN, "Delete Groups", "Delete groups"),
    PermissionSpec("groups", "manage_members", S.CHURCH, C.MINISTRY, "Manage Group Members",
                   "Add and remove group members"),

    # Messages
    PermissionSpec("messages", "view", S.CHURCH, C.MINISTRY, "View Messages", "View messages and conversations"),
    PermissionSpec("messages", "create", S.CHURCH, C.MINISTRY, "Create Messages",
                   "Send messages and start conversations"),
    PermissionSpec("messages", "update", S.CHURCH, C.MINISTRY, "Update Messages", "Edit and manage messages"),
    PermissionSpec("messages", "delete", S.CHURCH, C.ADMIN, "Delete Messages", "Delete messages and conversations"),

    # Notifications
    PermissionSpec("notifications", "view", S.CHURCH, C.MINISTRY, "View Notifications", "View notifications"),
    PermissionSpec("notifications", "create", S.CHURCH, C.MINISTRY, "Create Notifications",
                   "Send notifications to users"),
    PermissionSpec("notifications", "update", S.CHURCH, C.MINISTRY, "Update Notifications",
                   "Update notification preferences"),
    PermissionSpec("notifications", "manage", S.GLOBAL, C.ADMIN, "Manage Notifications",
                   "Full notification system management"),

    # Campaigns
    PermissionSpec("campaigns", "view", S.CHURCH, C.MINISTRY, "View Campaigns", "View email and SMS campaigns"),
    PermissionSpec("campaigns", "create", S.CHURCH, C.MINISTRY, "Create Campaigns", "Create email and SMS campaigns"),
    PermissionSpec("campaigns", "send", S.CHURCH, C.MINISTRY, "Send Campaigns", "Send and schedule campaigns"),
    PermissionSpec("campaigns", "update", S.CHURCH, C.MINISTRY, "Update Campaigns", "Update campaign information"),
    PermissionSpec("campaigns", "delete", S.CHURCH, C.ADMIN, "Delete Campaigns", "Delete campaigns"),
    PermissionSpec("campaigns", "view_analytics", S.CHURCH, C.MINISTRY, "View Campaign Analytics",
                   "View campaign performance analytics"),

    # Communication templates
    PermissionSpec("templates", "view", S.CHURCH, C.MINISTRY, "View Templates", "View communication templates"),
    PermissionSpec("templates", "create", S.CHURCH, C.MINISTRY, "Create Templates", "Create communication templates"),
    PermissionSpec("templates", "update", S.CHURCH, C.MINISTRY, "Update Templates", "Update communication templates"),
    PermissionSpec("templates", "delete", S.CHURCH, C.ADMIN, "Delete Templates", "Delete communication templates"),

    # Profile
    PermissionSpec("profile", "read", S.SELF, C.CORE, "View Own Profile", "View your own member profile"),
    PermissionSpec("profile", "update", S.SELF, C.CORE, "Edit Own Profile", "Update your own member profile"),

    # System administration
    PermissionSpec("users", "manage", S.GLOBAL, C.ADMIN, "User Management", "Manage user accounts and roles"),
    PermissionSpec("system", "manage", S.GLOBAL, C.ADMIN, "System Settings", "Modify system configuration"),
)


SUPER_ADMINISTRATOR = "Super Administrator"

SYSTEM_ROLES: Tuple[RoleSpec, ...] = (
    RoleSpec(
        SUPER_ADMINISTRATOR, "Full system access with all permissions", 10,
        RoleRestrictions(),
        lambda p: True,
    ),
    RoleSpec(
        "Church Administrator", "Full church management access", 8,
        RoleRestrictions(church_specific=True),
        lambda p: p.category in (C.ADMIN, C.CORE, C.MINISTRY),
    ),
    RoleSpec(
        "Pastor", "Church leadership with ministry permissions", 7,
        RoleRestrictions(church_specific=True),
        lambda p: p.category in (C.CORE, C.MINISTRY) or (p.category == C.FINANCIAL and p.action == "read"),
    ),
    RoleSpec(
        "Ministry Leader", "Team and event management permissions", 5,
        RoleRestrictions(church_specific=True),
        lambda p: p.category in (C.CORE, C.MINISTRY) and p.resource != "financial",
    ),
    RoleSpec(
        "Member", "Basic member access permissions", 2,
        RoleRestrictions(),
        lambda p: p.category == C.CORE and (p.action == "read" or p.scope == S.SELF),
    ),
    RoleSpec(
        "Guest", "Limited read-only access", 1,
        RoleRestrictions(),
        lambda p: p.resource == "events" and p.action in ("read", "view"),
    ),
)


DEFAULT_TEMPLATES: Tuple[TemplateSpec, ...] = (
    TemplateSpec(
        "Worship Team Leader", "Plans services and coordinates the worship team", "ministry",
        (
            permission_key("events", "view"), permission_key("events", "create"),
            permission_key("events", "update"), permission_key("resources", "view"),
            permission_key("resources", "book"), permission_key("groups", "view"),
            permission_key("groups", "manage_members"), permission_key("messages", "create"),
        ),
    ),
    TemplateSpec(
        "Youth Ministry Leader", "Runs youth groups and events", "ministry",
        (
            permission_key("people", "read"), permission_key("events", "view"),
            permission_key("events", "create"), permission_key("events", "record_attendance"),
            permission_key("groups", "view"), permission_key("groups", "create"),
            permission_key("groups", "manage_members"), permission_key("notifications", "create"),
        ),
    ),
    TemplateSpec(
        "Finance Team", "Records and reviews church finances", "financial",
        (
            permission_key("financial", "read"), permission_key("reports", "read"),
            permission_key("people", "read"),
        ),
    ),
    TemplateSpec(
        "Communications Coordinator", "Manages campaigns, messages and templates", "ministry",
        (
            permission_key("campaigns", "view"), permission_key("campaigns", "create"),
            permission_key("campaigns", "send"), permission_key("campaigns", "view_analytics"),
            permission_key("templates", "view"), permission_key("templates", "create"),
            permission_key("templates", "update"), permission_key("messages", "view"),
            permission_key("messages", "create"), permission_key("notifications", "create"),
        ),
    ),
)


def default_permissions() -> List[Permission]:
    return [
        Permission(
            resource=spec.resource,
            action=spec.action,
            name=spec.name,
            description=spec.description,
            scope=spec.scope,
            category=spec.category,
        )
        for spec in DEFAULT_PERMISSIONS
    ]


def system_roles(permissions: List[Permission]) -> List[Role]:
    return [
        Role(
            name=spec.name,
            description=spec.description,
            level=spec.level,
            type=RoleType.SYSTEM,
            permission_ids=[p.id for p in permissions if spec.includes(p)],
            restrictions=spec.restrictions,
            created_by="system",
        )
        for spec in SYSTEM_ROLES
    ]


def default_templates() -> List[RoleTemplate]:
    return [
        RoleTemplate(
            name=spec.name,
            description=spec.description,
            category=spec.category,
            permission_ids=spec.permission_ids,
            is_default=spec.is_default,
            church_types=spec.church_types,
        )
        for spec in DEFAULT_TEMPLATES
    ]
