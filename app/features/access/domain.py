"""
Domain entities for church access control.

Entities are frozen pydantic models. Registries replace an entity on every
write instead of mutating it, so a reader holding a Role or Assignment never
observes a half-applied edit.
"""
import enum
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def permission_key(resource: str, action: str) -> str:
    """Permissions are identified by their lowercased (resource, action) pair."""
    return f"{resource.lower()}:{action.lower()}"


def normalize_permission_id(permission_id: str) -> str:
    return permission_id.lower()


class PermissionScope(str, enum.Enum):
    GLOBAL = "global"
    CHURCH = "church"
    TEAM = "team"
    SELF = "self"


class PermissionCategory(str, enum.Enum):
    CORE = "core"
    ADMIN = "admin"
    MINISTRY = "ministry"
    FINANCIAL = "financial"


class RoleType(str, enum.Enum):
    SYSTEM = "system"
    CUSTOM = "custom"


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AuditKind(str, enum.Enum):
    DECISION = "decision"
    MUTATION = "mutation"


class Entity(BaseModel):
    model_config = ConfigDict(frozen=True)


def _dedupe(ids) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(normalize_permission_id(i) for i in ids))


# ============================================================================
# Permissions and roles
# ============================================================================

class Permission(Entity):
    """
    A fine-grained capability: an action on a resource, limited to a scope.

    Examples:
    - resource="events", action="create", scope=church
    - resource="system", action="manage", scope=global
    """
    resource: str = Field(..., min_length=1, max_length=100)
    action: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    scope: PermissionScope = PermissionScope.GLOBAL
    category: PermissionCategory = PermissionCategory.CORE
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("resource", "action")
    @classmethod
    def normalize_key(cls, v: str) -> str:
        if ":" in v:
            raise ValueError("must not contain ':'")
        return v.lower()

    @computed_field
    @property
    def id(self) -> str:
        return permission_key(self.resource, self.action)


class RoleRestrictions(Entity):
    max_assignees: Optional[int] = Field(None, ge=1)
    church_specific: bool = False
    requires_approval: bool = False


class Role(Entity):
    """
    A named bundle of permissions.

    `level` orders roles for display; it never grants anything by itself.
    Permission ids form an ordered set: duplicates collapse on construction.
    """
    id: str = Field(default_factory=generate_ulid)
    name: str = Field(..., min_length=1, max_length=50)
    description: str = ""
    level: int = Field(1, ge=0, le=100)
    type: RoleType = RoleType.CUSTOM
    permission_ids: Tuple[str, ...] = ()
    restrictions: RoleRestrictions = Field(default_factory=RoleRestrictions)
    is_active: bool = True
    created_by: str = "system"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("permission_ids", mode="before")
    @classmethod
    def collapse_duplicates(cls, v):
        return _dedupe(v or ())

    @property
    def is_system(self) -> bool:
        return self.type == RoleType.SYSTEM

    def grants(self, permission_id: str) -> bool:
        return normalize_permission_id(permission_id) in self.permission_ids


class RoleTemplate(Entity):
    """Starting point for a custom role."""
    id: str = Field(default_factory=generate_ulid)
    name: str = Field(..., min_length=1, max_length=50)
    description: str = ""
    category: str = "general"
    permission_ids: Tuple[str, ...] = ()
    is_default: bool = False
    church_types: Tuple[str, ...] = ()
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("permission_ids", mode="before")
    @classmethod
    def collapse_duplicates(cls, v):
        return _dedupe(v or ())


# ============================================================================
# Assignments
# ============================================================================

class AssignmentScope(Entity):
    """Where an assignment applies. Empty sets mean "not limited on this axis"."""
    church_ids: FrozenSet[str] = frozenset()
    team_ids: FrozenSet[str] = frozenset()
    group_ids: FrozenSet[str] = frozenset()

    @field_validator("church_ids", "team_ids", "group_ids")
    @classmethod
    def non_blank_ids(cls, v: FrozenSet[str]) -> FrozenSet[str]:
        if any(not i or not i.strip() for i in v):
            raise ValueError("scope ids must be non-empty strings")
        return v

    def is_empty(self) -> bool:
        return not (self.church_ids or self.team_ids or self.group_ids)


class Assignment(Entity):
    id: str = Field(default_factory=generate_ulid)
    user_id: str
    role_id: str
    assigned_by: str
    assigned_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    scope: Optional[AssignmentScope] = None
    is_active: bool = True
    revoked_by: Optional[str] = None
    revoked_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def is_effective(self, at: datetime) -> bool:
        """Active and not yet expired at the given instant."""
        return self.is_active and (self.expires_at is None or self.expires_at > at)

    def covers_church(self, church_id: str) -> bool:
        return self.scope is not None and church_id in self.scope.church_ids

    def covers_team(self, team_id: str) -> bool:
        return self.scope is not None and team_id in self.scope.team_ids


# ============================================================================
# Requests and audit
# ============================================================================

class RoleRequest(Entity):
    id: str = Field(default_factory=generate_ulid)
    user_id: str
    requested_role_id: str
    requested_by: str
    reason: str = ""
    status: RequestStatus = RequestStatus.PENDING
    requested_at: datetime = Field(default_factory=utcnow)
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    expires_at: Optional[datetime] = None
    scope: Optional[AssignmentScope] = None

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING


class AuditEntry(Entity):
    """
    One access decision or administrative mutation.

    `sequence` is assigned by the audit log and breaks timestamp ties when
    ordering newest first.
    """
    id: str = Field(default_factory=generate_ulid)
    user_id: str
    action: str
    resource: str
    resource_id: Optional[str] = None
    permission_id: str = ""
    granted: bool
    reason: Optional[str] = None
    kind: AuditKind = AuditKind.DECISION
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
    sequence: int = 0


# ============================================================================
# Decision inputs and outputs
# ============================================================================

class ScopeContext(Entity):
    church_id: Optional[str] = None
    team_id: Optional[str] = None


class Decision(NamedTuple):
    granted: bool
    permission_id: str = ""

    def __bool__(self) -> bool:
        return self.granted
