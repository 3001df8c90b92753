"""
Pydantic schemas for access-control requests and responses.

Domain entities (Permission, Role, Assignment, ...) are returned as-is; the
schemas here cover request bodies and composite responses.
"""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

from app.features.access.domain import (
    Assignment,
    AssignmentScope,
    AuditEntry,
    PermissionCategory,
    PermissionScope,
    Role,
    RoleRestrictions,
)


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionCreate(BaseModel):
    """Schema for registering a new permission."""
    resource: str = Field(..., min_length=1, max_length=100, description="Resource (e.g., 'events', 'people')")
    action: str = Field(..., min_length=1, max_length=50, description="Action (e.g., 'view', 'create', 'manage')")
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=1000)
    scope: PermissionScope = PermissionScope.GLOBAL
    category: PermissionCategory = PermissionCategory.CORE

    @field_validator("resource", "action")
    @classmethod
    def key_format(cls, v: str) -> str:
        """Resources and actions are lowercase identifiers."""
        if not v.replace("_", "").isalnum():
            raise ValueError("must contain only alphanumeric characters and underscores")
        return v.lower()


# ============================================================================
# Role Schemas
# ============================================================================

class RoleCreate(BaseModel):
    """Schema for creating a custom role."""
    name: str = Field(..., min_length=1, max_length=50)
    description: str = Field("", max_length=1000)
    level: int = Field(1, ge=0, le=100, description="Display and sorting hint; grants nothing")
    permission_ids: List[str] = Field(default_factory=list, description="Permission ids ('resource:action')")
    restrictions: RoleRestrictions = Field(default_factory=RoleRestrictions)


class RoleUpdate(BaseModel):
    """Schema for patching a role. Only fields that are sent are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=1000)
    level: Optional[int] = Field(None, ge=0, le=100)
    permission_ids: Optional[List[str]] = None
    restrictions: Optional[RoleRestrictions] = None
    is_active: Optional[bool] = None


class RoleHierarchyNode(BaseModel):
    role: Role
    level: int
    children: List[Role] = []


class TemplateRoleCreate(BaseModel):
    """Schema for creating a role from a template."""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=1000)
    additional_permissions: List[str] = Field(default_factory=list)
    removed_permissions: List[str] = Field(default_factory=list)


# ============================================================================
# Assignment Schemas
# ============================================================================

class AssignRoleToUser(BaseModel):
    """Schema for assigning a role to a user."""
    user_id: str = Field(..., min_length=1, description="User ID")
    role_id: str = Field(..., min_length=1, description="Role ID")
    expires_at: Optional[datetime] = Field(None, description="When the grant lapses")
    scope: Optional[AssignmentScope] = Field(None, description="Churches, teams and groups the grant covers")


class UserRolesResponse(BaseModel):
    """Roles a user holds and the assignments backing them."""
    user_id: str
    level: int
    roles: List[Role] = []
    assignments: List[Assignment] = []


class ExpireAssignmentsResponse(BaseModel):
    expired: List[Assignment] = []
    count: int = 0


# ============================================================================
# Role Request Schemas
# ============================================================================

class RoleRequestCreate(BaseModel):
    """Schema for requesting a role. `user_id` defaults to the requester."""
    role_id: str = Field(..., min_length=1)
    user_id: Optional[str] = Field(None, min_length=1)
    reason: str = Field("", max_length=2000)
    expires_at: Optional[datetime] = None
    scope: Optional[AssignmentScope] = None


class RoleRequestReview(BaseModel):
    decision: Literal["approved", "rejected"]
    notes: Optional[str] = Field(None, max_length=2000)


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking if a user has a permission."""
    resource: str = Field(..., description="Resource")
    action: str = Field(..., description="Action")
    church_id: Optional[str] = Field(None, description="Church the action targets")
    team_id: Optional[str] = Field(None, description="Team the action targets")
    resource_id: Optional[str] = Field(None, description="Specific record, recorded in the audit log")
    user_id: Optional[str] = Field(None, description="User to check (defaults to the caller)")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    has_permission: bool
    permission_id: str = ""
    reason: Optional[str] = None


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditEntry]
    total: int
    page: int
    page_size: int
    pages: int
