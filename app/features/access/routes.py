"""
Access control API routes.

Provides endpoints for the permission catalog, roles and templates, role
assignments, role requests, permission checks and the audit log. Core errors
(AccessControlError) are turned into JSON responses by the handler in
app.main.
"""
from datetime import datetime
from typing import Annotated, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from app.core import config
from app.core.limiter import limiter
from app.features.access.dependencies import (
    ensure_self_or_permission,
    get_access_service,
    require_permission,
)
from app.features.access.domain import (
    Assignment,
    AuditEntry,
    AuditKind,
    Permission,
    PermissionCategory,
    PermissionScope,
    RequestStatus,
    Role,
    RoleRequest,
    RoleTemplate,
    RoleType,
)
from app.features.access.schemas import (
    AssignRoleToUser,
    AuditLogListResponse,
    ExpireAssignmentsResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionCreate,
    RoleCreate,
    RoleHierarchyNode,
    RoleRequestCreate,
    RoleRequestReview,
    RoleUpdate,
    TemplateRoleCreate,
    UserRolesResponse,
)
from app.features.access.decisions import DENY_REASON
from app.features.access.service import AccessControlService
from app.features.users.dependencies import get_current_user
from app.features.users.schemas import CurrentUser
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

Service = Annotated[AccessControlService, Depends(get_access_service)]
Authenticated = Annotated[CurrentUser, Depends(get_current_user)]
UserManager = Annotated[CurrentUser, Depends(require_permission("users", "manage"))]
SystemManager = Annotated[CurrentUser, Depends(require_permission("system", "manage"))]


# ============================================================================
# Permission Check
# ============================================================================

@router.post("/check", response_model=PermissionCheckResponse)
@limiter.limit(config.RATE_LIMIT)
def check_permission(
    request: Request,
    check_request: PermissionCheckRequest,
    service: Service,
    current_user: Authenticated,
):
    """Check whether a user (the caller by default) may perform an action."""
    user_id = ensure_self_or_permission(service, current_user, check_request.user_id)
    decision = service.has_permission(
        user_id,
        check_request.resource,
        check_request.action,
        church_id=check_request.church_id,
        team_id=check_request.team_id,
        resource_id=check_request.resource_id,
    )
    return PermissionCheckResponse(
        has_permission=decision.granted,
        permission_id=decision.permission_id,
        reason=None if decision.granted else DENY_REASON,
    )


# ============================================================================
# Permission Routes
# ============================================================================

@router.get("/permissions", response_model=List[Permission])
def list_permissions(
    service: Service,
    current_user: Authenticated,
    resource: Optional[str] = None,
    category: Optional[PermissionCategory] = None,
    scope: Optional[PermissionScope] = None,
):
    """List permissions with optional filtering."""
    return service.list_permissions(resource=resource, category=category, scope=scope)


@router.get("/permissions/by-category", response_model=Dict[str, List[Permission]])
def list_permissions_by_category(service: Service, current_user: Authenticated):
    """Permissions grouped by category."""
    return service.permissions_by_category()


@router.get("/permissions/{permission_id}", response_model=Permission)
def get_permission(permission_id: str, service: Service, current_user: Authenticated):
    """Get a specific permission by id ('resource:action')."""
    return service.get_permission(permission_id)


@router.post("/permissions", response_model=Permission, status_code=status.HTTP_201_CREATED)
def create_permission(permission: PermissionCreate, service: Service, current_user: SystemManager):
    """Register a new permission."""
    return service.register_permission(Permission(**permission.model_dump()), registered_by=current_user.id)


@router.post("/permissions/{permission_id}/deactivate", response_model=Permission)
def deactivate_permission(permission_id: str, service: Service, current_user: SystemManager):
    """Deactivate a permission. Roles keep referencing it but stop granting it."""
    return service.deactivate_permission(permission_id, deactivated_by=current_user.id)


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles", response_model=List[Role])
def list_roles(service: Service, current_user: Authenticated, include_inactive: bool = False):
    """List roles, highest level first."""
    return service.list_roles(include_inactive=include_inactive)


@router.get("/roles/hierarchy", response_model=List[RoleHierarchyNode])
def get_role_hierarchy(service: Service, current_user: Authenticated):
    """Active roles by level, each with the roles below it."""
    return [
        RoleHierarchyNode(role=node.role, level=node.role.level, children=node.children)
        for node in service.role_hierarchy()
    ]


@router.get("/roles/{role_id}", response_model=Role)
def get_role(role_id: str, service: Service, current_user: Authenticated):
    """Get a specific role."""
    return service.get_role(role_id)


@router.post("/roles", response_model=Role, status_code=status.HTTP_201_CREATED)
def create_role(role: RoleCreate, service: Service, current_user: UserManager):
    """Create a custom role."""
    return service.create_role(Role(
        **role.model_dump(),
        type=RoleType.CUSTOM,
        created_by=current_user.id,
    ))


@router.put("/roles/{role_id}", response_model=Role)
def update_role(role_id: str, role_update: RoleUpdate, service: Service, current_user: UserManager):
    """Update a role. System roles only accept is_active."""
    changes = role_update.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    return service.update_role(role_id, changes, updated_by=current_user.id)


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_role(role_id: str, service: Service, current_user: UserManager):
    """Delete a custom role nobody holds."""
    service.delete_role(role_id, deleted_by=current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Template Routes
# ============================================================================

@router.get("/templates", response_model=List[RoleTemplate])
def list_templates(service: Service, current_user: Authenticated, church_type: Optional[str] = None):
    """List role templates, defaults first."""
    return service.list_templates(church_type=church_type)


@router.post("/templates/{template_id}/roles", response_model=Role, status_code=status.HTTP_201_CREATED)
def create_role_from_template(
    template_id: str,
    customizations: TemplateRoleCreate,
    service: Service,
    current_user: UserManager,
):
    """Create a custom role from a template."""
    return service.create_role_from_template(
        template_id,
        created_by=current_user.id,
        name=customizations.name,
        description=customizations.description,
        additional_permissions=customizations.additional_permissions,
        removed_permissions=customizations.removed_permissions,
    )


# ============================================================================
# Assignment Routes
# ============================================================================

@router.post("/assignments", response_model=Assignment, status_code=status.HTTP_201_CREATED)
def assign_role_to_user(assignment: AssignRoleToUser, service: Service, current_user: UserManager):
    """Assign a role to a user, optionally scoped and time-limited."""
    return service.assign_role(
        assignment.user_id,
        assignment.role_id,
        assigned_by=current_user.id,
        expires_at=assignment.expires_at,
        scope=assignment.scope,
    )


@router.delete("/assignments/{user_id}/{role_id}", response_model=Assignment)
def revoke_role_from_user(user_id: str, role_id: str, service: Service, current_user: UserManager):
    """Revoke a user's active assignment of a role."""
    return service.revoke_role(user_id, role_id, revoked_by=current_user.id)


@router.post("/assignments/expire", response_model=ExpireAssignmentsResponse)
def expire_assignments(service: Service, current_user: SystemManager):
    """Deactivate every assignment whose expiry has passed."""
    expired = service.expire_assignments(actor=current_user.id)
    return ExpireAssignmentsResponse(expired=expired, count=len(expired))


@router.get("/users/{user_id}/roles", response_model=UserRolesResponse)
def get_user_roles(user_id: str, service: Service, current_user: Authenticated):
    """Roles a user holds. Users can view their own; others need users:manage."""
    user_id = ensure_self_or_permission(service, current_user, user_id)
    held = service.list_roles_for_user(user_id)
    return UserRolesResponse(
        user_id=user_id,
        level=service.user_level(user_id),
        roles=held.roles,
        assignments=held.assignments,
    )


# ============================================================================
# Role Request Routes
# ============================================================================

@router.post("/requests", response_model=RoleRequest, status_code=status.HTTP_201_CREATED)
def create_role_request(body: RoleRequestCreate, service: Service, current_user: Authenticated):
    """Request a role for yourself or on behalf of someone else."""
    return service.create_role_request(
        user_id=body.user_id or current_user.id,
        requested_role_id=body.role_id,
        requested_by=current_user.id,
        reason=body.reason,
        expires_at=body.expires_at,
        scope=body.scope,
    )


@router.get("/requests", response_model=List[RoleRequest])
def list_role_requests(
    service: Service,
    current_user: UserManager,
    status: Optional[RequestStatus] = None,
):
    """List role requests, newest first."""
    return service.list_role_requests(status=status)


@router.get("/requests/{request_id}", response_model=RoleRequest)
def get_role_request(request_id: str, service: Service, current_user: Authenticated):
    """Get a role request. Visible to its subject, its requester and user managers."""
    role_request = service.get_role_request(request_id)
    if current_user.id not in (role_request.user_id, role_request.requested_by):
        ensure_self_or_permission(service, current_user, role_request.user_id)
    return role_request


@router.post("/requests/{request_id}/review", response_model=RoleRequest)
def review_role_request(
    request_id: str,
    review: RoleRequestReview,
    service: Service,
    current_user: UserManager,
):
    """Approve or reject a pending request. Approval grants the role."""
    return service.review_role_request(request_id, current_user.id, review.decision, review.notes)


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse)
def list_audit_logs(
    service: Service,
    current_user: SystemManager,
    skip: int = 0,
    limit: int = 50,
    user_id: Optional[str] = None,
    resource: Optional[str] = None,
    granted: Optional[bool] = None,
    kind: Optional[AuditKind] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
):
    """Query the audit log, newest first."""
    if skip < 0 or limit < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid pagination")

    entries: List[AuditEntry] = service.query_audit_log(
        user_id=user_id,
        resource=resource,
        granted=granted,
        since=since,
        until=until,
        kind=kind,
    )
    total = len(entries)
    pages = (total + limit - 1) // limit
    page = (skip // limit) + 1

    return AuditLogListResponse(
        items=entries[skip:skip + limit],
        total=total,
        page=page,
        page_size=limit,
        pages=pages,
    )
