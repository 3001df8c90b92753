"""
FastAPI dependencies for access control.

Routes are protected with the same decision engine the rest of the product
uses, so administering roles is itself a permission held through a role.
"""
from typing import Annotated, Optional
from fastapi import Depends, HTTPException, Request, status

from app.features.access.service import AccessControlService
from app.features.users.dependencies import get_current_user
from app.features.users.schemas import CurrentUser
from app.utils import get_logger


log = get_logger(__name__)


def get_access_service(request: Request) -> AccessControlService:
    """The service instance built at startup (app.state.access_service)."""
    return request.app.state.access_service


def require_permission(resource: str, action: str):
    """
    FastAPI dependency to require a specific permission.

    Usage:
        @router.post("/roles")
        def create_role(
            user: CurrentUser = Depends(require_permission("users", "manage"))
        ):
            ...

    Returns:
        Dependency function that returns the current user if they have permission

    Raises:
        HTTPException: 403 if user doesn't have permission
    """
    def permission_dependency(
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
        service: Annotated[AccessControlService, Depends(get_access_service)],
    ) -> CurrentUser:
        if not service.has_permission(current_user.id, resource, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {action} on {resource}"
            )
        return current_user

    return permission_dependency


def ensure_self_or_permission(
    service: AccessControlService,
    current_user: CurrentUser,
    user_id: Optional[str],
    resource: str = "users",
    action: str = "manage",
) -> str:
    """
    Resolve the target user id: the caller by default, anyone else only
    with (resource, action).
    """
    if user_id is None or user_id == current_user.id:
        return current_user.id
    if not service.has_permission(current_user.id, resource, action):
        log.info("User %s tried to act on behalf of %s", current_user.id, user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to act on other users"
        )
    return user_id
