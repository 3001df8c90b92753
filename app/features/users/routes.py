"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends

from app.features.access.dependencies import get_access_service
from app.features.access.service import AccessControlService
from app.features.users.dependencies import get_current_user
from app.features.users.schemas import CurrentUser, MeResponse


router = APIRouter(tags=["users"])


@router.get("/me", response_model=MeResponse)
def get_me(
    user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[AccessControlService, Depends(get_access_service)],
):
    """Get the current user with their roles and authority level."""
    held = service.list_roles_for_user(user.id)
    return MeResponse(
        **user.model_dump(),
        level=service.user_level(user.id),
        roles=held.roles,
    )
