"""
Pydantic schemas for the authenticated user.
"""
from typing import List, Optional
from pydantic import BaseModel, Field

from app.features.access.domain import Role


class CurrentUser(BaseModel):
    """Identity taken from the bearer token."""
    id: str = Field(..., min_length=1)
    email: Optional[str] = None
    name: Optional[str] = None


class MeResponse(CurrentUser):
    """The current user with the roles they hold."""
    level: int = 0
    roles: List[Role] = []
