"""User endpoints - profile, username claim and search."""

import structlog
from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from buzzhub.api.dependencies import CurrentUserDep, StorageDep
from buzzhub.core.exceptions import InvalidInput
from buzzhub.models import User

logger = structlog.get_logger()

router = APIRouter(prefix="/users", tags=["Users"])


# ==================== Pydantic Schemas ====================


class UsernameCreate(BaseModel):
    """Schema for claiming a username."""

    username: str = Field(..., max_length=64)


class UserResponse(BaseModel):
    """Public view of a user."""

    id: str
    username: str | None = None
    name: str | None = None
    image: str | None = None


# ==================== User Endpoints ====================


@router.get("/me", response_model=UserResponse)
async def get_me(user: CurrentUserDep) -> User:
    """Get the authenticated user."""
    return user


@router.post("/me/username", response_model=UserResponse)
async def create_username(
    data: UsernameCreate,
    user: CurrentUserDep,
    storage: StorageDep,
) -> User:
    """Claim a username for the authenticated user."""
    username = data.username.strip()
    if not username:
        raise InvalidInput("Username must not be empty", field="username")

    updated = await storage.set_username(user.id, username)
    logger.info("Username set", user_id=user.id, username=username)
    return updated


@router.get("", response_model=list[UserResponse])
async def search_users(
    user: CurrentUserDep,
    storage: StorageDep,
    search: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=100),
) -> list[User]:
    """Search other users by username."""
    return await storage.search_users(search, exclude_user_id=user.id, limit=limit)
