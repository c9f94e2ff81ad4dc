"""
User API endpoints.

Public player profiles.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from questpoints.api.limits import enforce_public_list_rate_limit
from questpoints.db import get_user
from questpoints.db.database import get_session
from questpoints.models.db import UserDB
from questpoints.models.failure import UserNotFoundError

router = APIRouter(prefix="/users", tags=["users"])


class UserProfileResponse(BaseModel):
    """A user's public profile."""

    id: int
    name: str
    avatar_url: str | None = None
    points: int
    created_at: datetime

    @classmethod
    def from_db(cls, user: UserDB) -> "UserProfileResponse":
        return cls(
            id=user.id,
            name=user.name,
            avatar_url=user.avatar_url,
            points=user.points,
            created_at=user.created_at,
        )


@router.get(
    "/{user_id}",
    response_model=UserProfileResponse,
    dependencies=[Depends(enforce_public_list_rate_limit)],
)
async def get_profile(
    user_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> UserProfileResponse:
    """A user's public profile. 404 if no such user exists."""
    user = await get_user(session, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return UserProfileResponse.from_db(user)
