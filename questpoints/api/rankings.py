"""
Ranking API endpoints.

Point leaderboard and a user's position on it.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from questpoints.api.limits import enforce_public_list_rate_limit
from questpoints.db import (
    count_users_above,
    get_user,
    top_users_by_points,
    users_just_above,
    users_just_below,
)
from questpoints.db.database import get_session
from questpoints.models.db import UserDB
from questpoints.models.failure import UserNotFoundError

router = APIRouter(prefix="/rankings", tags=["rankings"])

# Leaderboard never returns more rows than this
MAX_LEADERBOARD_SIZE = 100


class RankedUserResponse(BaseModel):
    """A user's public profile on the leaderboard."""

    id: int
    name: str
    avatar_url: str | None = None
    points: int

    @classmethod
    def from_db(cls, user: UserDB) -> "RankedUserResponse":
        return cls(id=user.id, name=user.name, avatar_url=user.avatar_url, points=user.points)


class LeaderboardEntryResponse(RankedUserResponse):
    """A leaderboard row."""

    rank: int


class MyRankResponse(BaseModel):
    """Response model for a user's own rank and neighbours."""

    my_rank: int
    me: RankedUserResponse
    above: list[RankedUserResponse]
    below: list[RankedUserResponse]


@router.get(
    "/points",
    response_model=list[LeaderboardEntryResponse],
    dependencies=[Depends(enforce_public_list_rate_limit)],
)
async def points_leaderboard(
    session: Annotated[AsyncSession, Depends(get_session)],
    limit: Annotated[int, Query(ge=1)] = 50,
) -> list[LeaderboardEntryResponse]:
    """Top users by points, highest first, with 1-based ranks."""
    users = await top_users_by_points(session, limit=min(limit, MAX_LEADERBOARD_SIZE))
    return [
        LeaderboardEntryResponse(rank=index + 1, **RankedUserResponse.from_db(user).model_dump())
        for index, user in enumerate(users)
    ]


@router.get("/{user_id}/me", response_model=MyRankResponse)
async def my_rank(
    user_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> MyRankResponse:
    """
    A user's rank and the two users on either side of them.

    Rank is 1 + the number of users with strictly more points, so tied
    users share a rank. Both neighbour lists are in leaderboard order.
    """
    user = await get_user(session, user_id)
    if user is None:
        raise UserNotFoundError(user_id)

    higher = await count_users_above(session, user.points)
    above = await users_just_above(session, user.points)
    below = await users_just_below(session, user.points)

    return MyRankResponse(
        my_rank=higher + 1,
        me=RankedUserResponse.from_db(user),
        above=[RankedUserResponse.from_db(u) for u in reversed(above)],
        below=[RankedUserResponse.from_db(u) for u in below],
    )
