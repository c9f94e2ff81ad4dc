"""
Item API endpoints.

Public catalog listing and per-user inventory.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from questpoints.api.gacha import ItemResponse
from questpoints.api.limits import enforce_public_list_rate_limit
from questpoints.db import (
    create_audit_entry,
    get_owned_item,
    item_to_model,
    list_items,
    list_owned_items,
    toggle_equipped,
)
from questpoints.db.database import get_session
from questpoints.models.db import OwnedItemDB
from questpoints.models.failure import NotOwnerError, OwnedItemNotFoundError

router = APIRouter(prefix="/items", tags=["items"])


class OwnedItemResponse(BaseModel):
    """Response model for an inventory entry."""

    id: int
    user_id: int
    item: ItemResponse
    equipped: bool

    @classmethod
    def from_db(cls, owned: OwnedItemDB) -> "OwnedItemResponse":
        return cls(
            id=owned.id,
            user_id=owned.user_id,
            item=ItemResponse.from_model(item_to_model(owned.item)),
            equipped=owned.equipped,
        )


@router.get(
    "",
    response_model=list[ItemResponse],
    dependencies=[Depends(enforce_public_list_rate_limit)],
)
async def list_catalog(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[ItemResponse]:
    """Every item that can come out of the gacha, ordered by id."""
    items = await list_items(session)
    return [ItemResponse.from_model(item_to_model(item)) for item in items]


@router.get("/owned/{user_id}", response_model=list[OwnedItemResponse])
async def list_user_items(
    user_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[OwnedItemResponse]:
    """A user's inventory."""
    owned = await list_owned_items(session, user_id)
    return [OwnedItemResponse.from_db(entry) for entry in owned]


@router.post("/owned/{user_id}/{owned_id}/equip", response_model=OwnedItemResponse)
async def toggle_equip(
    user_id: int,
    owned_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> OwnedItemResponse:
    """
    Equip an owned item, or unequip it if it is already equipped.

    404 if the entry does not exist, 403 if it belongs to someone else.
    """
    owned = await get_owned_item(session, owned_id)
    if owned is None:
        raise OwnedItemNotFoundError(owned_id)
    if owned.user_id != user_id:
        raise NotOwnerError(owned_id, user_id)

    owned = await toggle_equipped(session, owned)

    if owned.equipped:
        await create_audit_entry(session, user_id, "item_equipped", f'Equipped "{owned.item.name}"')
    else:
        await create_audit_entry(
            session, user_id, "item_unequipped", f'Unequipped "{owned.item.name}"'
        )

    response = OwnedItemResponse.from_db(owned)
    await session.commit()
    return response
