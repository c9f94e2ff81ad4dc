"""
Gacha API endpoints.

Paid spins (single and batch), published rates, and draw history.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from questpoints.api.limits import enforce_public_list_rate_limit, enforce_spin_rate_limit
from questpoints.db.database import get_session
from questpoints.models.gacha import DrawResult, HistoryEntry
from questpoints.models.item import Item
from questpoints.services.gacha import GachaService, get_gacha_service
from questpoints.services.history import get_draw_history, group_by_batch
from questpoints.services.rates import get_rates

router = APIRouter(prefix="/gacha", tags=["gacha"])


class ItemResponse(BaseModel):
    """A catalog item."""

    id: int
    name: str
    rarity: str
    power: int | None = None

    @classmethod
    def from_model(cls, item: Item) -> "ItemResponse":
        return cls(id=item.id, name=item.name, rarity=item.rarity, power=item.power)


class DrawRecordResponse(BaseModel):
    """The persisted record of one draw."""

    id: int
    user_id: int
    item_id: int
    created_at: datetime
    batch_id: int | None = None


class InventoryEntryResponse(BaseModel):
    """The inventory entry created for a draw."""

    id: int
    user_id: int
    item_id: int
    equipped: bool = False


class DrawResponse(BaseModel):
    """One draw inside a batch."""

    item: ItemResponse
    record: DrawRecordResponse
    inventory_entry: InventoryEntryResponse


class SpinResponse(DrawResponse):
    """Response model for a single spin."""

    cost: int
    remaining_balance: int


class BatchSpinRequest(BaseModel):
    """Request model for a batch spin."""

    count: int | None = Field(
        default=None,
        description="Number of draws; clamped to the allowed range. Omit for the default.",
        examples=[10],
    )


class BatchSpinResponse(BaseModel):
    """Response model for a batch spin."""

    results: list[DrawResponse]
    count: int
    total_cost: int
    remaining_balance: int
    batch_id: int | None = Field(
        default=None,
        description="Batch grouping id, or null when grouping is unavailable",
    )


class RatesResponse(BaseModel):
    """Response model for published rates."""

    weights: dict[str, int]
    probabilities: dict[str, float]
    total_weight: int


class HistoryEntryResponse(BaseModel):
    """One past draw."""

    id: int
    item: ItemResponse
    created_at: datetime
    batch_id: int | None = None

    @classmethod
    def from_model(cls, entry: HistoryEntry) -> "HistoryEntryResponse":
        return cls(
            id=entry.id,
            item=ItemResponse.from_model(entry.item),
            created_at=entry.drawn_at,
            batch_id=entry.batch_id,
        )


class HistoryGroupResponse(BaseModel):
    """Draws that belong together; batch_id is null for single spins."""

    batch_id: int | None = None
    draws: list[HistoryEntryResponse]


def _draw_response(user_id: int, draw: DrawResult) -> DrawResponse:
    return DrawResponse(
        item=ItemResponse.from_model(draw.item),
        record=DrawRecordResponse(
            id=draw.record_id,
            user_id=user_id,
            item_id=draw.item.id,
            created_at=draw.drawn_at,
            batch_id=draw.batch_id,
        ),
        inventory_entry=InventoryEntryResponse(
            id=draw.inventory_id,
            user_id=user_id,
            item_id=draw.item.id,
        ),
    )


@router.post(
    "/{user_id}/spin",
    response_model=SpinResponse,
    dependencies=[Depends(enforce_spin_rate_limit)],
)
async def spin(
    user_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    service: Annotated[GachaService, Depends(get_gacha_service)],
) -> SpinResponse:
    """
    Spend points on one draw.

    Returns the item, its draw record, the inventory entry, and the
    balance left after the charge. 402 if the balance is too low.
    """
    result = await service.spin(session, user_id)
    draw = _draw_response(user_id, result.draw)
    return SpinResponse(
        **draw.model_dump(),
        cost=result.cost,
        remaining_balance=result.remaining_balance,
    )


@router.post(
    "/{user_id}/spin/batch",
    response_model=BatchSpinResponse,
    dependencies=[Depends(enforce_spin_rate_limit)],
)
async def spin_batch(
    user_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    service: Annotated[GachaService, Depends(get_gacha_service)],
    body: BatchSpinRequest | None = None,
) -> BatchSpinResponse:
    """
    Spend points on several draws at once, charged as one debit.

    The count is clamped to [1, max batch]; the cost is computed on the
    clamped count.
    """
    count = body.count if body else None
    result = await service.spin_batch(session, user_id, count)
    return BatchSpinResponse(
        results=[_draw_response(user_id, draw) for draw in result.results],
        count=result.count,
        total_cost=result.total_cost,
        remaining_balance=result.remaining_balance,
        batch_id=result.batch_id,
    )


@router.get(
    "/rates",
    response_model=RatesResponse,
    dependencies=[Depends(enforce_public_list_rate_limit)],
)
async def rates(
    service: Annotated[GachaService, Depends(get_gacha_service)],
) -> RatesResponse:
    """Draw weights per rarity and the probability each implies."""
    published = get_rates(service.config.weights)
    return RatesResponse(
        weights=published.weights,
        probabilities=published.probabilities,
        total_weight=published.total_weight(),
    )


@router.get("/{user_id}/history", response_model=list[HistoryEntryResponse])
async def history(
    user_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[HistoryEntryResponse]:
    """The user's most recent draws, newest first."""
    entries = await get_draw_history(session, user_id)
    return [HistoryEntryResponse.from_model(entry) for entry in entries]


@router.get("/{user_id}/history/batches", response_model=list[HistoryGroupResponse])
async def history_by_batch(
    user_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[HistoryGroupResponse]:
    """The same page of history, grouped by batch."""
    entries = await get_draw_history(session, user_id)
    return [
        HistoryGroupResponse(
            batch_id=batch_id,
            draws=[HistoryEntryResponse.from_model(entry) for entry in draws],
        )
        for batch_id, draws in group_by_batch(entries)
    ]
