"""
Spin Transaction Orchestrator: paid gacha draws as all-or-nothing units.

Every spin runs the same fixed sequence:

    validate catalog -> select -> debit -> persist -> achievements -> commit

INVARIANTS:
- Validation and selection happen before the debit; failing there
  charges nothing and writes nothing
- The debit and every persisted effect share one SAVEPOINT. Any
  database failure after the debit rolls all of it back, debit included
- A spin commits before it returns, so callers only ever see committed
  outcomes; a failed commit is a PersistenceFailureError
- A batch is charged once: cost_per_draw * count
- count(draw records) == draws performed == inventory grants created
- Batch grouping and achievement grants are best-effort and never abort
  the draw

Configuration comes in through GachaConfig; nothing here reads the
environment.
"""

import logging
import random
from collections.abc import Mapping
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from questpoints.config import (
    FIRST_DRAW_ACHIEVEMENT,
    MAX_BATCH_HARD_CAP,
    RARITY_WEIGHTS,
    Settings,
    settings,
)
from questpoints.db.operations import (
    create_audit_entry,
    create_batch,
    create_draw_record,
    create_inventory_grant,
    create_notification,
    get_achievement,
    get_balance,
    get_user,
    grant_achievement,
    has_achievement,
    item_to_model,
    list_items,
)
from questpoints.models.failure import FailureKind, KnownError, UserNotFoundError
from questpoints.models.gacha import BatchSpinResult, DrawResult, SpinResult
from questpoints.models.item import Item
from questpoints.services.ledger import debit_points
from questpoints.services.weighted_selector import CumulativeTable, build_cumulative_table

logger = logging.getLogger(__name__)

NOTIFICATION_GACHA = "item_gacha"
NOTIFICATION_ACHIEVEMENT = "achievement"
AUDIT_GACHA = "item_gacha"
AUDIT_GACHA_BATCH = "item_gacha_batch"
AUDIT_ACHIEVEMENT = "achievement_unlocked"


class PersistenceFailureError(KnownError):
    """
    Raised when writing a paid draw fails after the debit.

    By the time this is raised the debit has been rolled back; the user
    was not charged. Surfaces as a generic server error.
    """

    def __init__(self, user_id: int, draws: int):
        self.user_id = user_id
        self.draws = draws
        super().__init__(
            kind=FailureKind.PERSISTENCE_FAILURE,
            message="The spin could not be saved.",
            detail=f"user_id={user_id}, draws={draws}",
            status_code=500,
        )


@dataclass(frozen=True)
class GachaConfig:
    """
    Knobs for the spin orchestrator.

    max_batch and default_batch are clamped into [1, MAX_BATCH_HARD_CAP].
    """

    cost_per_draw: int = 10
    max_batch: int = MAX_BATCH_HARD_CAP
    default_batch: int = 10
    weights: Mapping[str, int] = field(default_factory=lambda: dict(RARITY_WEIGHTS))

    def __post_init__(self) -> None:
        if self.cost_per_draw <= 0:
            msg = f"cost_per_draw must be positive, got {self.cost_per_draw}"
            raise ValueError(msg)
        max_batch = max(1, min(self.max_batch, MAX_BATCH_HARD_CAP))
        object.__setattr__(self, "max_batch", max_batch)
        object.__setattr__(self, "default_batch", max(1, min(self.default_batch, max_batch)))

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "GachaConfig":
        return cls(
            cost_per_draw=app_settings.gacha_cost,
            max_batch=app_settings.gacha_batch_max,
            default_batch=app_settings.gacha_batch_default,
        )

    def clamp_count(self, count: int | None) -> int:
        """Bring a requested batch size into [1, max_batch]."""
        if count is None:
            return self.default_batch
        return max(1, min(self.max_batch, count))


class GachaService:
    """Runs single and batch spins against a database session."""

    def __init__(self, config: GachaConfig | None = None, rng: random.Random | None = None):
        self.config = config or GachaConfig()
        self._rng = rng or random.SystemRandom()

    async def spin(self, session: AsyncSession, user_id: int) -> SpinResult:
        """
        One paid draw.

        Raises:
            InvalidCatalogError: If there are no items (nothing charged)
            UserNotFoundError: If the user does not exist (nothing charged)
            InsufficientFundsError: If the balance is below the cost
            PersistenceFailureError: If saving failed; the debit was undone
        """
        table = await self._load_table(session)
        await self._require_user(session, user_id)

        item = table.draw(self._rng)
        cost = self.config.cost_per_draw

        try:
            async with session.begin_nested():
                await debit_points(session, user_id, cost)
                draw = await self._persist_draw(session, user_id, item)
                await create_notification(
                    session,
                    user_id,
                    NOTIFICATION_GACHA,
                    f'You got "{item.name}" ({item.rarity}) from the gacha!',
                )
                await create_audit_entry(
                    session, user_id, AUDIT_GACHA, f'Got "{item.name}" from the gacha'
                )
                await self._grant_first_draw_achievement(session, user_id)
                remaining = await self._remaining_balance(session, user_id)
        except SQLAlchemyError as e:
            logger.exception(
                "GACHA_PERSISTENCE_FAILED",
                extra={"user_id": user_id, "draws": 1},
            )
            raise PersistenceFailureError(user_id, 1) from e

        await self._commit(session, user_id, 1)

        logger.info(
            "GACHA_SPIN_COMPLETED",
            extra={
                "user_id": user_id,
                "item_id": item.id,
                "rarity": item.rarity,
                "cost": cost,
                "remaining_balance": remaining,
            },
        )
        return SpinResult(draw=draw, cost=cost, remaining_balance=remaining)

    async def spin_batch(
        self, session: AsyncSession, user_id: int, count: int | None = None
    ) -> BatchSpinResult:
        """
        `count` draws charged as a single debit.

        count is clamped into [1, max_batch]; None means default_batch.
        All items are selected from one cumulative table before the debit.

        Raises:
            Same as spin().
        """
        draws = self.config.clamp_count(count)
        table = await self._load_table(session)
        await self._require_user(session, user_id)

        picks = table.draw_many(self._rng, draws)
        total_cost = self.config.cost_per_draw * draws

        try:
            async with session.begin_nested():
                await debit_points(session, user_id, total_cost)
                batch_id = await self._create_batch(session, user_id, draws, total_cost)

                results: list[DrawResult] = []
                for item in picks:
                    results.append(await self._persist_draw(session, user_id, item, batch_id))

                await create_notification(
                    session, user_id, NOTIFICATION_GACHA, f"You spun the gacha {draws} times!"
                )
                await create_audit_entry(
                    session, user_id, AUDIT_GACHA_BATCH, _summarize(picks, total_cost)
                )
                await self._grant_first_draw_achievement(session, user_id)
                remaining = await self._remaining_balance(session, user_id)
        except SQLAlchemyError as e:
            logger.exception(
                "GACHA_PERSISTENCE_FAILED",
                extra={"user_id": user_id, "draws": draws},
            )
            raise PersistenceFailureError(user_id, draws) from e

        await self._commit(session, user_id, draws)

        logger.info(
            "GACHA_BATCH_COMPLETED",
            extra={
                "user_id": user_id,
                "draws": draws,
                "batch_id": batch_id,
                "total_cost": total_cost,
                "remaining_balance": remaining,
            },
        )
        return BatchSpinResult(
            results=results,
            total_cost=total_cost,
            remaining_balance=remaining,
            batch_id=batch_id,
        )

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _load_table(self, session: AsyncSession) -> CumulativeTable[Item]:
        catalog = [item_to_model(db_item) for db_item in await list_items(session)]
        return build_cumulative_table(catalog, self.config.weights)

    async def _require_user(self, session: AsyncSession, user_id: int) -> None:
        if await get_user(session, user_id) is None:
            raise UserNotFoundError(user_id)

    async def _persist_draw(
        self,
        session: AsyncSession,
        user_id: int,
        item: Item,
        batch_id: int | None = None,
    ) -> DrawResult:
        record = await create_draw_record(session, user_id, item.id, batch_id)
        owned = await create_inventory_grant(session, user_id, item.id)
        return DrawResult(
            item=item,
            record_id=record.id,
            inventory_id=owned.id,
            drawn_at=record.created_at,
            batch_id=record.batch_id,
        )

    async def _commit(self, session: AsyncSession, user_id: int, draws: int) -> None:
        """Make the spin durable. If the commit fails nothing was charged."""
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.exception(
                "GACHA_COMMIT_FAILED",
                extra={"user_id": user_id, "draws": draws},
            )
            raise PersistenceFailureError(user_id, draws) from e

    async def _remaining_balance(self, session: AsyncSession, user_id: int) -> int:
        remaining = await get_balance(session, user_id)
        if remaining is None:
            raise UserNotFoundError(user_id)
        return remaining

    async def _create_batch(
        self, session: AsyncSession, user_id: int, draws: int, total_cost: int
    ) -> int | None:
        """Record the batch grouping if the store exists. Never raises on DB errors."""
        try:
            async with session.begin_nested():
                batch = await create_batch(session, user_id, draws, total_cost)
        except SQLAlchemyError:
            logger.warning(
                "BATCH_GROUPING_FAILED",
                extra={"user_id": user_id, "draws": draws},
                exc_info=True,
            )
            return None

        if batch is None:
            logger.warning(
                "BATCH_GROUPING_UNAVAILABLE",
                extra={"user_id": user_id, "draws": draws},
            )
            return None
        return batch.id

    async def _grant_first_draw_achievement(self, session: AsyncSession, user_id: int) -> bool:
        """
        Unlock the first-draw achievement once per user.

        Skipped when the definition is missing or already granted. Database
        errors are logged and swallowed.
        """
        try:
            async with session.begin_nested():
                achievement = await get_achievement(session, FIRST_DRAW_ACHIEVEMENT)
                if achievement is None:
                    return False
                if await has_achievement(session, user_id, achievement.code):
                    return False

                await grant_achievement(session, user_id, achievement)
                await create_notification(
                    session,
                    user_id,
                    NOTIFICATION_ACHIEVEMENT,
                    f'Achievement unlocked: "{achievement.title}"!',
                )
                await create_audit_entry(
                    session, user_id, AUDIT_ACHIEVEMENT, f'"{achievement.title}"'
                )
                return True
        except SQLAlchemyError:
            logger.warning(
                "ACHIEVEMENT_GRANT_FAILED",
                extra={"user_id": user_id, "code": FIRST_DRAW_ACHIEVEMENT},
                exc_info=True,
            )
            return False


def _summarize(picks: list[Item], total_cost: int) -> str:
    """One-line audit summary of a batch, e.g. '10 draws for 100 points: 1 epic, 9 common'."""
    by_rarity: dict[str, int] = {}
    for item in picks:
        by_rarity[item.rarity] = by_rarity.get(item.rarity, 0) + 1
    breakdown = ", ".join(
        f"{n} {rarity}" for rarity, n in sorted(by_rarity.items(), key=lambda kv: kv[1])
    )
    return f"{len(picks)} draws for {total_cost} points: {breakdown}"


# =============================================================================
# GLOBAL SERVICE INSTANCE
# =============================================================================

_gacha_service: GachaService | None = None


def get_gacha_service() -> GachaService:
    """Get the process-wide service built from settings."""
    global _gacha_service
    if _gacha_service is None:
        _gacha_service = GachaService(GachaConfig.from_settings(settings))
    return _gacha_service


def reset_gacha_service() -> None:
    """Reset the process-wide service (for testing)."""
    global _gacha_service
    _gacha_service = None
