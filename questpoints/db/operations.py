"""
Database CRUD operations.

Provides async functions over users, the item catalog, draw records and
their side-effect tables. None of these commit; callers own the
transaction.
"""

from sqlalchemy import func, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, selectinload

from questpoints.config import HISTORY_PAGE_SIZE
from questpoints.models.db import (
    AchievementDB,
    ActivityLogDB,
    DrawBatchDB,
    DrawRecordDB,
    ItemDB,
    NotificationDB,
    OwnedItemDB,
    UserAchievementDB,
    UserDB,
)
from questpoints.models.gacha import HistoryEntry
from questpoints.models.item import Item, Rarity

# --- User / Balance Operations ---


async def get_user(session: AsyncSession, user_id: int) -> UserDB | None:
    """Get a user by id. Returns None if no such user exists."""
    return await session.get(UserDB, user_id)


async def create_user(
    session: AsyncSession,
    name: str,
    points: int = 0,
    avatar_url: str | None = None,
) -> UserDB:
    """Create a new user with a starting balance."""
    if points < 0:
        msg = f"Starting balance must be non-negative, got {points}"
        raise ValueError(msg)

    user = UserDB(name=name, points=points, avatar_url=avatar_url)
    session.add(user)
    await session.flush()
    return user


async def get_balance(session: AsyncSession, user_id: int) -> int | None:
    """
    Read a user's current balance straight from the database.

    Returns None if the user does not exist.
    """
    result = await session.execute(select(UserDB.points).where(UserDB.id == user_id))
    return result.scalar_one_or_none()


async def conditional_decrement(session: AsyncSession, user_id: int, amount: int) -> bool:
    """
    Subtract `amount` from a balance only if the balance covers it.

    Issued as a single UPDATE ... WHERE points >= amount, so two concurrent
    callers can never both pass the check. Returns True if a row was
    updated, False if the user is missing or short of points.
    """
    result = await session.execute(
        update(UserDB)
        .where(UserDB.id == user_id, UserDB.points >= amount)
        .values(points=UserDB.points - amount)
        .execution_options(synchronize_session=False)
    )
    # rowcount is available on UPDATE results; type stubs incomplete for async
    return int(result.rowcount) == 1  # type: ignore[attr-defined]


async def award_points(session: AsyncSession, user_id: int, amount: int) -> bool:
    """
    Add points to a balance.

    Returns True if the user exists.
    """
    if amount <= 0:
        msg = f"Award amount must be positive, got {amount}"
        raise ValueError(msg)

    result = await session.execute(
        update(UserDB)
        .where(UserDB.id == user_id)
        .values(points=UserDB.points + amount)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount) == 1  # type: ignore[attr-defined]


# --- Catalog Operations ---


async def list_items(session: AsyncSession) -> list[ItemDB]:
    """List the whole catalog, ordered by id."""
    result = await session.execute(select(ItemDB).order_by(ItemDB.id))
    return list(result.scalars().all())


async def count_items(session: AsyncSession) -> int:
    """Number of items in the catalog."""
    result = await session.execute(select(func.count()).select_from(ItemDB))
    return int(result.scalar_one())


async def create_item(
    session: AsyncSession,
    name: str,
    rarity: str,
    power: int | None = None,
) -> ItemDB:
    """Add an item to the catalog. The rarity must be a Rarity value."""
    if rarity not in {r.value for r in Rarity}:
        msg = f"Unknown rarity {rarity!r}"
        raise ValueError(msg)

    item = ItemDB(name=name, rarity=rarity, power=power)
    session.add(item)
    await session.flush()
    return item


def item_to_model(db_item: ItemDB) -> Item:
    """Convert a database item to a domain model."""
    return Item(id=db_item.id, name=db_item.name, rarity=db_item.rarity, power=db_item.power)


# --- Draw Operations ---


async def create_draw_record(
    session: AsyncSession,
    user_id: int,
    item_id: int,
    batch_id: int | None = None,
) -> DrawRecordDB:
    """Persist one draw."""
    record = DrawRecordDB(user_id=user_id, item_id=item_id, batch_id=batch_id)
    session.add(record)
    await session.flush()
    return record


async def create_inventory_grant(session: AsyncSession, user_id: int, item_id: int) -> OwnedItemDB:
    """Put a drawn item into the user's inventory."""
    owned = OwnedItemDB(user_id=user_id, item_id=item_id, equipped=False)
    session.add(owned)
    await session.flush()
    return owned


async def batch_store_available(session: AsyncSession) -> bool:
    """Check whether the batch grouping table exists in the live schema."""

    def _has_table(sync_session: Session) -> bool:
        return inspect(sync_session.connection()).has_table(DrawBatchDB.__tablename__)

    return await session.run_sync(_has_table)


async def create_batch(
    session: AsyncSession,
    user_id: int,
    count: int,
    total_cost: int,
) -> DrawBatchDB | None:
    """
    Record a batch grouping.

    Returns None when the grouping table is not available, in which case
    the draws are simply stored ungrouped.
    """
    if not await batch_store_available(session):
        return None

    batch = DrawBatchDB(user_id=user_id, count=count, total_cost=total_cost)
    session.add(batch)
    await session.flush()
    return batch


async def count_draw_records(session: AsyncSession, user_id: int) -> int:
    """Count every draw a user has made."""
    result = await session.execute(
        select(func.count()).select_from(DrawRecordDB).where(DrawRecordDB.user_id == user_id)
    )
    return int(result.scalar_one())


async def list_draw_history(
    session: AsyncSession,
    user_id: int,
    limit: int = HISTORY_PAGE_SIZE,
) -> list[DrawRecordDB]:
    """A user's own draws, newest first."""
    result = await session.execute(
        select(DrawRecordDB)
        .where(DrawRecordDB.user_id == user_id)
        .options(selectinload(DrawRecordDB.item))
        .order_by(DrawRecordDB.created_at.desc(), DrawRecordDB.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def draw_record_to_history(record: DrawRecordDB) -> HistoryEntry:
    """Convert a loaded draw record to a history entry."""
    return HistoryEntry(
        id=record.id,
        item=item_to_model(record.item),
        drawn_at=record.created_at,
        batch_id=record.batch_id,
    )


# --- Notification / Audit Operations ---


async def create_notification(
    session: AsyncSession, user_id: int, type_: str, message: str
) -> NotificationDB:
    """Queue a message for the user."""
    notification = NotificationDB(user_id=user_id, type=type_, message=message, read=False)
    session.add(notification)
    await session.flush()
    return notification


async def create_audit_entry(
    session: AsyncSession, user_id: int, action: str, detail: str | None = None
) -> ActivityLogDB:
    """Append to the user's activity log."""
    entry = ActivityLogDB(user_id=user_id, action=action, detail=detail)
    session.add(entry)
    await session.flush()
    return entry


async def list_notifications(session: AsyncSession, user_id: int) -> list[NotificationDB]:
    result = await session.execute(
        select(NotificationDB)
        .where(NotificationDB.user_id == user_id)
        .order_by(NotificationDB.id)
    )
    return list(result.scalars().all())


async def list_audit_entries(session: AsyncSession, user_id: int) -> list[ActivityLogDB]:
    result = await session.execute(
        select(ActivityLogDB).where(ActivityLogDB.user_id == user_id).order_by(ActivityLogDB.id)
    )
    return list(result.scalars().all())


# --- Achievement Operations ---


async def get_achievement(session: AsyncSession, code: str) -> AchievementDB | None:
    """Get an achievement definition by code."""
    result = await session.execute(select(AchievementDB).where(AchievementDB.code == code))
    return result.scalar_one_or_none()


async def upsert_achievement(
    session: AsyncSession, code: str, title: str, description: str | None = None
) -> AchievementDB:
    """
    Insert or update an achievement definition.

    If one with the same code exists, updates its title and description.
    """
    existing = await get_achievement(session, code)

    if existing:
        existing.title = title
        existing.description = description
        await session.flush()
        return existing

    achievement = AchievementDB(code=code, title=title, description=description)
    session.add(achievement)
    await session.flush()
    return achievement


async def has_achievement(session: AsyncSession, user_id: int, code: str) -> bool:
    """Check whether a user already unlocked the achievement with this code."""
    result = await session.execute(
        select(UserAchievementDB.id)
        .join(AchievementDB, UserAchievementDB.achievement_id == AchievementDB.id)
        .where(UserAchievementDB.user_id == user_id, AchievementDB.code == code)
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def grant_achievement(
    session: AsyncSession, user_id: int, achievement: AchievementDB
) -> UserAchievementDB:
    """
    Unlock an achievement for a user.

    Raises IntegrityError if the user already has it.
    """
    granted = UserAchievementDB(user_id=user_id, achievement_id=achievement.id)
    session.add(granted)
    await session.flush()
    return granted


# --- Inventory Operations ---


async def list_owned_items(session: AsyncSession, user_id: int) -> list[OwnedItemDB]:
    """A user's inventory with catalog items loaded."""
    result = await session.execute(
        select(OwnedItemDB)
        .where(OwnedItemDB.user_id == user_id)
        .options(selectinload(OwnedItemDB.item))
        .order_by(OwnedItemDB.id)
    )
    return list(result.scalars().all())


async def get_owned_item(session: AsyncSession, owned_id: int) -> OwnedItemDB | None:
    result = await session.execute(
        select(OwnedItemDB)
        .where(OwnedItemDB.id == owned_id)
        .options(selectinload(OwnedItemDB.item))
    )
    return result.scalar_one_or_none()


async def toggle_equipped(session: AsyncSession, owned: OwnedItemDB) -> OwnedItemDB:
    """Flip the equipped flag of an inventory entry."""
    owned.equipped = not owned.equipped
    await session.flush()
    return owned


# --- Ranking Operations ---


async def top_users_by_points(session: AsyncSession, limit: int = 50) -> list[UserDB]:
    """Users with the most points first; ties broken by id."""
    result = await session.execute(
        select(UserDB).order_by(UserDB.points.desc(), UserDB.id).limit(limit)
    )
    return list(result.scalars().all())


async def count_users_above(session: AsyncSession, points: int) -> int:
    """Number of users with strictly more points."""
    result = await session.execute(
        select(func.count()).select_from(UserDB).where(UserDB.points > points)
    )
    return int(result.scalar_one())


async def users_just_above(session: AsyncSession, points: int, limit: int = 2) -> list[UserDB]:
    """The closest users with more points, closest first."""
    result = await session.execute(
        select(UserDB).where(UserDB.points > points).order_by(UserDB.points, UserDB.id).limit(limit)
    )
    return list(result.scalars().all())


async def users_just_below(session: AsyncSession, points: int, limit: int = 2) -> list[UserDB]:
    """The closest users with fewer points, closest first."""
    result = await session.execute(
        select(UserDB)
        .where(UserDB.points < points)
        .order_by(UserDB.points.desc(), UserDB.id)
        .limit(limit)
    )
    return list(result.scalars().all())
