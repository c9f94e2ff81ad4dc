"""
Job to seed the gacha catalog.

Creates the default items and the first-draw achievement, and can create
a demo user with starting points. Safe to run repeatedly: items are only
added when the catalog is empty.
"""

import argparse
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from questpoints.config import FIRST_DRAW_ACHIEVEMENT
from questpoints.db.database import async_session_factory, init_db
from questpoints.db.operations import create_item, create_user, list_items, upsert_achievement
from questpoints.models.item import Rarity

logger = logging.getLogger(__name__)

# (name, rarity, power)
DEFAULT_ITEMS: list[tuple[str, Rarity, int | None]] = [
    ("Wooden Sword", Rarity.COMMON, 5),
    ("Leather Cap", Rarity.COMMON, 3),
    ("Herbal Tea", Rarity.COMMON, 10),
    ("Iron Shield", Rarity.RARE, 15),
    ("Focus Potion", Rarity.RARE, 25),
    ("Phoenix Feather", Rarity.EPIC, 50),
    ("Crown of Deadlines", Rarity.LEGENDARY, 100),
]


async def seed_catalog(session: AsyncSession) -> int:
    """
    Add the default items if the catalog is empty.

    Returns:
        Number of items created
    """
    if await list_items(session):
        logger.info("Catalog already populated, skipping items")
        return 0

    for name, rarity, power in DEFAULT_ITEMS:
        await create_item(session, name, rarity.value, power)

    logger.info("Seeded %d catalog items", len(DEFAULT_ITEMS))
    return len(DEFAULT_ITEMS)


async def seed_achievements(session: AsyncSession) -> None:
    """Create or refresh the first-draw achievement."""
    await upsert_achievement(
        session,
        FIRST_DRAW_ACHIEVEMENT,
        title="First Spin",
        description="Spin the gacha for the first time.",
    )
    logger.info("Seeded achievement %s", FIRST_DRAW_ACHIEVEMENT)


async def run_seed(demo_user: str | None = None, demo_points: int = 100) -> dict[str, int]:
    """
    Seed catalog and achievements in one transaction.

    Args:
        demo_user: Name of a demo user to create, or None to skip
        demo_points: Starting balance for the demo user

    Returns:
        Dict with counts of created items and users
    """
    await init_db()

    async with async_session_factory() as session:
        items = await seed_catalog(session)
        await seed_achievements(session)

        users = 0
        if demo_user:
            user = await create_user(session, demo_user, points=demo_points)
            logger.info("Created demo user %s (id=%d, points=%d)", demo_user, user.id, demo_points)
            users = 1

        await session.commit()

    return {"items": items, "users": users}


def main() -> None:
    """CLI entry point for seeding the catalog."""
    parser = argparse.ArgumentParser(description="Seed the gacha catalog")
    parser.add_argument("--demo-user", help="create a demo user with this name")
    parser.add_argument("--demo-points", type=int, default=100, help="demo user balance")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_seed(demo_user=args.demo_user, demo_points=args.demo_points))


if __name__ == "__main__":
    main()
