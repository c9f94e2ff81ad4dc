"""
Tests for the spin orchestrator.

INVARIANTS:
- No debit without records, no records without a debit
- Batch cost is cost_per_draw * clamped count, debited once
- Failures before the debit change nothing
- Grouping and achievements are best-effort
"""

import random
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from questpoints.db.operations import (
    count_draw_records,
    create_inventory_grant,
    create_item,
    create_user,
    get_balance,
    has_achievement,
    list_audit_entries,
    list_notifications,
    list_owned_items,
    upsert_achievement,
)
from questpoints.models.db import DrawBatchDB, DrawRecordDB, ItemDB, OwnedItemDB
from questpoints.models.failure import UserNotFoundError
from questpoints.services.gacha import (
    GachaConfig,
    GachaService,
    PersistenceFailureError,
)
from questpoints.services.ledger import InsufficientFundsError
from questpoints.services.weighted_selector import InvalidCatalogError


@pytest.fixture
def service() -> GachaService:
    return GachaService(GachaConfig(cost_per_draw=10), rng=random.Random(1234))


class TestGachaConfig:
    def test_defaults(self) -> None:
        config = GachaConfig()

        assert config.cost_per_draw == 10
        assert config.max_batch == 100
        assert config.default_batch == 10

    def test_max_batch_hard_capped(self) -> None:
        assert GachaConfig(max_batch=500).max_batch == 100

    def test_default_batch_within_max(self) -> None:
        assert GachaConfig(max_batch=5, default_batch=10).default_batch == 5

    @pytest.mark.parametrize(
        ("requested", "expected"),
        [(None, 10), (0, 1), (-3, 1), (1, 1), (10, 10), (100, 100), (500, 100)],
    )
    def test_clamp_count(self, requested: int | None, expected: int) -> None:
        assert GachaConfig().clamp_count(requested) == expected

    def test_non_positive_cost_rejected(self) -> None:
        with pytest.raises(ValueError, match="cost_per_draw"):
            GachaConfig(cost_per_draw=0)


class TestSingleSpin:
    async def test_single_legendary_scenario(self, session: AsyncSession) -> None:
        """Balance 10, cost 10: first spin wins item 1, second is refused."""
        item = await create_item(session, "Crown", "legendary")
        user = await create_user(session, "alice", points=10)
        service = GachaService(GachaConfig(cost_per_draw=10))

        result = await service.spin(session, user.id)

        assert result.draw.item.id == item.id
        assert result.remaining_balance == 0

        with pytest.raises(InsufficientFundsError):
            await service.spin(session, user.id)

        assert await get_balance(session, user.id) == 0
        assert await count_draw_records(session, user.id) == 1

    async def test_spin_persists_everything(
        self, session: AsyncSession, catalog: list[ItemDB], service: GachaService
    ) -> None:
        user = await create_user(session, "alice", points=100)

        result = await service.spin(session, user.id)

        assert result.cost == 10
        assert result.remaining_balance == 90
        assert await get_balance(session, user.id) == 90
        assert await count_draw_records(session, user.id) == 1

        owned = await list_owned_items(session, user.id)
        assert [o.id for o in owned] == [result.draw.inventory_id]
        assert owned[0].item_id == result.draw.item.id

        notifications = await list_notifications(session, user.id)
        assert [n.type for n in notifications] == ["item_gacha"]
        assert result.draw.item.name in notifications[0].message

        audit = await list_audit_entries(session, user.id)
        assert [a.action for a in audit] == ["item_gacha"]

    async def test_single_spin_has_no_batch(
        self, session: AsyncSession, catalog: list[ItemDB], service: GachaService
    ) -> None:
        user = await create_user(session, "alice", points=100)

        result = await service.spin(session, user.id)

        assert result.draw.batch_id is None

    async def test_empty_catalog_changes_nothing(
        self, session: AsyncSession, service: GachaService
    ) -> None:
        user = await create_user(session, "alice", points=100)

        with pytest.raises(InvalidCatalogError):
            await service.spin(session, user.id)

        assert await get_balance(session, user.id) == 100
        assert await count_draw_records(session, user.id) == 0

    async def test_unknown_user(
        self, session: AsyncSession, catalog: list[ItemDB], service: GachaService
    ) -> None:
        with pytest.raises(UserNotFoundError):
            await service.spin(session, 999)

    async def test_insufficient_funds_changes_nothing(
        self, session: AsyncSession, catalog: list[ItemDB], service: GachaService
    ) -> None:
        user = await create_user(session, "alice", points=9)

        with pytest.raises(InsufficientFundsError):
            await service.spin(session, user.id)

        assert await get_balance(session, user.id) == 9
        assert await count_draw_records(session, user.id) == 0
        assert await list_owned_items(session, user.id) == []
        assert await list_notifications(session, user.id) == []

    async def test_seeded_rng_is_reproducible(
        self, session: AsyncSession, catalog: list[ItemDB]
    ) -> None:
        user = await create_user(session, "alice", points=1000)
        first = GachaService(rng=random.Random(99))
        second = GachaService(rng=random.Random(99))

        a = [(await first.spin(session, user.id)).draw.item.id for _ in range(5)]
        b = [(await second.spin(session, user.id)).draw.item.id for _ in range(5)]

        assert a == b


class TestBatchSpin:
    async def test_batch_accounting(
        self, session: AsyncSession, catalog: list[ItemDB], service: GachaService
    ) -> None:
        """count=10, cost=10: one debit of 100, ten records sharing one batch."""
        user = await create_user(session, "alice", points=150)

        result = await service.spin_batch(session, user.id, 10)

        assert result.count == 10
        assert result.total_cost == 100
        assert result.remaining_balance == 50
        assert await get_balance(session, user.id) == 50
        assert await count_draw_records(session, user.id) == 10
        assert len(await list_owned_items(session, user.id)) == 10

        assert result.batch_id is not None
        assert {draw.batch_id for draw in result.results} == {result.batch_id}

        batch = await session.get(DrawBatchDB, result.batch_id)
        assert batch is not None
        assert batch.count == 10
        assert batch.total_cost == 100

        rows = await session.execute(
            select(func.count())
            .select_from(DrawRecordDB)
            .where(DrawRecordDB.batch_id == result.batch_id)
        )
        assert rows.scalar_one() == 10

    async def test_batch_writes_one_summary_notification(
        self, session: AsyncSession, catalog: list[ItemDB], service: GachaService
    ) -> None:
        user = await create_user(session, "alice", points=100)

        await service.spin_batch(session, user.id, 5)

        notifications = await list_notifications(session, user.id)
        assert len(notifications) == 1
        assert "5" in notifications[0].message

        audit = await list_audit_entries(session, user.id)
        assert [a.action for a in audit] == ["item_gacha_batch"]
        assert audit[0].detail is not None
        assert audit[0].detail.startswith("5 draws for 50 points")

    async def test_oversized_batch_clamped(
        self, session: AsyncSession, catalog: list[ItemDB], service: GachaService
    ) -> None:
        """500 requested -> 100 drawn, cost on 100."""
        user = await create_user(session, "alice", points=2000)

        result = await service.spin_batch(session, user.id, 500)

        assert result.count == 100
        assert result.total_cost == 1000
        assert await get_balance(session, user.id) == 1000
        assert await count_draw_records(session, user.id) == 100

    async def test_zero_count_clamped_to_one(
        self, session: AsyncSession, catalog: list[ItemDB], service: GachaService
    ) -> None:
        user = await create_user(session, "alice", points=100)

        result = await service.spin_batch(session, user.id, 0)

        assert result.count == 1
        assert result.total_cost == 10

    async def test_default_count(
        self, session: AsyncSession, catalog: list[ItemDB], service: GachaService
    ) -> None:
        user = await create_user(session, "alice", points=100)

        result = await service.spin_batch(session, user.id)

        assert result.count == 10

    async def test_batch_insufficient_funds_is_all_or_nothing(
        self, session: AsyncSession, catalog: list[ItemDB], service: GachaService
    ) -> None:
        """Enough for 9 draws, not 10: nothing is drawn at all."""
        user = await create_user(session, "alice", points=90)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await service.spin_batch(session, user.id, 10)

        assert exc_info.value.required == 100
        assert await get_balance(session, user.id) == 90
        assert await count_draw_records(session, user.id) == 0

    async def test_grouping_unavailable_still_draws(
        self,
        async_engine: AsyncEngine,
        session: AsyncSession,
        service: GachaService,
    ) -> None:
        async with async_engine.begin() as conn:
            await conn.run_sync(DrawBatchDB.__table__.drop)
        await create_item(session, "Stick", "common")
        user = await create_user(session, "alice", points=100)

        result = await service.spin_batch(session, user.id, 3)

        assert result.batch_id is None
        assert all(draw.batch_id is None for draw in result.results)
        assert await count_draw_records(session, user.id) == 3
        assert await get_balance(session, user.id) == 70

    async def test_grouping_failure_is_swallowed(
        self,
        session: AsyncSession,
        catalog: list[ItemDB],
        service: GachaService,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            "questpoints.services.gacha.create_batch",
            AsyncMock(side_effect=SQLAlchemyError("batch table locked")),
        )
        user = await create_user(session, "alice", points=100)

        result = await service.spin_batch(session, user.id, 4)

        assert result.batch_id is None
        assert await count_draw_records(session, user.id) == 4
        assert await get_balance(session, user.id) == 60


class TestAtomicity:
    async def test_record_failure_rolls_back_debit(
        self,
        session: AsyncSession,
        catalog: list[ItemDB],
        service: GachaService,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            "questpoints.services.gacha.create_draw_record",
            AsyncMock(side_effect=SQLAlchemyError("disk full")),
        )
        user = await create_user(session, "alice", points=100)

        with pytest.raises(PersistenceFailureError) as exc_info:
            await service.spin(session, user.id)

        assert exc_info.value.status_code == 500
        assert isinstance(exc_info.value.__cause__, SQLAlchemyError)
        assert await get_balance(session, user.id) == 100
        assert await count_draw_records(session, user.id) == 0

    async def test_mid_batch_failure_rolls_back_everything(
        self,
        session: AsyncSession,
        catalog: list[ItemDB],
        service: GachaService,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Five grants succeed, the sixth fails: no records, no grants, no charge."""
        calls = 0

        async def flaky_grant(session: AsyncSession, user_id: int, item_id: int) -> OwnedItemDB:
            nonlocal calls
            calls += 1
            if calls == 6:
                raise SQLAlchemyError("connection reset")
            return await create_inventory_grant(session, user_id, item_id)

        monkeypatch.setattr("questpoints.services.gacha.create_inventory_grant", flaky_grant)
        user = await create_user(session, "alice", points=100)

        with pytest.raises(PersistenceFailureError):
            await service.spin_batch(session, user.id, 10)

        assert await get_balance(session, user.id) == 100
        assert await count_draw_records(session, user.id) == 0
        assert await list_owned_items(session, user.id) == []
        batches = await session.execute(select(func.count()).select_from(DrawBatchDB))
        assert batches.scalar_one() == 0

    async def test_notification_failure_rolls_back(
        self,
        session: AsyncSession,
        catalog: list[ItemDB],
        service: GachaService,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            "questpoints.services.gacha.create_notification",
            AsyncMock(side_effect=SQLAlchemyError("notifications down")),
        )
        user = await create_user(session, "alice", points=100)

        with pytest.raises(PersistenceFailureError):
            await service.spin(session, user.id)

        assert await get_balance(session, user.id) == 100
        assert await count_draw_records(session, user.id) == 0

    async def test_spin_is_committed_before_returning(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        session: AsyncSession,
        catalog: list[ItemDB],
        service: GachaService,
    ) -> None:
        user = await create_user(session, "alice", points=100)
        await session.commit()

        await service.spin(session, user.id)
        await session.close()

        async with session_factory() as reader:
            assert await get_balance(reader, user.id) == 90
            assert await count_draw_records(reader, user.id) == 1

    async def test_commit_failure_reports_persistence_failure(
        self,
        session: AsyncSession,
        catalog: list[ItemDB],
        service: GachaService,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        user = await create_user(session, "alice", points=100)
        await session.commit()
        user_id = user.id
        monkeypatch.setattr(
            session,
            "commit",
            AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error"))),
        )

        with pytest.raises(PersistenceFailureError):
            await service.spin_batch(session, user_id, 3)

        assert await get_balance(session, user_id) == 100
        assert await count_draw_records(session, user_id) == 0

    async def test_spin_after_failure_succeeds(
        self,
        session: AsyncSession,
        catalog: list[ItemDB],
        service: GachaService,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """The session stays usable after a rolled-back spin."""
        user = await create_user(session, "alice", points=100)
        monkeypatch.setattr(
            "questpoints.services.gacha.create_draw_record",
            AsyncMock(side_effect=SQLAlchemyError("disk full")),
        )
        with pytest.raises(PersistenceFailureError):
            await service.spin(session, user.id)

        monkeypatch.undo()
        result = await service.spin(session, user.id)

        assert result.remaining_balance == 90
        assert await count_draw_records(session, user.id) == 1


class TestAchievements:
    async def test_first_spin_grants_once(
        self, session: AsyncSession, catalog: list[ItemDB], service: GachaService
    ) -> None:
        await upsert_achievement(session, "first_gacha", "First Spin")
        user = await create_user(session, "alice", points=100)

        await service.spin(session, user.id)
        await service.spin(session, user.id)

        assert await has_achievement(session, user.id, "first_gacha") is True
        notifications = await list_notifications(session, user.id)
        assert [n.type for n in notifications].count("achievement") == 1
        audit = await list_audit_entries(session, user.id)
        assert [a.action for a in audit].count("achievement_unlocked") == 1

    async def test_batch_grants_first_draw(
        self, session: AsyncSession, catalog: list[ItemDB], service: GachaService
    ) -> None:
        await upsert_achievement(session, "first_gacha", "First Spin")
        user = await create_user(session, "alice", points=100)

        await service.spin_batch(session, user.id, 3)

        assert await has_achievement(session, user.id, "first_gacha") is True

    async def test_missing_definition_skipped(
        self, session: AsyncSession, catalog: list[ItemDB], service: GachaService
    ) -> None:
        user = await create_user(session, "alice", points=100)

        result = await service.spin(session, user.id)

        assert result.remaining_balance == 90
        assert await has_achievement(session, user.id, "first_gacha") is False

    async def test_grant_failure_does_not_abort_spin(
        self,
        session: AsyncSession,
        catalog: list[ItemDB],
        service: GachaService,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        await upsert_achievement(session, "first_gacha", "First Spin")
        monkeypatch.setattr(
            "questpoints.services.gacha.grant_achievement",
            AsyncMock(side_effect=SQLAlchemyError("constraint")),
        )
        user = await create_user(session, "alice", points=100)

        result = await service.spin(session, user.id)

        assert result.remaining_balance == 90
        assert await count_draw_records(session, user.id) == 1
        assert await has_achievement(session, user.id, "first_gacha") is False
