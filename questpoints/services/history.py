"""
History Reader: a user's own past draws.

Read-only. Newest first, one page of HISTORY_PAGE_SIZE entries, each
carrying its batch id when it was part of a recorded batch.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from questpoints.config import HISTORY_PAGE_SIZE
from questpoints.db.operations import draw_record_to_history, list_draw_history
from questpoints.models.gacha import HistoryEntry


async def get_draw_history(
    session: AsyncSession,
    user_id: int,
    limit: int = HISTORY_PAGE_SIZE,
) -> list[HistoryEntry]:
    """Return up to `limit` of the user's draws, newest first."""
    records = await list_draw_history(session, user_id, limit=min(limit, HISTORY_PAGE_SIZE))
    return [draw_record_to_history(record) for record in records]


def group_by_batch(entries: list[HistoryEntry]) -> list[tuple[int | None, list[HistoryEntry]]]:
    """
    Group consecutive history entries by batch id.

    Order is preserved. Ungrouped draws (batch_id None) each form their
    own group so single spins are not merged together.
    """
    groups: list[tuple[int | None, list[HistoryEntry]]] = []
    for entry in entries:
        if groups and entry.batch_id is not None and groups[-1][0] == entry.batch_id:
            groups[-1][1].append(entry)
        else:
            groups.append((entry.batch_id, [entry]))
    return groups
