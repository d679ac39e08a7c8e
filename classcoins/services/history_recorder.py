"""
Mystery Ball history service.

The store keeps every entry. The display cap (most recent N) is applied
at query time only. There is no update or delete.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from classcoins.config import DEFAULT_HISTORY_DISPLAY_LIMIT
from classcoins.db.operations import add_history, count_history, get_history, history_to_model
from classcoins.models.economy import HistoryEntry


class HistoryRecorder:
    """Appends and reads Mystery Ball history."""

    def __init__(self, session: AsyncSession, display_limit: int = DEFAULT_HISTORY_DISPLAY_LIMIT):
        self._session = session
        self.display_limit = display_limit

    async def append(self, entry: HistoryEntry) -> HistoryEntry:
        """Durably append an entry in the current unit of work."""
        row = await add_history(self._session, entry)
        return history_to_model(row)

    async def recent(self, student_id: str, limit: int | None = None) -> list[HistoryEntry]:
        """Newest entries first, capped at `limit` (default: display limit)."""
        rows = await get_history(self._session, student_id, limit=limit or self.display_limit)
        return [history_to_model(row) for row in rows]

    async def all_for(self, student_id: str) -> list[HistoryEntry]:
        """The full retained history, newest first."""
        rows = await get_history(self._session, student_id, limit=None)
        return [history_to_model(row) for row in rows]

    async def count(self, student_id: str) -> int:
        return await count_history(self._session, student_id)
