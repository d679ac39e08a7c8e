"""
Daily Attempt Gate - one free Mystery Ball attempt per student per day.

INVARIANTS:
- At most one free attempt is consumed per student per calendar day,
  even under concurrent invocation
- There is no reset job: eligibility is a pure date comparison, so the
  gate reopens by itself at the institution's midnight
"""

import logging
from datetime import UTC, date, datetime, tzinfo
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from classcoins.db.operations import get_gate, set_gate_date_if_different
from classcoins.models.failure import GateAlreadyConsumedError, StudentNotFoundError

logger = logging.getLogger(__name__)


def _resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return UTC
    return ZoneInfo(name)


def institution_today(timezone_name: str = "UTC", now: datetime | None = None) -> date:
    """
    The current calendar date at the institution.

    Args:
        timezone_name: IANA timezone of the school (e.g. "Europe/Istanbul")
        now: Optional aware datetime to convert instead of the current time
    """
    tz = _resolve_timezone(timezone_name)
    moment = now if now is not None else datetime.now(UTC)
    return moment.astimezone(tz).date()


class DailyAttemptGate:
    """Tracks whether a student has used today's free attempt."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def last_free_attempt_date(self, student_id: str) -> date | None:
        gate = await get_gate(self._session, student_id)
        if gate is None:
            raise StudentNotFoundError(student_id)
        return gate.last_free_attempt_date

    async def is_free_attempt_available(self, student_id: str, today: date) -> bool:
        """True iff the free attempt has not been used on `today`."""
        return await self.last_free_attempt_date(student_id) != today

    async def consume_free_attempt(self, student_id: str, today: date) -> bool:
        """
        Atomically mark today's free attempt as used.

        Returns True only for the caller whose conditional update matched;
        every other caller on the same day gets False.
        """
        consumed = await set_gate_date_if_different(self._session, student_id, today)
        if consumed:
            logger.info(
                "FREE_ATTEMPT_CONSUMED",
                extra={"student_id": student_id, "date": today.isoformat()},
            )
            return True

        # Distinguish "already used" from "no such student"
        await self.last_free_attempt_date(student_id)
        return False

    async def require_free_attempt(self, student_id: str, today: date) -> None:
        """
        Consume the free attempt or raise.

        Raises:
            GateAlreadyConsumedError: If today's free attempt was already used
            StudentNotFoundError: If the student has no gate
        """
        if not await self.consume_free_attempt(student_id, today):
            raise GateAlreadyConsumedError(student_id, today.isoformat())
