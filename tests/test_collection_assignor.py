"""Tests for creature assignment."""

from datetime import date
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from classcoins.db.operations import get_gate, upsert_creatures
from classcoins.models.economy import CreatureEntry
from classcoins.models.failure import (
    AssignmentFailedError,
    FailureKind,
    InvalidCollectibleError,
)
from classcoins.services.coin_ledger import CoinLedger
from classcoins.services.collection_assignor import (
    SOURCE_MYSTERY_BALL,
    SOURCE_TEACHER_AWARD,
    CollectionAssignor,
)
from classcoins.services.daily_gate import DailyAttemptGate


@pytest.fixture
async def assignor(session: AsyncSession, pool: list[CreatureEntry]) -> CollectionAssignor:
    await CoinLedger(session).open_wallet("stu-1", "school-1")
    await upsert_creatures(session, "school-1", pool)
    await upsert_creatures(
        session, "school-2", [CreatureEntry(id="frostowl", name="Frostowl", school_id="school-2")]
    )
    return CollectionAssignor(session)


class TestAssign:
    async def test_assign_records_ownership(self, assignor: CollectionAssignor) -> None:
        """A catalog creature is added to the collection."""
        record = await assignor.assign("stu-1", "sparkfox")

        assert record.id is not None
        assert record.creature_id == "sparkfox"
        assert record.source == SOURCE_MYSTERY_BALL
        assert record.acquired_at is not None

    async def test_duplicates_are_separate_records(self, assignor: CollectionAssignor) -> None:
        """The pool never depletes; the same creature can be owned twice."""
        first = await assignor.assign("stu-1", "sparkfox")
        second = await assignor.assign("stu-1", "sparkfox")

        assert first.id != second.id
        assert await assignor.count_owned("stu-1") == 2

    async def test_teacher_award_source(self, assignor: CollectionAssignor) -> None:
        """The ownership source is recorded."""
        record = await assignor.assign("stu-1", "mossling", source=SOURCE_TEACHER_AWARD)

        assert record.source == SOURCE_TEACHER_AWARD

    async def test_unknown_source_rejected(self, assignor: CollectionAssignor) -> None:
        """Sources outside the known set are a programming error."""
        with pytest.raises(ValueError, match="Unknown ownership source"):
            await assignor.assign("stu-1", "sparkfox", source="lottery")

    async def test_other_school_creature_rejected(self, assignor: CollectionAssignor) -> None:
        """A creature from another school's pool is not valid here."""
        with pytest.raises(InvalidCollectibleError) as exc_info:
            await assignor.assign("stu-1", "frostowl", school_id="school-1")

        assert exc_info.value.kind == FailureKind.INVALID_COLLECTIBLE
        assert exc_info.value.status_code == 404

    async def test_list_owned_oldest_first(self, assignor: CollectionAssignor) -> None:
        """Collection reads keep acquisition order."""
        await assignor.assign("stu-1", "tidepup")
        await assignor.assign("stu-1", "sparkfox")

        owned = await assignor.list_owned("stu-1")

        assert [r.creature_id for r in owned] == ["tidepup", "sparkfox"]

    async def test_write_failure_is_wrapped(self, assignor: CollectionAssignor) -> None:
        """Storage errors surface as AssignmentFailedError, not raw driver errors."""
        error = OperationalError("INSERT", {}, Exception("disk I/O error"))
        with (
            patch("classcoins.services.collection_assignor.add_ownership", side_effect=error),
            pytest.raises(AssignmentFailedError) as exc_info,
        ):
            await assignor.assign("stu-1", "sparkfox")

        assert exc_info.value.creature_id == "sparkfox"
        assert exc_info.value.reason == "OperationalError"
        assert await assignor.count_owned("stu-1") == 0


class TestInvalidCollectibleLeavesStateUntouched:
    async def test_unknown_creature(
        self, session: AsyncSession, assignor: CollectionAssignor
    ) -> None:
        """Unknown ids fail and the wallet and gate are unchanged."""
        ledger = CoinLedger(session)
        gate = DailyAttemptGate(session)
        await ledger.credit("stu-1", 12)
        await gate.consume_free_attempt("stu-1", date(2025, 3, 14))

        wallet_before = await ledger.get_wallet("stu-1")
        gate_before = (await get_gate(session, "stu-1")).last_free_attempt_date

        with pytest.raises(InvalidCollectibleError):
            await assignor.assign("stu-1", "unknown-id")

        assert await ledger.get_wallet("stu-1") == wallet_before
        assert (await get_gate(session, "stu-1")).last_free_attempt_date == gate_before
        assert await assignor.count_owned("stu-1") == 0
