"""Tests for multi-pull batches."""

import asyncio
import random
from datetime import date
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from classcoins.models.economy import CreatureEntry, OutcomeKind
from classcoins.models.failure import (
    EmptyPoolError,
    FailureKind,
    InsufficientFundsError,
    InvalidAmountError,
)
from classcoins.services.batch_opener import BatchOpener, plan_batch
from classcoins.services.coin_ledger import CoinLedger
from classcoins.services.gacha_resolver import GachaResolver
from classcoins.services.history_recorder import HistoryRecorder

TODAY = date(2025, 3, 14)
EMPTY_R = 0.95


async def _balance(session_factory: async_sessionmaker[AsyncSession], student_id: str) -> int:
    async with session_factory() as s:
        return await CoinLedger(s).get_balance(student_id)


async def _history_count(session_factory: async_sessionmaker[AsyncSession], student_id: str) -> int:
    async with session_factory() as s:
        return await HistoryRecorder(s).count(student_id)


class TestPlanBatch:
    def test_paid_only(self) -> None:
        """floor(balance / cost) pulls without a free attempt."""
        plan = plan_batch(requested_count=5, free_available=False, balance=12, pull_cost=5)

        assert plan.max_affordable == 2
        assert plan.actual_count == 2

    def test_free_adds_one(self) -> None:
        """The free attempt counts on top of paid pulls."""
        plan = plan_batch(requested_count=5, free_available=True, balance=12, pull_cost=5)

        assert plan.max_affordable == 3
        assert plan.actual_count == 3

    def test_requested_below_affordable(self) -> None:
        """Never more than requested."""
        plan = plan_batch(requested_count=1, free_available=True, balance=100, pull_cost=5)

        assert plan.actual_count == 1

    def test_ceiling_caps_affordable(self) -> None:
        """A hard ceiling of 10 applies however rich the student is."""
        plan = plan_batch(requested_count=50, free_available=True, balance=1000, pull_cost=5)

        assert plan.max_affordable == 10
        assert plan.actual_count == 10

    def test_custom_ceiling(self) -> None:
        """The ceiling is configurable downward."""
        plan = plan_batch(5, free_available=False, balance=100, pull_cost=5, ceiling=3)

        assert plan.actual_count == 3

    def test_nothing_affordable(self) -> None:
        """Zero pulls when broke and the free attempt is gone."""
        plan = plan_batch(requested_count=5, free_available=False, balance=4, pull_cost=5)

        assert plan.actual_count == 0

    @pytest.mark.parametrize("count", [0, -1])
    def test_rejects_non_positive_count(self, count: int) -> None:
        """Counts below one are invalid input."""
        with pytest.raises(InvalidAmountError):
            plan_batch(requested_count=count, free_available=True, balance=10, pull_cost=5)


class TestOpenMultiple:
    async def test_batch_after_free_attempt_used(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        make_student,
        seed_pool,
        pool: list[CreatureEntry],
    ) -> None:
        """Balance 12, cost 5, free used, five requested: two pulls, ten coins."""
        await make_student("stu-1", balance=12, last_free_attempt_date=TODAY)
        await seed_pool(pool)
        resolver = GachaResolver(pull_cost=5, rng=random.Random(42))
        opener = BatchOpener(session_factory, resolver, today=TODAY)

        result = await opener.open_multiple(
            "stu-1", pool, 5, free_available=False, balance=12, pull_cost=5
        )

        assert result.plan.actual_count == 2
        assert len(result.outcomes) == 2
        assert result.stopped_early is False
        assert result.coins_spent == 10
        assert sum(result.summary.values()) == 2
        assert await _history_count(session_factory, "stu-1") == 2

        async with session_factory() as s:
            trail = await CoinLedger(s).list_transactions("stu-1")
        assert sum(tx.change_amount for tx in trail if tx.change_amount < 0) == -10
        assert await _balance(session_factory, "stu-1") == 2 + result.coins_won

    async def test_free_pull_comes_first(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        make_student,
        seed_pool,
        pool: list[CreatureEntry],
        scripted_rng,
    ) -> None:
        """Only the first pull of a batch uses the free attempt."""
        await make_student("stu-1", balance=5)
        await seed_pool(pool)
        resolver = GachaResolver(pull_cost=5, rng=scripted_rng([EMPTY_R, EMPTY_R]))
        opener = BatchOpener(session_factory, resolver, today=TODAY)

        result = await opener.open_multiple(
            "stu-1", pool, 3, free_available=True, balance=5, pull_cost=5
        )

        assert [o.was_free for o in result.outcomes] == [True, False]
        assert [o.cost_charged for o in result.outcomes] == [0, 5]
        assert result.summary[OutcomeKind.EMPTY] == 2
        assert result.final_balance == 0

    async def test_stops_when_balance_drained_externally(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        make_student,
        seed_pool,
        pool: list[CreatureEntry],
        scripted_rng,
    ) -> None:
        """Each pull re-checks the ledger; a stale snapshot halts the batch."""
        await make_student("stu-1", balance=5, last_free_attempt_date=TODAY)
        await seed_pool(pool)
        resolver = GachaResolver(pull_cost=5, rng=scripted_rng([EMPTY_R, EMPTY_R]))
        opener = BatchOpener(session_factory, resolver, today=TODAY)

        # Snapshot says 10 coins, the ledger only has 5
        result = await opener.open_multiple(
            "stu-1", pool, 2, free_available=False, balance=10, pull_cost=5
        )

        assert len(result.outcomes) == 1
        assert result.stopped_early is True
        assert result.stop_reason == FailureKind.INSUFFICIENT_FUNDS
        assert await _balance(session_factory, "stu-1") == 0
        assert await _history_count(session_factory, "stu-1") == 1

    async def test_storage_failure_keeps_committed_pulls(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        make_student,
        seed_pool,
        pool: list[CreatureEntry],
        scripted_rng,
    ) -> None:
        """A failing pull rolls back alone; earlier pulls stay committed."""
        await make_student("stu-1", balance=10, last_free_attempt_date=TODAY)
        await seed_pool(pool)
        resolver = GachaResolver(pull_cost=5, rng=scripted_rng([EMPTY_R, EMPTY_R]))
        opener = BatchOpener(session_factory, resolver, today=TODAY)

        real_append = HistoryRecorder.append
        calls = 0

        async def flaky_append(self, entry):
            nonlocal calls
            calls += 1
            if calls == 2:
                raise OperationalError("INSERT", {}, Exception("disk full"))
            return await real_append(self, entry)

        with patch.object(HistoryRecorder, "append", flaky_append):
            result = await opener.open_multiple(
                "stu-1", pool, 2, free_available=False, balance=10, pull_cost=5
            )

        assert len(result.outcomes) == 1
        assert result.stop_reason == FailureKind.STORAGE_UNAVAILABLE
        assert "disk full" not in (result.stop_detail or "")
        # Second debit was rolled back with its failed history entry
        assert await _balance(session_factory, "stu-1") == 5
        assert await _history_count(session_factory, "stu-1") == 1

    async def test_abort_between_pulls(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        make_student,
        seed_pool,
        pool: list[CreatureEntry],
        scripted_rng,
    ) -> None:
        """An abort request lets the running pull finish, then stops."""
        await make_student("stu-1", balance=15, last_free_attempt_date=TODAY)
        await seed_pool(pool)
        resolver = GachaResolver(pull_cost=5, rng=scripted_rng([EMPTY_R] * 3))
        abort = asyncio.Event()

        real_resolve = resolver.resolve

        async def resolve_then_abort(*args, **kwargs):
            outcome = await real_resolve(*args, **kwargs)
            abort.set()
            return outcome

        resolver.resolve = resolve_then_abort
        opener = BatchOpener(session_factory, resolver, today=TODAY)

        result = await opener.open_multiple(
            "stu-1", pool, 3, free_available=False, balance=15, pull_cost=5, abort=abort
        )

        assert len(result.outcomes) == 1
        assert result.stopped_early is True
        assert result.stop_reason == FailureKind.ABORTED
        assert await _balance(session_factory, "stu-1") == 10

    async def test_nothing_affordable_raises(
        self, session_factory: async_sessionmaker[AsyncSession], pool: list[CreatureEntry]
    ) -> None:
        """A batch that cannot start a single pull is refused."""
        opener = BatchOpener(session_factory, GachaResolver(pull_cost=5), today=TODAY)

        with pytest.raises(InsufficientFundsError):
            await opener.open_multiple(
                "stu-1", pool, 3, free_available=False, balance=4, pull_cost=5
            )

    async def test_empty_pool_raises(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """No pulls are attempted against an empty pool."""
        opener = BatchOpener(session_factory, GachaResolver(pull_cost=5), today=TODAY)

        with pytest.raises(EmptyPoolError):
            await opener.open_multiple("stu-1", [], 3, free_available=True, balance=0, pull_cost=5)
