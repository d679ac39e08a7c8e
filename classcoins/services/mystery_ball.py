"""
Mystery Ball service.

Each attempt runs as one short transaction. Requests for the same student
are serialized in-process by a per-student lock; requests for different
students never contend. Across processes the conditional updates in the
ledger and daily gate stay the authority: the loser of a race observes
InsufficientFundsError, a paid fall-through, or ConcurrentModificationError,
never corrupted state.

Retries:
- A single attempt that loses the wallet compare-and-swap is retried
  transparently, at most `max_attempt_retries` times
- Batches never retry; they stop early and report why
"""

import asyncio
import logging
import random
import weakref
from collections.abc import Callable
from datetime import UTC, date, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from classcoins.config import Settings
from classcoins.db.database import unit_of_work
from classcoins.db.operations import creature_to_model, get_school_pool
from classcoins.models.economy import (
    BatchResult,
    CreatureEntry,
    HistoryEntry,
    MysteryBallStatus,
    Outcome,
)
from classcoins.models.failure import (
    ConcurrentModificationError,
    EmptyPoolError,
    StorageUnavailableError,
)
from classcoins.services.batch_opener import BatchOpener, plan_batch
from classcoins.services.coin_ledger import CoinLedger
from classcoins.services.daily_gate import DailyAttemptGate, institution_today
from classcoins.services.gacha_resolver import GachaResolver
from classcoins.services.history_recorder import HistoryRecorder

logger = logging.getLogger(__name__)


# =============================================================================
# PER-STUDENT LOCKS
# =============================================================================


class StudentLockRegistry:
    """
    One asyncio.Lock per student, created on demand.

    Locks are weakly referenced: once no request holds or waits on a
    student's lock it is dropped from the registry.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, student_id: str) -> asyncio.Lock:
        lock = self._locks.get(student_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[student_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


# Singleton registry instance
_student_locks: StudentLockRegistry | None = None


def get_student_locks() -> StudentLockRegistry:
    """Get the process-wide student lock registry."""
    global _student_locks
    if _student_locks is None:
        _student_locks = StudentLockRegistry()
    return _student_locks


def reset_student_locks() -> None:
    """Reset the process-wide registry (for testing)."""
    global _student_locks
    _student_locks = None


# =============================================================================
# SERVICE
# =============================================================================


class MysteryBallService:
    """Opens Mystery Balls for students against the configured economy."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        resolver: GachaResolver | None = None,
        locks: StudentLockRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ):
        self._session_factory = session_factory
        self.settings = settings
        self.resolver = resolver or GachaResolver.from_settings(settings, rng=rng)
        self._locks = locks or get_student_locks()
        self._clock = clock or (lambda: datetime.now(UTC))

    def today(self) -> date:
        """Calendar date at the institution, used by the daily gate."""
        return institution_today(self.settings.timezone, self._clock())

    async def _load_pool(self, session: AsyncSession, school_id: str) -> list[CreatureEntry]:
        return [creature_to_model(row) for row in await get_school_pool(session, school_id)]

    async def open_single(self, student_id: str) -> Outcome:
        """
        Open one Mystery Ball, using today's free attempt if it is available.

        Raises:
            EmptyPoolError: If the student's school has no creatures
            InsufficientFundsError: If the attempt is paid and not covered
            ConcurrentModificationError: If retries were exhausted
            StudentNotFoundError: If the student has no wallet
            StorageUnavailableError: If persistence failed (nothing applied)
        """
        today = self.today()
        retries = self.settings.max_attempt_retries

        async with self._locks.lock_for(student_id):
            attempt = 0
            while True:
                try:
                    async with unit_of_work(self._session_factory) as session:
                        wallet = await CoinLedger(session).get_wallet(student_id)
                        pool = await self._load_pool(session, wallet.school_id)
                        if not pool:
                            raise EmptyPoolError(wallet.school_id)
                        is_free = await DailyAttemptGate(session).is_free_attempt_available(
                            student_id, today
                        )
                        return await self.resolver.resolve(
                            session, student_id, pool, is_free=is_free, today=today
                        )
                except ConcurrentModificationError:
                    if attempt >= retries:
                        raise
                    attempt += 1
                    logger.info(
                        "ATTEMPT_RETRY",
                        extra={"student_id": student_id, "attempt": attempt, "limit": retries},
                    )
                except SQLAlchemyError as e:
                    logger.error(
                        "ATTEMPT_STORAGE_FAILURE",
                        extra={"student_id": student_id, "error": type(e).__name__},
                    )
                    raise StorageUnavailableError("open_single") from e

    async def open_multiple(
        self,
        student_id: str,
        requested_count: int,
        abort: asyncio.Event | None = None,
    ) -> BatchResult:
        """
        Open several Mystery Balls one after another.

        The batch is sized from a fresh snapshot of the wallet and gate; each
        pull then re-validates against the ledger. See BatchOpener.
        """
        today = self.today()

        async with self._locks.lock_for(student_id):
            try:
                async with unit_of_work(self._session_factory) as session:
                    wallet = await CoinLedger(session).get_wallet(student_id)
                    pool = await self._load_pool(session, wallet.school_id)
                    free_available = await DailyAttemptGate(session).is_free_attempt_available(
                        student_id, today
                    )
            except SQLAlchemyError as e:
                raise StorageUnavailableError("open_multiple") from e

            if not pool:
                raise EmptyPoolError(wallet.school_id)

            opener = BatchOpener(
                self._session_factory,
                self.resolver,
                today=today,
                ceiling=self.settings.batch_ceiling,
            )
            return await opener.open_multiple(
                student_id,
                pool,
                requested_count,
                free_available=free_available,
                balance=wallet.balance,
                pull_cost=self.resolver.pull_cost,
                abort=abort,
            )

    async def status(self, student_id: str) -> MysteryBallStatus:
        """Balance, free-attempt availability and how many pulls are affordable."""
        today = self.today()
        try:
            async with unit_of_work(self._session_factory) as session:
                wallet = await CoinLedger(session).get_wallet(student_id)
                pool = await self._load_pool(session, wallet.school_id)
                free_available = await DailyAttemptGate(session).is_free_attempt_available(
                    student_id, today
                )
        except SQLAlchemyError as e:
            raise StorageUnavailableError("status") from e

        plan = plan_batch(
            requested_count=self.settings.batch_ceiling,
            free_available=free_available,
            balance=wallet.balance,
            pull_cost=self.resolver.pull_cost,
            ceiling=self.settings.batch_ceiling,
        )
        return MysteryBallStatus(
            student_id=student_id,
            balance=wallet.balance,
            free_attempt_available=free_available,
            pull_cost=self.resolver.pull_cost,
            max_affordable=plan.max_affordable,
            pool_size=len(pool),
            today=today,
        )

    async def history(
        self, student_id: str, limit: int | None = None
    ) -> tuple[list[HistoryEntry], int]:
        """Most recent history entries plus the total retained count."""
        try:
            async with unit_of_work(self._session_factory) as session:
                await CoinLedger(session).get_wallet(student_id)
                recorder = HistoryRecorder(session, self.settings.history_display_limit)
                return await recorder.recent(student_id, limit), await recorder.count(student_id)
        except SQLAlchemyError as e:
            raise StorageUnavailableError("history") from e
