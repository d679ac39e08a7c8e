"""
Multi-pull Mystery Ball batches.

INVARIANTS:
- Pulls for one student run strictly one after another; each pull is its
  own committed unit of work and sees the state left by the previous one
- Affordability is re-validated against the ledger on every pull, not
  against the snapshot used to plan the batch
- A failing pull halts the batch; pulls that already committed are kept
  and reported, never rolled back
- The batch can only be aborted between pulls
"""

import asyncio
import logging
from collections.abc import Sequence
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from classcoins.config import MAX_BATCH_CEILING
from classcoins.db.database import unit_of_work
from classcoins.models.economy import BatchPlan, BatchResult, CreatureEntry
from classcoins.models.failure import (
    EmptyPoolError,
    FailureKind,
    InsufficientFundsError,
    InvalidAmountError,
    KnownError,
)
from classcoins.services.gacha_resolver import GachaResolver

logger = logging.getLogger(__name__)


def plan_batch(
    requested_count: int,
    free_available: bool,
    balance: int,
    pull_cost: int,
    ceiling: int = MAX_BATCH_CEILING,
) -> BatchPlan:
    """
    Work out how many pulls a batch request will attempt.

    max_affordable = (1 if free else 0) + balance // pull_cost, capped at `ceiling`.

    Raises:
        InvalidAmountError: If requested_count or pull_cost is not positive
    """
    if requested_count < 1:
        raise InvalidAmountError("count", requested_count)
    if pull_cost < 1:
        raise InvalidAmountError("pull_cost", pull_cost)

    max_affordable = (1 if free_available else 0) + max(balance, 0) // pull_cost
    max_affordable = min(max_affordable, ceiling)

    return BatchPlan(
        requested_count=requested_count,
        max_affordable=max_affordable,
        actual_count=min(requested_count, max_affordable),
        free_available=free_available,
    )


class BatchOpener:
    """Runs a planned number of resolver invocations for one student."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        resolver: GachaResolver,
        today: date,
        ceiling: int = MAX_BATCH_CEILING,
    ):
        self._session_factory = session_factory
        self._resolver = resolver
        self._today = today
        self._ceiling = ceiling

    async def open_multiple(
        self,
        student_id: str,
        pool: Sequence[CreatureEntry],
        requested_count: int,
        free_available: bool,
        balance: int,
        pull_cost: int,
        abort: asyncio.Event | None = None,
    ) -> BatchResult:
        """
        Open up to `requested_count` Mystery Balls in sequence.

        `free_available` and `balance` are the caller's snapshot and only
        size the batch; every pull checks the live ledger again.

        Raises:
            InvalidAmountError: If requested_count is not positive
            EmptyPoolError: If the pool is empty (nothing charged)
            InsufficientFundsError: If not even one pull is affordable
        """
        plan = plan_batch(requested_count, free_available, balance, pull_cost, self._ceiling)

        if not pool:
            raise EmptyPoolError()
        if plan.actual_count == 0:
            raise InsufficientFundsError(student_id, balance, pull_cost)

        result = BatchResult(plan=plan)

        for index in range(plan.actual_count):
            if abort is not None and abort.is_set():
                self._stop(result, student_id, FailureKind.ABORTED, "batch aborted by caller")
                break

            use_free = free_available and index == 0
            try:
                async with unit_of_work(self._session_factory) as session:
                    outcome = await self._resolver.resolve(
                        session, student_id, pool, is_free=use_free, today=self._today
                    )
            except KnownError as e:
                self._stop(result, student_id, e.kind, e.message)
                break
            except SQLAlchemyError as e:
                self._stop(
                    result, student_id, FailureKind.STORAGE_UNAVAILABLE, type(e).__name__
                )
                break

            result.outcomes.append(outcome)

        logger.info(
            "BATCH_COMPLETED",
            extra={
                "student_id": student_id,
                "requested": plan.requested_count,
                "planned": plan.actual_count,
                "completed": len(result.outcomes),
                "stopped_early": result.stopped_early,
            },
        )
        return result

    def _stop(
        self, result: BatchResult, student_id: str, reason: FailureKind, detail: str
    ) -> None:
        result.stopped_early = True
        result.stop_reason = reason
        result.stop_detail = detail
        logger.warning(
            "BATCH_STOPPED_EARLY",
            extra={
                "student_id": student_id,
                "completed": len(result.outcomes),
                "planned": result.plan.actual_count,
                "reason": reason.value,
            },
        )
