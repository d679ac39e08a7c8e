"""
Gacha Resolver - resolves one Mystery Ball attempt.

Flow for a single attempt (all inside the caller's unit of work):

    GATE_CHECK -> {FREE | PAID} -> RESOLVING -> {COLLECTIBLE | CURRENCY | EMPTY} -> RECORDED

INVARIANTS:
- An empty pool fails with EmptyPoolError before anything is charged
- A charged attempt always yields exactly one outcome: if the collectible
  cannot be assigned, the attempt pays out coins instead
- Debit, gate consumption, reward and history entry commit together or
  not at all (the caller commits or rolls back the session)
- The probabilistic draw itself is never retried
"""

import logging
import random
from collections.abc import Sequence
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from classcoins.config import Settings
from classcoins.models.economy import (
    CreatureEntry,
    HistoryEntry,
    Outcome,
    OutcomeKind,
    ProbabilityTable,
)
from classcoins.models.failure import (
    AssignmentFailedError,
    EmptyPoolError,
    GateAlreadyConsumedError,
    InvalidAmountError,
)
from classcoins.services.coin_ledger import CoinLedger
from classcoins.services.collection_assignor import SOURCE_MYSTERY_BALL, CollectionAssignor
from classcoins.services.daily_gate import DailyAttemptGate
from classcoins.services.history_recorder import HistoryRecorder

logger = logging.getLogger(__name__)

# Coin trail labels
PURCHASE_REASON = "Mystery Ball purchase"
REWARD_REASON = "Mystery Ball reward"
RELATED_ENTITY_TYPE = "mystery_ball"


class GachaResolver:
    """
    Draws one outcome and applies it to the ledger and collection.

    The random source is injectable so draws are reproducible in tests.
    """

    def __init__(
        self,
        pull_cost: int,
        probability_table: ProbabilityTable | None = None,
        currency_reward_range: tuple[int, int] = (1, 5),
        rng: random.Random | None = None,
    ):
        if pull_cost < 1:
            raise InvalidAmountError("pull_cost", pull_cost)
        low, high = currency_reward_range
        if low < 1 or low > high:
            raise ValueError(f"Invalid currency reward range: {currency_reward_range}")

        self.pull_cost = pull_cost
        self.probability_table = probability_table or ProbabilityTable()
        self.currency_reward_range = (low, high)
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(cls, settings: Settings, rng: random.Random | None = None) -> "GachaResolver":
        return cls(
            pull_cost=settings.pull_cost,
            probability_table=ProbabilityTable(
                collectible=settings.collectible_probability,
                currency=settings.currency_probability,
            ),
            currency_reward_range=(settings.currency_reward_min, settings.currency_reward_max),
            rng=rng,
        )

    # --- Pure draws ---

    def draw_kind(self) -> OutcomeKind:
        """Draw r uniformly from [0, 1) and map it through the probability table."""
        return self.probability_table.kind_for(self._rng.random())

    def draw_coin_amount(self) -> int:
        low, high = self.currency_reward_range
        return self._rng.randint(low, high)

    def pick_creature(self, pool: Sequence[CreatureEntry]) -> CreatureEntry:
        """Uniform pick; the pool itself is never modified."""
        return self._rng.choice(pool)

    # --- Resolution ---

    async def resolve(
        self,
        session: AsyncSession,
        student_id: str,
        pool: Sequence[CreatureEntry],
        is_free: bool,
        today: date,
    ) -> Outcome:
        """
        Resolve one attempt for a student.

        Args:
            session: Unit of work; flushed here, committed by the caller
            student_id: Who is pulling
            pool: The school's creature catalog
            is_free: Try to use today's free attempt first
            today: Institution calendar date for the daily gate

        Raises:
            EmptyPoolError: If the pool is empty (nothing charged)
            InsufficientFundsError: If a paid attempt cannot be covered
            ConcurrentModificationError: If the wallet changed mid-debit
            InvalidCollectibleError: If a pool entry is not in the catalog
            StudentNotFoundError: If the student has no wallet
        """
        if not pool:
            raise EmptyPoolError()

        ledger = CoinLedger(session)

        was_free = False
        if is_free:
            try:
                await DailyAttemptGate(session).require_free_attempt(student_id, today)
                was_free = True
            except GateAlreadyConsumedError:
                # Lost the free attempt to another request; fall through to paid
                logger.info(
                    "FREE_ATTEMPT_ALREADY_USED",
                    extra={"student_id": student_id, "date": today.isoformat()},
                )

        if was_free:
            cost_charged = 0
            balance = await ledger.get_balance(student_id)
        else:
            cost_charged = self.pull_cost
            balance = await ledger.debit(
                student_id,
                self.pull_cost,
                reason=PURCHASE_REASON,
                related_entity_type=RELATED_ENTITY_TYPE,
            )

        kind = self.draw_kind()
        creature: CreatureEntry | None = None
        coin_amount: int | None = None
        fell_back = False

        if kind == OutcomeKind.COLLECTIBLE:
            creature = self.pick_creature(pool)
            try:
                await CollectionAssignor(session).assign(
                    student_id,
                    creature.id,
                    school_id=creature.school_id,
                    source=SOURCE_MYSTERY_BALL,
                )
            except AssignmentFailedError as e:
                logger.warning(
                    "ASSIGNMENT_FALLBACK",
                    extra={
                        "student_id": student_id,
                        "creature_id": creature.id,
                        "reason": e.reason,
                    },
                )
                kind = OutcomeKind.CURRENCY
                creature = None
                fell_back = True

        if kind == OutcomeKind.CURRENCY:
            coin_amount = self.draw_coin_amount()
            balance = await ledger.credit(
                student_id,
                coin_amount,
                reason=REWARD_REASON,
                related_entity_type=RELATED_ENTITY_TYPE,
            )

        entry = await HistoryRecorder(session).append(
            HistoryEntry(
                student_id=student_id,
                outcome_kind=kind,
                cost_charged=cost_charged,
                creature_id=creature.id if creature else None,
                creature_name=creature.name if creature else None,
                coin_amount=coin_amount,
            )
        )

        logger.info(
            "ATTEMPT_RESOLVED",
            extra={
                "student_id": student_id,
                "outcome": kind.value,
                "free": was_free,
                "cost": cost_charged,
                "balance": balance,
            },
        )

        return Outcome(
            kind=kind,
            cost_charged=cost_charged,
            was_free=was_free,
            balance_after=balance,
            creature=creature,
            coin_amount=coin_amount,
            fell_back=fell_back,
            history_id=entry.id,
        )
