"""
Domain models for the reward economy.

Plain dataclasses; the ORM rows in `classcoins.models.db` are converted
into these at the operations layer so services never leak ORM state.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from classcoins.models.failure import FailureKind


class OutcomeKind(str, Enum):
    """The three possible results of one resolved attempt."""

    COLLECTIBLE = "collectible"
    CURRENCY = "currency"
    EMPTY = "empty"


@dataclass(frozen=True)
class ProbabilityTable:
    """
    Outcome distribution for a Mystery Ball draw.

    Empty takes whatever probability mass is left over.
    """

    collectible: float = 0.60
    currency: float = 0.30

    @property
    def empty(self) -> float:
        return max(0.0, 1.0 - self.collectible - self.currency)

    def kind_for(self, r: float) -> OutcomeKind:
        """Map a uniform draw in [0, 1) onto an outcome kind."""
        if r < self.collectible:
            return OutcomeKind.COLLECTIBLE
        if r < self.collectible + self.currency:
            return OutcomeKind.CURRENCY
        return OutcomeKind.EMPTY

    def as_dict(self) -> dict[OutcomeKind, float]:
        return {
            OutcomeKind.COLLECTIBLE: self.collectible,
            OutcomeKind.CURRENCY: self.currency,
            OutcomeKind.EMPTY: self.empty,
        }


@dataclass(frozen=True)
class CreatureEntry:
    """
    A creature in a school's catalog.

    Reference data: shared by every student of the school and never
    consumed by a draw.
    """

    id: str
    name: str
    school_id: str
    rarity: str = "common"  # common, uncommon, rare, legendary
    types: tuple[str, ...] = ()
    image_url: str | None = None


@dataclass
class Wallet:
    """A student's coin balance."""

    student_id: str
    school_id: str
    balance: int = 0
    spent_coins: int = 0
    version: int = 0


@dataclass(frozen=True)
class CoinTransaction:
    """One line of the append-only coin trail."""

    id: int
    student_id: str
    change_amount: int  # positive for credits, negative for debits
    balance_after: int
    reason: str
    created_at: datetime
    related_entity_type: str | None = None
    related_entity_id: str | None = None


@dataclass(frozen=True)
class OwnershipRecord:
    """One owned copy of a creature. Duplicates are allowed."""

    id: int
    student_id: str
    creature_id: str
    acquired_at: datetime
    source: str = "mystery_ball"


@dataclass(frozen=True)
class HistoryEntry:
    """
    Immutable log line for a resolved attempt.

    Attributes:
        outcome_kind: Which branch the attempt resolved to
        creature_id: Set for collectible outcomes
        coin_amount: Set for currency outcomes
        cost_charged: 0 for a free attempt, otherwise the pull cost
    """

    student_id: str
    outcome_kind: OutcomeKind
    cost_charged: int
    creature_id: str | None = None
    creature_name: str | None = None
    coin_amount: int | None = None
    id: int | None = None
    timestamp: datetime | None = None

    @property
    def payload(self) -> str | int | None:
        """Creature id or coin amount, depending on the outcome."""
        if self.outcome_kind == OutcomeKind.COLLECTIBLE:
            return self.creature_id
        if self.outcome_kind == OutcomeKind.CURRENCY:
            return self.coin_amount
        return None


@dataclass(frozen=True)
class Outcome:
    """The result of one resolved Mystery Ball attempt."""

    kind: OutcomeKind
    cost_charged: int
    was_free: bool
    balance_after: int
    creature: CreatureEntry | None = None
    coin_amount: int | None = None
    fell_back: bool = False  # collectible assignment failed, paid out coins instead
    history_id: int | None = None


@dataclass
class BatchPlan:
    """How many pulls a batch request will attempt."""

    requested_count: int
    max_affordable: int
    actual_count: int
    free_available: bool


@dataclass
class BatchResult:
    """
    Aggregate result of a multi-pull request.

    Committed pulls are kept even when the batch stops early.
    """

    plan: BatchPlan
    outcomes: list[Outcome] = field(default_factory=list)
    stopped_early: bool = False
    stop_reason: FailureKind | None = None
    stop_detail: str | None = None

    @property
    def summary(self) -> dict[OutcomeKind, int]:
        """Counts per outcome kind, including kinds that never occurred."""
        counts = Counter(outcome.kind for outcome in self.outcomes)
        return {kind: counts.get(kind, 0) for kind in OutcomeKind}

    @property
    def coins_spent(self) -> int:
        return sum(outcome.cost_charged for outcome in self.outcomes)

    @property
    def coins_won(self) -> int:
        return sum(outcome.coin_amount or 0 for outcome in self.outcomes)

    @property
    def final_balance(self) -> int | None:
        if not self.outcomes:
            return None
        return self.outcomes[-1].balance_after


@dataclass(frozen=True)
class MysteryBallStatus:
    """What the presentation layer needs to render the Mystery Ball."""

    student_id: str
    balance: int
    free_attempt_available: bool
    pull_cost: int
    max_affordable: int
    pool_size: int
    today: date
