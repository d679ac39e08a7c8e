"""
Mystery Ball API endpoints.

Single pulls, batch pulls, status and history for the presentation layer.
"""

from datetime import date, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from classcoins.api.dependencies import get_mystery_ball_service
from classcoins.config import MAX_BATCH_CEILING
from classcoins.models.economy import BatchResult, HistoryEntry, Outcome, OutcomeKind
from classcoins.models.failure import FailureKind
from classcoins.services.mystery_ball import MysteryBallService

router = APIRouter(prefix="/mystery-ball", tags=["mystery-ball"])


class CreatureSummary(BaseModel):
    """A creature won from a pull."""

    id: str
    name: str
    rarity: str
    types: list[str] = Field(default_factory=list)
    image_url: str | None = None


class OutcomeResponse(BaseModel):
    """Response model for one resolved attempt."""

    kind: OutcomeKind
    cost_charged: int
    was_free: bool
    balance_after: int
    creature: CreatureSummary | None = None
    coin_amount: int | None = None
    fell_back: bool = Field(
        default=False,
        description="True if a creature was drawn but coins were paid out instead",
    )


class OpenMultipleRequest(BaseModel):
    """Request model for a batch of pulls."""

    count: int = Field(..., ge=1, le=MAX_BATCH_CEILING, examples=[5])


class BatchResponse(BaseModel):
    """Response model for a batch of pulls."""

    requested_count: int
    max_affordable: int
    actual_count: int
    outcomes: list[OutcomeResponse]
    summary: dict[OutcomeKind, int]
    coins_spent: int
    coins_won: int
    stopped_early: bool = False
    stop_reason: FailureKind | None = None
    stop_detail: str | None = None


class StatusResponse(BaseModel):
    """Response model for the Mystery Ball status panel."""

    student_id: str
    balance: int
    free_attempt_available: bool
    pull_cost: int
    max_affordable: int
    pool_size: int
    today: date


class HistoryEntryResponse(BaseModel):
    """One history line."""

    id: int | None
    outcome_kind: OutcomeKind
    cost_charged: int
    creature_id: str | None = None
    creature_name: str | None = None
    coin_amount: int | None = None
    timestamp: datetime | None = None


class HistoryResponse(BaseModel):
    """Response model for recent history."""

    student_id: str
    entries: list[HistoryEntryResponse]
    count: int
    total: int


def _outcome_response(outcome: Outcome) -> OutcomeResponse:
    creature = None
    if outcome.creature is not None:
        creature = CreatureSummary(
            id=outcome.creature.id,
            name=outcome.creature.name,
            rarity=outcome.creature.rarity,
            types=list(outcome.creature.types),
            image_url=outcome.creature.image_url,
        )
    return OutcomeResponse(
        kind=outcome.kind,
        cost_charged=outcome.cost_charged,
        was_free=outcome.was_free,
        balance_after=outcome.balance_after,
        creature=creature,
        coin_amount=outcome.coin_amount,
        fell_back=outcome.fell_back,
    )


def _batch_response(result: BatchResult) -> BatchResponse:
    return BatchResponse(
        requested_count=result.plan.requested_count,
        max_affordable=result.plan.max_affordable,
        actual_count=result.plan.actual_count,
        outcomes=[_outcome_response(o) for o in result.outcomes],
        summary=result.summary,
        coins_spent=result.coins_spent,
        coins_won=result.coins_won,
        stopped_early=result.stopped_early,
        stop_reason=result.stop_reason,
        stop_detail=result.stop_detail,
    )


def _history_entry_response(entry: HistoryEntry) -> HistoryEntryResponse:
    return HistoryEntryResponse(
        id=entry.id,
        outcome_kind=entry.outcome_kind,
        cost_charged=entry.cost_charged,
        creature_id=entry.creature_id,
        creature_name=entry.creature_name,
        coin_amount=entry.coin_amount,
        timestamp=entry.timestamp,
    )


@router.get("/{student_id}", response_model=StatusResponse)
async def get_status(
    student_id: str,
    service: Annotated[MysteryBallService, Depends(get_mystery_ball_service)],
) -> StatusResponse:
    """Balance, free-attempt availability and pull cost."""
    result = await service.status(student_id)
    return StatusResponse(
        student_id=result.student_id,
        balance=result.balance,
        free_attempt_available=result.free_attempt_available,
        pull_cost=result.pull_cost,
        max_affordable=result.max_affordable,
        pool_size=result.pool_size,
        today=result.today,
    )


@router.post("/{student_id}/open", response_model=OutcomeResponse)
async def open_single(
    student_id: str,
    service: Annotated[MysteryBallService, Depends(get_mystery_ball_service)],
) -> OutcomeResponse:
    """
    Open one Mystery Ball.

    Uses today's free attempt when available, otherwise charges the pull
    cost. Fails with 409 when the balance does not cover it.
    """
    outcome = await service.open_single(student_id)
    return _outcome_response(outcome)


@router.post("/{student_id}/open-multiple", response_model=BatchResponse)
async def open_multiple(
    student_id: str,
    request: OpenMultipleRequest,
    service: Annotated[MysteryBallService, Depends(get_mystery_ball_service)],
) -> BatchResponse:
    """
    Open several Mystery Balls in sequence.

    The count is capped at what the student can afford. If a pull fails,
    the pulls before it are kept and the response says why it stopped.
    """
    result = await service.open_multiple(student_id, request.count)
    return _batch_response(result)


@router.get("/{student_id}/history", response_model=HistoryResponse)
async def get_history(
    student_id: str,
    service: Annotated[MysteryBallService, Depends(get_mystery_ball_service)],
    limit: Annotated[int | None, Query(ge=1, le=100)] = None,
) -> HistoryResponse:
    """Most recent pulls, newest first. `total` counts the full history."""
    entries, total = await service.history(student_id, limit)
    return HistoryResponse(
        student_id=student_id,
        entries=[_history_entry_response(e) for e in entries],
        count=len(entries),
        total=total,
    )
