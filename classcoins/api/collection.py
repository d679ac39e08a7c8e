"""
Collection API endpoints.

A student's creatures. Duplicates are separate ownership records and are
reported as counts.
"""

from collections import Counter
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from classcoins.db import get_creature
from classcoins.db.database import get_session
from classcoins.services.coin_ledger import CoinLedger
from classcoins.services.collection_assignor import SOURCE_TEACHER_AWARD, CollectionAssignor

router = APIRouter(prefix="/collection", tags=["collection"])


class OwnedCreature(BaseModel):
    """One creature and how many copies the student owns."""

    creature_id: str
    name: str | None = None
    rarity: str | None = None
    count: int


class CollectionResponse(BaseModel):
    """Response model for a student's collection."""

    student_id: str
    creatures: list[OwnedCreature] = Field(default_factory=list)
    total_owned: int = 0
    unique_owned: int = 0


class AwardRequest(BaseModel):
    """Request model for a teacher awarding a creature directly."""

    creature_id: str = Field(..., min_length=1, examples=["sparkfox"])


class AwardResponse(BaseModel):
    """Response model for an award."""

    student_id: str
    creature_id: str
    source: str


@router.get("/{student_id}", response_model=CollectionResponse)
async def get_student_collection(
    student_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollectionResponse:
    """Get the creatures a student owns, most copies first."""
    await CoinLedger(session).get_wallet(student_id)
    records = await CollectionAssignor(session).list_owned(student_id)

    counts = Counter(record.creature_id for record in records)
    creatures = []
    for creature_id, count in counts.most_common():
        creature = await get_creature(session, creature_id)
        creatures.append(
            OwnedCreature(
                creature_id=creature_id,
                name=creature.name if creature else None,
                rarity=creature.rarity if creature else None,
                count=count,
            )
        )

    return CollectionResponse(
        student_id=student_id,
        creatures=creatures,
        total_owned=len(records),
        unique_owned=len(counts),
    )


@router.post("/{student_id}/award", response_model=AwardResponse)
async def award_creature(
    student_id: str,
    request: AwardRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AwardResponse:
    """Give a student a creature from their school's pool without a pull."""
    wallet = await CoinLedger(session).get_wallet(student_id)
    record = await CollectionAssignor(session).assign(
        student_id,
        request.creature_id,
        school_id=wallet.school_id,
        source=SOURCE_TEACHER_AWARD,
    )
    return AwardResponse(
        student_id=student_id,
        creature_id=record.creature_id,
        source=record.source,
    )
