"""
Catalog API endpoints.

Manages a school's creature pool. The pool is reference data: pulls read
it but never consume entries.
"""

from collections import Counter
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from classcoins.db import creature_to_model, get_school_pool, upsert_creatures
from classcoins.db.database import get_session
from classcoins.models.economy import CreatureEntry
from classcoins.models.failure import InvalidRequestError

router = APIRouter(prefix="/catalog", tags=["catalog"])


class CreatureModel(BaseModel):
    """A creature in the school pool."""

    id: str = Field(..., min_length=1, max_length=100, examples=["sparkfox"])
    name: str = Field(..., min_length=1, max_length=255, examples=["Sparkfox"])
    rarity: str = Field(default="common", examples=["rare"])
    types: list[str] = Field(default_factory=list, examples=[["fire"]])
    image_url: str | None = None


class CatalogResponse(BaseModel):
    """Response model for a school pool."""

    school_id: str
    creatures: list[CreatureModel]
    count: int
    by_rarity: dict[str, int] = Field(
        default_factory=dict, description="Number of creatures per rarity tier"
    )


class CatalogUpdateRequest(BaseModel):
    """Request model for adding or updating pool creatures."""

    creatures: list[CreatureModel] = Field(..., description="Creatures to insert or update")


def _catalog_response(school_id: str, creatures: list[CreatureEntry]) -> CatalogResponse:
    return CatalogResponse(
        school_id=school_id,
        creatures=[
            CreatureModel(
                id=c.id,
                name=c.name,
                rarity=c.rarity,
                types=list(c.types),
                image_url=c.image_url,
            )
            for c in creatures
        ],
        count=len(creatures),
        by_rarity=dict(Counter(c.rarity for c in creatures)),
    )


@router.get("/{school_id}", response_model=CatalogResponse)
async def get_catalog(
    school_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CatalogResponse:
    """Get every creature in a school's pool, ordered by name."""
    rows = await get_school_pool(session, school_id)
    return _catalog_response(school_id, [creature_to_model(row) for row in rows])


@router.put("/{school_id}", response_model=CatalogResponse)
async def update_catalog(
    school_id: str,
    request: CatalogUpdateRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CatalogResponse:
    """
    Insert or update creatures in a school's pool.

    Creatures not named in the request are left untouched. An id already
    used by another school is refused with 409 and nothing is written.
    """
    if not request.creatures:
        raise InvalidRequestError("Creatures cannot be empty.")

    ids = [c.id for c in request.creatures]
    duplicates = sorted(cid for cid, n in Counter(ids).items() if n > 1)
    if duplicates:
        raise InvalidRequestError(
            "Creature ids must be unique.", detail=f"duplicates={','.join(duplicates)}"
        )

    await upsert_creatures(
        session,
        school_id,
        [
            CreatureEntry(
                id=c.id,
                name=c.name,
                school_id=school_id,
                rarity=c.rarity,
                types=tuple(c.types),
                image_url=c.image_url,
            )
            for c in request.creatures
        ],
    )
    rows = await get_school_pool(session, school_id)
    return _catalog_response(school_id, [creature_to_model(row) for row in rows])
