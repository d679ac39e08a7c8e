"""
Collection assignment service.

The catalog is non-depleting: assigning a creature never decrements or
removes it, and a student may own the same creature any number of times.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from classcoins.db.operations import (
    add_ownership,
    count_ownership,
    get_creature,
    get_ownership,
    ownership_to_model,
)
from classcoins.models.economy import OwnershipRecord
from classcoins.models.failure import AssignmentFailedError, InvalidCollectibleError

logger = logging.getLogger(__name__)

# Where an ownership record came from
SOURCE_MYSTERY_BALL = "mystery_ball"
SOURCE_TEACHER_AWARD = "teacher_award"

VALID_SOURCES = frozenset({SOURCE_MYSTERY_BALL, SOURCE_TEACHER_AWARD})


class CollectionAssignor:
    """Appends ownership records for catalog creatures."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def assign(
        self,
        student_id: str,
        creature_id: str,
        school_id: str | None = None,
        source: str = SOURCE_MYSTERY_BALL,
    ) -> OwnershipRecord:
        """
        Give a student one copy of a catalog creature.

        Args:
            student_id: Recipient
            creature_id: Catalog id of the creature
            school_id: When given, the creature must belong to this school
            source: One of VALID_SOURCES

        Raises:
            InvalidCollectibleError: If the creature is not in the catalog
                (or not in the given school's catalog)
            AssignmentFailedError: If the ownership row could not be written
        """
        if source not in VALID_SOURCES:
            raise ValueError(f"Unknown ownership source: {source}")

        creature = await get_creature(self._session, creature_id)
        if creature is None or (school_id is not None and creature.school_id != school_id):
            raise InvalidCollectibleError(creature_id, school_id)

        try:
            # A failed insert rolls back to the savepoint only
            async with self._session.begin_nested():
                row = await add_ownership(self._session, student_id, creature_id, source)
        except SQLAlchemyError as e:
            logger.warning(
                "ASSIGNMENT_WRITE_FAILED",
                extra={"student_id": student_id, "creature_id": creature_id},
            )
            raise AssignmentFailedError(creature_id, type(e).__name__) from e

        logger.info(
            "CREATURE_ASSIGNED",
            extra={"student_id": student_id, "creature_id": creature_id, "source": source},
        )
        return ownership_to_model(row)

    async def list_owned(self, student_id: str) -> list[OwnershipRecord]:
        """Every ownership record of a student, oldest first."""
        rows = await get_ownership(self._session, student_id)
        return [ownership_to_model(row) for row in rows]

    async def count_owned(self, student_id: str) -> int:
        return await count_ownership(self._session, student_id)
