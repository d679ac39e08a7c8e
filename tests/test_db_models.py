"""Tests for SQLAlchemy ORM models."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from classcoins.models.db import CreatureDB, OwnershipDB, WalletDB


class TestWalletDB:
    async def test_defaults(self, session: AsyncSession) -> None:
        """New wallets start empty at version 0."""
        session.add(WalletDB(student_id="stu-1", school_id="school-1"))
        await session.flush()

        wallet = (await session.execute(select(WalletDB))).scalar_one()
        assert wallet.balance == 0
        assert wallet.spent_coins == 0
        assert wallet.version == 0

    async def test_student_id_unique(self, session: AsyncSession) -> None:
        """One wallet per student."""
        session.add(WalletDB(student_id="stu-1", school_id="school-1"))
        await session.flush()
        session.add(WalletDB(student_id="stu-1", school_id="school-1"))

        with pytest.raises(IntegrityError):
            await session.flush()

    async def test_balance_never_negative(self, session: AsyncSession) -> None:
        """The database refuses a negative balance."""
        session.add(WalletDB(student_id="stu-1", school_id="school-1", balance=-1))

        with pytest.raises(IntegrityError):
            await session.flush()


class TestOwnershipDB:
    async def test_duplicates_allowed(self, session: AsyncSession) -> None:
        """The same creature may be owned many times."""
        session.add(CreatureDB(id="sparkfox", school_id="school-1", name="Sparkfox"))
        session.add_all(
            [
                OwnershipDB(student_id="stu-1", creature_id="sparkfox"),
                OwnershipDB(student_id="stu-1", creature_id="sparkfox"),
            ]
        )
        await session.flush()

        rows = (await session.execute(select(OwnershipDB))).scalars().all()
        assert len(rows) == 2
        assert {r.source for r in rows} == {"mystery_ball"}
