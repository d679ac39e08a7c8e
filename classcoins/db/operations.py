"""
Database CRUD operations.

Provides async functions for reading and conditionally updating wallets and
daily gates, and for appending coin transactions, ownership records and
Mystery Ball history. Business rules live in `classcoins.services`; these
functions only talk to the database and convert rows to domain models.
"""

from collections.abc import Iterable
from datetime import date

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from classcoins.models.db import (
    CoinTransactionDB,
    CreatureDB,
    DailyGateDB,
    MysteryBallHistoryDB,
    OwnershipDB,
    WalletDB,
)
from classcoins.models.economy import (
    CoinTransaction,
    CreatureEntry,
    HistoryEntry,
    OutcomeKind,
    OwnershipRecord,
    Wallet,
)
from classcoins.models.failure import CatalogConflictError

# --- Wallet Operations ---


async def get_wallet(session: AsyncSession, student_id: str) -> WalletDB | None:
    """
    Get a student's wallet by student_id.

    Always re-reads the row so values changed by conditional updates
    in this session are never served stale from the identity map.
    """
    result = await session.execute(
        select(WalletDB)
        .where(WalletDB.student_id == student_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def create_wallet(session: AsyncSession, student_id: str, school_id: str) -> WalletDB:
    """
    Create a wallet and its daily gate for a new student.

    Raises IntegrityError if the wallet already exists.
    """
    wallet = WalletDB(
        student_id=student_id, school_id=school_id, balance=0, spent_coins=0, version=0
    )
    session.add(wallet)
    await session.flush()
    session.add(DailyGateDB(student_id=student_id, last_free_attempt_date=None))
    await session.flush()
    return wallet


async def get_or_create_wallet(
    session: AsyncSession, student_id: str, school_id: str
) -> tuple[WalletDB, bool]:
    """
    Get existing wallet or create new one.

    A concurrent open of the same student that wins the insert is
    absorbed: the losing insert rolls back to its savepoint and the
    winner's wallet is returned.

    Returns:
        Tuple of (wallet, created) where created is True if new.
    """
    wallet = await get_wallet(session, student_id)
    if wallet:
        return wallet, False

    try:
        async with session.begin_nested():
            wallet = await create_wallet(session, student_id, school_id)
    except IntegrityError:
        existing = await get_wallet(session, student_id)
        if existing is None:
            raise
        return existing, False
    return wallet, True


def wallet_to_model(wallet: WalletDB) -> Wallet:
    """Convert a database wallet to a domain model."""
    return Wallet(
        student_id=wallet.student_id,
        school_id=wallet.school_id,
        balance=wallet.balance,
        spent_coins=wallet.spent_coins,
        version=wallet.version,
    )


async def increment_balance(session: AsyncSession, student_id: str, amount: int) -> bool:
    """
    Add `amount` to the balance in a single UPDATE.

    Returns False if no wallet row matched.
    """
    result = await session.execute(
        update(WalletDB)
        .where(WalletDB.student_id == student_id)
        .values(balance=WalletDB.balance + amount, version=WalletDB.version + 1)
        .execution_options(synchronize_session=False)
    )
    # rowcount is available on UPDATE results; type stubs incomplete for async
    return int(result.rowcount) == 1  # type: ignore[attr-defined]


async def decrement_balance_if_unchanged(
    session: AsyncSession, student_id: str, amount: int, seen_version: int
) -> bool:
    """
    Compare-and-swap debit.

    Subtracts `amount` only if the wallet still carries `seen_version` and
    can cover the amount. Returns True when exactly this caller won.
    """
    result = await session.execute(
        update(WalletDB)
        .where(
            WalletDB.student_id == student_id,
            WalletDB.version == seen_version,
            WalletDB.balance >= amount,
        )
        .values(
            balance=WalletDB.balance - amount,
            spent_coins=WalletDB.spent_coins + amount,
            version=WalletDB.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount) == 1  # type: ignore[attr-defined]


async def get_balance(session: AsyncSession, student_id: str) -> int | None:
    """Current balance, or None if the student has no wallet."""
    result = await session.execute(
        select(WalletDB.balance).where(WalletDB.student_id == student_id)
    )
    return result.scalar_one_or_none()


async def add_coin_transaction(
    session: AsyncSession,
    student_id: str,
    change_amount: int,
    balance_after: int,
    reason: str,
    related_entity_type: str | None = None,
    related_entity_id: str | None = None,
) -> CoinTransactionDB:
    """Append one line to the coin trail."""
    row = CoinTransactionDB(
        student_id=student_id,
        change_amount=change_amount,
        balance_after=balance_after,
        reason=reason,
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
    )
    session.add(row)
    await session.flush()
    return row


async def get_coin_transactions(
    session: AsyncSession, student_id: str, limit: int = 50
) -> list[CoinTransactionDB]:
    """Get a student's coin trail, newest first."""
    result = await session.execute(
        select(CoinTransactionDB)
        .where(CoinTransactionDB.student_id == student_id)
        .order_by(CoinTransactionDB.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def coin_transaction_to_model(row: CoinTransactionDB) -> CoinTransaction:
    """Convert a database coin transaction to a domain model."""
    return CoinTransaction(
        id=row.id,
        student_id=row.student_id,
        change_amount=row.change_amount,
        balance_after=row.balance_after,
        reason=row.reason,
        created_at=row.created_at,
        related_entity_type=row.related_entity_type,
        related_entity_id=row.related_entity_id,
    )


# --- Daily Gate Operations ---


async def get_gate(session: AsyncSession, student_id: str) -> DailyGateDB | None:
    """Get a student's daily gate row."""
    result = await session.execute(
        select(DailyGateDB)
        .where(DailyGateDB.student_id == student_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def set_gate_date_if_different(session: AsyncSession, student_id: str, today: date) -> bool:
    """
    Conditionally stamp the gate with `today`.

    The update only matches when the stored date differs from `today`,
    so of several concurrent callers on the same day exactly one wins.
    """
    result = await session.execute(
        update(DailyGateDB)
        .where(
            DailyGateDB.student_id == student_id,
            or_(
                DailyGateDB.last_free_attempt_date.is_(None),
                DailyGateDB.last_free_attempt_date != today,
            ),
        )
        .values(last_free_attempt_date=today)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount) == 1  # type: ignore[attr-defined]


# --- Catalog Operations ---


async def get_creature(session: AsyncSession, creature_id: str) -> CreatureDB | None:
    """Get a catalog creature by id."""
    result = await session.execute(select(CreatureDB).where(CreatureDB.id == creature_id))
    return result.scalar_one_or_none()


async def get_school_pool(session: AsyncSession, school_id: str) -> list[CreatureDB]:
    """Get every creature in a school's catalog, ordered by name."""
    result = await session.execute(
        select(CreatureDB).where(CreatureDB.school_id == school_id).order_by(CreatureDB.name)
    )
    return list(result.scalars().all())


async def upsert_creatures(
    session: AsyncSession, school_id: str, creatures: Iterable[CreatureEntry]
) -> int:
    """
    Insert or update catalog creatures for a school.

    Existing creatures with the same id are updated in place. Ids are
    global, so an id already owned by another school is refused and
    nothing is written.

    Returns the number of creatures written.

    Raises:
        CatalogConflictError: If an id belongs to another school
    """
    creatures = list(creatures)
    existing_by_id: dict[str, CreatureDB] = {}
    for creature in creatures:
        if creature.school_id != school_id:
            msg = (
                f"Creature '{creature.id}' belongs to school '{creature.school_id}', "
                f"expected '{school_id}'"
            )
            raise ValueError(msg)

        existing = await get_creature(session, creature.id)
        if existing is not None and existing.school_id != school_id:
            raise CatalogConflictError(creature.id, school_id)
        if existing is not None:
            existing_by_id[creature.id] = existing

    for creature in creatures:
        existing = existing_by_id.get(creature.id)
        if existing:
            existing.name = creature.name
            existing.rarity = creature.rarity
            existing.types = list(creature.types)
            existing.image_url = creature.image_url
        else:
            session.add(
                CreatureDB(
                    id=creature.id,
                    school_id=school_id,
                    name=creature.name,
                    rarity=creature.rarity,
                    types=list(creature.types),
                    image_url=creature.image_url,
                )
            )

    await session.flush()
    return len(creatures)


def creature_to_model(creature: CreatureDB) -> CreatureEntry:
    """Convert a database creature to a domain model."""
    return CreatureEntry(
        id=creature.id,
        name=creature.name,
        school_id=creature.school_id,
        rarity=creature.rarity,
        types=tuple(creature.types or ()),
        image_url=creature.image_url,
    )


# --- Ownership Operations ---


async def add_ownership(
    session: AsyncSession, student_id: str, creature_id: str, source: str
) -> OwnershipDB:
    """Append one ownership row. Duplicates are allowed."""
    row = OwnershipDB(student_id=student_id, creature_id=creature_id, source=source)
    session.add(row)
    await session.flush()
    return row


async def get_ownership(session: AsyncSession, student_id: str) -> list[OwnershipDB]:
    """Get all ownership rows for a student, oldest first."""
    result = await session.execute(
        select(OwnershipDB).where(OwnershipDB.student_id == student_id).order_by(OwnershipDB.id)
    )
    return list(result.scalars().all())


async def count_ownership(session: AsyncSession, student_id: str) -> int:
    """Number of creatures (including duplicates) a student owns."""
    result = await session.execute(
        select(func.count()).select_from(OwnershipDB).where(OwnershipDB.student_id == student_id)
    )
    return int(result.scalar_one())


def ownership_to_model(row: OwnershipDB) -> OwnershipRecord:
    """Convert a database ownership row to a domain model."""
    return OwnershipRecord(
        id=row.id,
        student_id=row.student_id,
        creature_id=row.creature_id,
        acquired_at=row.acquired_at,
        source=row.source,
    )


# --- Mystery Ball History Operations ---


async def add_history(session: AsyncSession, entry: HistoryEntry) -> MysteryBallHistoryDB:
    """Append one history row."""
    row = MysteryBallHistoryDB(
        student_id=entry.student_id,
        outcome_kind=entry.outcome_kind.value,
        creature_id=entry.creature_id,
        creature_name=entry.creature_name,
        coin_amount=entry.coin_amount,
        cost_charged=entry.cost_charged,
    )
    session.add(row)
    await session.flush()
    return row


async def get_history(
    session: AsyncSession, student_id: str, limit: int | None = None
) -> list[MysteryBallHistoryDB]:
    """Get a student's history, newest first. No limit returns everything."""
    stmt = (
        select(MysteryBallHistoryDB)
        .where(MysteryBallHistoryDB.student_id == student_id)
        .order_by(MysteryBallHistoryDB.id.desc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_history(session: AsyncSession, student_id: str) -> int:
    """Total number of retained history rows for a student."""
    result = await session.execute(
        select(func.count())
        .select_from(MysteryBallHistoryDB)
        .where(MysteryBallHistoryDB.student_id == student_id)
    )
    return int(result.scalar_one())


def history_to_model(row: MysteryBallHistoryDB) -> HistoryEntry:
    """Convert a database history row to a domain model."""
    return HistoryEntry(
        id=row.id,
        student_id=row.student_id,
        outcome_kind=OutcomeKind(row.outcome_kind),
        cost_charged=row.cost_charged,
        creature_id=row.creature_id,
        creature_name=row.creature_name,
        coin_amount=row.coin_amount,
        timestamp=row.created_at,
    )
