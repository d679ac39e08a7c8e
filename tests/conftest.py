import random
from collections.abc import Callable, Iterable
from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from classcoins.db.database import get_session, get_session_factory
from classcoins.db.operations import create_wallet, upsert_creatures
from classcoins.main import app
from classcoins.models.db import Base, DailyGateDB, WalletDB
from classcoins.models.economy import CreatureEntry
from classcoins.services.mystery_ball import reset_student_locks

SCHOOL_ID = "school-1"


@pytest.fixture(autouse=True)
def clear_student_locks():
    """Start every test with a fresh per-student lock registry."""
    reset_student_locks()
    yield
    reset_student_locks()


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def file_session_factory(tmp_path) -> async_sessionmaker[AsyncSession]:
    """
    Session factory over a file database.

    Unlike the in-memory engine, every session gets its own connection,
    so concurrent transactions really contend on SQLite's write lock.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'classcoins.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def pool() -> list[CreatureEntry]:
    """A small school pool."""
    return [
        CreatureEntry(id="sparkfox", name="Sparkfox", school_id=SCHOOL_ID, rarity="rare"),
        CreatureEntry(id="mossling", name="Mossling", school_id=SCHOOL_ID, types=("grass",)),
        CreatureEntry(id="tidepup", name="Tidepup", school_id=SCHOOL_ID, types=("water",)),
    ]


@pytest.fixture
def make_student(session_factory) -> Callable:
    """Create a committed wallet with the given balance and gate date."""

    async def _make(
        student_id: str,
        balance: int = 0,
        last_free_attempt_date: date | None = None,
        school_id: str = SCHOOL_ID,
    ) -> None:
        async with session_factory() as s:
            await create_wallet(s, student_id, school_id)
            await s.execute(
                update(WalletDB).where(WalletDB.student_id == student_id).values(balance=balance)
            )
            await s.execute(
                update(DailyGateDB)
                .where(DailyGateDB.student_id == student_id)
                .values(last_free_attempt_date=last_free_attempt_date)
            )
            await s.commit()

    return _make


@pytest.fixture
def seed_pool(session_factory) -> Callable:
    """Commit creatures to the catalog."""

    async def _seed(creatures: Iterable[CreatureEntry], school_id: str = SCHOOL_ID) -> None:
        async with session_factory() as s:
            await upsert_creatures(s, school_id, list(creatures))
            await s.commit()

    return _seed


class ScriptedRandom(random.Random):
    """
    Random source whose random() replays a fixed script.

    Integer draws (coin amounts, creature picks) still come from the seeded
    generator, so only the outcome kind is scripted.
    """

    def __init__(self, draws: Iterable[float], seed: int = 7):
        super().__init__(seed)
        self._draws = list(draws)

    def random(self) -> float:
        return self._draws.pop(0)

    # Keeps randint()/choice() on getrandbits instead of random()
    def getrandbits(self, k: int) -> int:
        return super().getrandbits(k)


@pytest.fixture
def scripted_rng() -> Callable[..., ScriptedRandom]:
    """Factory for a random source that yields the given r values."""
    return ScriptedRandom


@pytest.fixture
def override_session(session_factory):
    """Point the app's session dependencies at the test database."""

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(override_session):
    """Provide an async test client with overridden database session."""
    transport = ASGITransport(app=override_session)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
