"""
SQLAlchemy ORM models for persistent storage.

Models mirror the dataclass models in `classcoins.models.economy` but add
database persistence. Ownership, coin transactions and Mystery Ball history
are discrete append-only rows keyed per student, so concurrent appends from
different request paths never overwrite each other.
"""

from datetime import UTC, date, datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class WalletDB(Base):
    """
    A student's coin balance.

    Created with balance 0 when the student account is created.
    `version` is bumped by every balance change and used as the
    compare-and-swap token for debits.
    """

    __tablename__ = "wallets"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallet_balance_non_negative"),
        CheckConstraint("spent_coins >= 0", name="ck_wallet_spent_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    school_id: Mapped[str] = mapped_column(String(255), index=True)
    balance: Mapped[int] = mapped_column(Integer, default=0)
    spent_coins: Mapped[int] = mapped_column(Integer, default=0)
    version: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<WalletDB(student_id={self.student_id}, balance={self.balance})>"


class CoinTransactionDB(Base):
    """Append-only coin trail. One row per credit or debit."""

    __tablename__ = "coin_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("wallets.student_id", ondelete="CASCADE"), index=True
    )
    change_amount: Mapped[int] = mapped_column(Integer)
    balance_after: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str] = mapped_column(String(255))
    related_entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    related_entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    def __repr__(self) -> str:
        return f"<CoinTransactionDB(student_id={self.student_id}, change={self.change_amount})>"


class DailyGateDB(Base):
    """
    Free daily attempt state.

    One row per student; `last_free_attempt_date` is only written by a
    conditional update that matches when it differs from today.
    """

    __tablename__ = "daily_gates"

    student_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("wallets.student_id", ondelete="CASCADE"), primary_key=True
    )
    last_free_attempt_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<DailyGateDB(student_id={self.student_id}, last={self.last_free_attempt_date})>"


class CreatureDB(Base):
    """
    A creature in a school's catalog.

    Reference data; draws never decrement or remove it.
    """

    __tablename__ = "creatures"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    school_id: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(255))
    rarity: Mapped[str] = mapped_column(String(50), default="common")
    types: Mapped[list[str]] = mapped_column(JSON, default=list)
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    def __repr__(self) -> str:
        return f"<CreatureDB(id={self.id}, name={self.name})>"


class OwnershipDB(Base):
    """
    One owned copy of a creature.

    No uniqueness constraint: a student may own the same creature many times.
    """

    __tablename__ = "creature_ownership"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(255), index=True)
    creature_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("creatures.id", ondelete="RESTRICT"), index=True
    )
    source: Mapped[str] = mapped_column(String(50), default="mystery_ball")
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    def __repr__(self) -> str:
        return f"<OwnershipDB(student_id={self.student_id}, creature_id={self.creature_id})>"


class MysteryBallHistoryDB(Base):
    """
    Immutable log of resolved Mystery Ball attempts.

    The full history is retained; display caps are applied at query time.
    """

    __tablename__ = "mystery_ball_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(255), index=True)
    outcome_kind: Mapped[str] = mapped_column(String(20))
    creature_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    creature_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    coin_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cost_charged: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    def __repr__(self) -> str:
        return f"<MysteryBallHistoryDB(student_id={self.student_id}, kind={self.outcome_kind})>"
