"""
Wallet API endpoints.

Account-creation hook and the RewardIssuer boundary: homework review and
battle flows credit coins here. Teachers may also remove coins; that goes
through the same guarded ledger debit the Mystery Ball uses.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from classcoins.db.database import get_session
from classcoins.models.economy import CoinTransaction, Wallet
from classcoins.services.coin_ledger import CoinLedger

router = APIRouter(prefix="/wallets", tags=["wallets"])


class WalletResponse(BaseModel):
    """Response model for a wallet."""

    student_id: str
    school_id: str
    balance: int
    spent_coins: int


class OpenWalletRequest(BaseModel):
    """Request model for opening a wallet at account creation."""

    school_id: str = Field(..., min_length=1, examples=["school-1"])


class CreditRequest(BaseModel):
    """Request model for a reward credit."""

    amount: int = Field(..., description="Coins to add (positive)", examples=[10])
    reason: str = Field(
        default="reward",
        min_length=1,
        max_length=255,
        examples=["Homework approved"],
    )
    related_entity_type: str | None = Field(default=None, examples=["homework"])
    related_entity_id: str | None = Field(default=None, examples=["hw-42"])


class DebitRequest(BaseModel):
    """Request model for a teacher removing coins."""

    amount: int = Field(..., description="Coins to remove (positive)", examples=[3])
    reason: str = Field(
        default="teacher_removal",
        min_length=1,
        max_length=255,
        examples=["Late homework"],
    )
    related_entity_type: str | None = Field(default=None, examples=["homework"])
    related_entity_id: str | None = Field(default=None, examples=["hw-42"])


class BalanceChangeResponse(BaseModel):
    """Response model for a credit or debit."""

    student_id: str
    amount: int
    balance: int


class TransactionResponse(BaseModel):
    """One entry of the coin trail."""

    id: int | None
    change_amount: int
    balance_after: int
    reason: str
    related_entity_type: str | None = None
    related_entity_id: str | None = None
    created_at: datetime | None = None


class TransactionListResponse(BaseModel):
    """Response model for the coin trail."""

    student_id: str
    transactions: list[TransactionResponse]
    count: int


def _wallet_response(wallet: Wallet) -> WalletResponse:
    return WalletResponse(
        student_id=wallet.student_id,
        school_id=wallet.school_id,
        balance=wallet.balance,
        spent_coins=wallet.spent_coins,
    )


def _transaction_response(tx: CoinTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=tx.id,
        change_amount=tx.change_amount,
        balance_after=tx.balance_after,
        reason=tx.reason,
        related_entity_type=tx.related_entity_type,
        related_entity_id=tx.related_entity_id,
        created_at=tx.created_at,
    )


@router.post("/{student_id}", response_model=WalletResponse, status_code=status.HTTP_201_CREATED)
async def open_wallet(
    student_id: str,
    request: OpenWalletRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> WalletResponse:
    """
    Open a wallet with a zero balance.

    Idempotent: opening an existing wallet returns it unchanged.
    """
    wallet = await CoinLedger(session).open_wallet(student_id, request.school_id)
    return _wallet_response(wallet)


@router.get("/{student_id}", response_model=WalletResponse)
async def get_wallet(
    student_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> WalletResponse:
    """Get a student's balance and lifetime spending."""
    wallet = await CoinLedger(session).get_wallet(student_id)
    return _wallet_response(wallet)


@router.post("/{student_id}/credit", response_model=BalanceChangeResponse)
async def credit_coins(
    student_id: str,
    request: CreditRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> BalanceChangeResponse:
    """Credit coins earned elsewhere (homework, battles, teacher awards)."""
    balance = await CoinLedger(session).credit(
        student_id,
        request.amount,
        reason=request.reason,
        related_entity_type=request.related_entity_type,
        related_entity_id=request.related_entity_id,
    )
    return BalanceChangeResponse(student_id=student_id, amount=request.amount, balance=balance)


@router.post("/{student_id}/debit", response_model=BalanceChangeResponse)
async def debit_coins(
    student_id: str,
    request: DebitRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> BalanceChangeResponse:
    """
    Remove coins from a student.

    Refused with 409 when the balance cannot cover the amount; the balance
    is never driven below zero.
    """
    balance = await CoinLedger(session).debit(
        student_id,
        request.amount,
        reason=request.reason,
        related_entity_type=request.related_entity_type,
        related_entity_id=request.related_entity_id,
    )
    return BalanceChangeResponse(student_id=student_id, amount=request.amount, balance=balance)


@router.get("/{student_id}/transactions", response_model=TransactionListResponse)
async def list_transactions(
    student_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> TransactionListResponse:
    """The coin trail, newest first."""
    ledger = CoinLedger(session)
    await ledger.get_wallet(student_id)
    transactions = await ledger.list_transactions(student_id, limit=limit)
    return TransactionListResponse(
        student_id=student_id,
        transactions=[_transaction_response(tx) for tx in transactions],
        count=len(transactions),
    )
