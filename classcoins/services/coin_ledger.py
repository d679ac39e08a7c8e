"""
Coin ledger, the authoritative record of student balances.

INVARIANTS:
- balance >= 0 at every observable point (also a database CHECK)
- Every balance change appends exactly one coin transaction in the
  same unit of work
- A debit is a single compare-and-swap on the wallet version; two
  concurrent debits can never both succeed when only one is covered

The ledger is bound to one AsyncSession. It flushes but never commits:
the caller owns the transaction boundary.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from classcoins.db.operations import (
    add_coin_transaction,
    coin_transaction_to_model,
    decrement_balance_if_unchanged,
    get_balance,
    get_coin_transactions,
    get_or_create_wallet,
    get_wallet,
    increment_balance,
    wallet_to_model,
)
from classcoins.models.economy import CoinTransaction, Wallet
from classcoins.models.failure import (
    ConcurrentModificationError,
    InsufficientFundsError,
    InvalidAmountError,
    StudentNotFoundError,
)

logger = logging.getLogger(__name__)


class CoinLedger:
    """Atomic credit and debit of a student's coins."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def open_wallet(self, student_id: str, school_id: str) -> Wallet:
        """
        Create the wallet (balance 0) and daily gate for a new student.

        Idempotent: an existing wallet is returned unchanged.
        """
        wallet, created = await get_or_create_wallet(self._session, student_id, school_id)
        if created:
            logger.info(
                "WALLET_OPENED",
                extra={"student_id": student_id, "school_id": school_id},
            )
        return wallet_to_model(wallet)

    async def get_wallet(self, student_id: str) -> Wallet:
        """Read-only snapshot of the whole wallet."""
        wallet = await get_wallet(self._session, student_id)
        if wallet is None:
            raise StudentNotFoundError(student_id)
        return wallet_to_model(wallet)

    async def get_balance(self, student_id: str) -> int:
        """Read-only balance snapshot."""
        balance = await get_balance(self._session, student_id)
        if balance is None:
            raise StudentNotFoundError(student_id)
        return balance

    async def credit(
        self,
        student_id: str,
        amount: int,
        reason: str = "reward",
        related_entity_type: str | None = None,
        related_entity_id: str | None = None,
    ) -> int:
        """
        Increase a balance and return the new balance.

        Used by Mystery Ball currency outcomes and by external reward flows
        (homework approval, battle wins).

        Raises:
            InvalidAmountError: If amount is not positive
            StudentNotFoundError: If the student has no wallet
        """
        if amount <= 0:
            raise InvalidAmountError("amount", amount)

        if not await increment_balance(self._session, student_id, amount):
            raise StudentNotFoundError(student_id)

        new_balance = await self.get_balance(student_id)
        await add_coin_transaction(
            self._session,
            student_id,
            change_amount=amount,
            balance_after=new_balance,
            reason=reason,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
        )

        logger.info(
            "COINS_CREDITED",
            extra={
                "student_id": student_id,
                "amount": amount,
                "balance": new_balance,
                "reason": reason,
            },
        )
        return new_balance

    async def debit(
        self,
        student_id: str,
        amount: int,
        reason: str = "purchase",
        related_entity_type: str | None = None,
        related_entity_id: str | None = None,
    ) -> int:
        """
        Decrease a balance and return the new balance.

        Raises:
            InvalidAmountError: If amount is not positive
            StudentNotFoundError: If the student has no wallet
            InsufficientFundsError: If balance < amount (nothing is changed)
            ConcurrentModificationError: If the wallet changed between
                read and conditional write
        """
        if amount <= 0:
            raise InvalidAmountError("amount", amount)

        wallet = await get_wallet(self._session, student_id)
        if wallet is None:
            raise StudentNotFoundError(student_id)

        if wallet.balance < amount:
            logger.info(
                "INSUFFICIENT_FUNDS",
                extra={"student_id": student_id, "balance": wallet.balance, "required": amount},
            )
            raise InsufficientFundsError(student_id, wallet.balance, amount)

        seen_balance = wallet.balance
        won = await decrement_balance_if_unchanged(
            self._session, student_id, amount, seen_version=wallet.version
        )
        if not won:
            logger.warning(
                "WALLET_CAS_CONFLICT",
                extra={"student_id": student_id, "seen_version": wallet.version},
            )
            raise ConcurrentModificationError(student_id)

        # The version matched, so nothing else touched the row in between
        new_balance = seen_balance - amount
        await add_coin_transaction(
            self._session,
            student_id,
            change_amount=-amount,
            balance_after=new_balance,
            reason=reason,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
        )

        logger.info(
            "COINS_DEBITED",
            extra={
                "student_id": student_id,
                "amount": amount,
                "balance": new_balance,
                "reason": reason,
            },
        )
        return new_balance

    async def list_transactions(self, student_id: str, limit: int = 50) -> list[CoinTransaction]:
        """The student's coin trail, newest first."""
        rows = await get_coin_transactions(self._session, student_id, limit=limit)
        return [coin_transaction_to_model(row) for row in rows]
