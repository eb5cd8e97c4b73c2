"""
Repository for credit balances and the append-only transaction log.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from db.models.credit import CreditAccount, CreditTransactionRecord


class CreditRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_balance(self, user_id: str) -> int:
        balance = self._session.scalar(
            select(CreditAccount.balance).where(CreditAccount.user_id == user_id)
        )
        return int(balance or 0)

    def apply_transaction(
        self,
        *,
        user_id: str,
        amount: int,
        reason: str,
        metadata: dict[str, Any],
    ) -> int | None:
        """
        Apply a debit (positive) or refund (negative) and log it.

        Debits are conditional on the balance covering them, in the same
        UPDATE statement, so concurrent debits cannot overdraw.
        """

        stmt = (
            update(CreditAccount)
            .where(CreditAccount.user_id == user_id)
            .values(
                balance=CreditAccount.balance - amount,
                credits_used=CreditAccount.credits_used + amount,
            )
            .returning(CreditAccount.balance)
            .execution_options(synchronize_session=False)
        )
        if amount > 0:
            stmt = stmt.where(CreditAccount.balance >= amount)

        balance = self._session.scalar(stmt)
        if balance is None:
            return None

        self._session.add(
            CreditTransactionRecord(
                user_id=user_id,
                amount=amount,
                reason=reason,
                balance_after=balance,
                transaction_metadata=metadata,
            )
        )
        self._session.flush()
        return int(balance)
