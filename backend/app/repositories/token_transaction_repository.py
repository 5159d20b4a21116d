"""Repository for token ledger operations.

Provides database access for the token_transactions table. Inserts only;
the ledger is never updated or deleted through this repository.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.token_transaction import SETTLEMENT_TYPES, TokenTransaction


class TokenTransactionRepository:
    """Stateless repository for TokenTransaction operations.

    All methods are static with no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_latest(db: AsyncSession, user_id: str) -> TokenTransaction | None:
        """Fetch the most recent ledger entry for a user.

        Served by the (user_id, sequence) unique index, so the cost does
        not grow with ledger depth.

        Args:
            db: Async database session.
            user_id: Ledger owner.

        Returns:
            Latest TokenTransaction, or None if the user has no entries.
        """
        stmt = (
            select(TokenTransaction)
            .where(TokenTransaction.user_id == user_id)
            .order_by(TokenTransaction.sequence.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def insert(
        db: AsyncSession,
        *,
        user_id: str,
        sequence: int,
        transaction_type: str,
        amount: int,
        balance_after: int,
        description: str,
        render_job_id: str | None = None,
        reference_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TokenTransaction:
        """Insert a new ledger entry.

        Args:
            db: Async database session.
            user_id: Ledger owner.
            sequence: Position of the entry in the user's ledger.
            transaction_type: TransactionType value.
            amount: Signed amount (+credit, -debit).
            balance_after: Balance after applying this entry.
            description: Human-readable description.
            render_job_id: Job correlation id for hold/deduct/refund.
            reference_id: External reference such as a payment id.
            metadata: Audit context.

        Returns:
            Created TokenTransaction with database-generated fields.

        Raises:
            IntegrityError: On sequence, job/type, or reference conflicts.
        """
        txn = TokenTransaction(
            user_id=user_id,
            sequence=sequence,
            transaction_type=transaction_type,
            amount=amount,
            balance_after=balance_after,
            description=description,
            render_job_id=render_job_id,
            reference_id=reference_id,
            metadata_=metadata,
        )
        db.add(txn)
        await db.flush()
        await db.refresh(txn)
        return txn

    @staticmethod
    async def get_for_job(
        db: AsyncSession,
        render_job_id: str,
        transaction_type: str,
        *,
        user_id: str | None = None,
    ) -> TokenTransaction | None:
        """Fetch the entry of a given type for a job.

        Args:
            db: Async database session.
            render_job_id: Job correlation id.
            transaction_type: render_hold, render_deduct or render_refund.
            user_id: If given, only match entries owned by this user.

        Returns:
            The entry if it exists, None otherwise.
        """
        conditions = [
            TokenTransaction.render_job_id == render_job_id,
            TokenTransaction.transaction_type == transaction_type,
        ]
        if user_id is not None:
            conditions.append(TokenTransaction.user_id == user_id)
        result = await db.execute(select(TokenTransaction).where(*conditions))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_settlement(
        db: AsyncSession, render_job_id: str
    ) -> TokenTransaction | None:
        """Fetch the deduct or refund entry that resolved a job's hold.

        Args:
            db: Async database session.
            render_job_id: Job correlation id.

        Returns:
            The settlement entry, or None while the hold is still pending.
        """
        stmt = select(TokenTransaction).where(
            TokenTransaction.render_job_id == render_job_id,
            TokenTransaction.transaction_type.in_(SETTLEMENT_TYPES),
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_reference(
        db: AsyncSession, transaction_type: str, reference_id: str
    ) -> TokenTransaction | None:
        """Fetch an entry by its external reference.

        Args:
            db: Async database session.
            transaction_type: TransactionType value.
            reference_id: External reference (payment transaction id).

        Returns:
            The entry if it exists, None otherwise.
        """
        stmt = select(TokenTransaction).where(
            TokenTransaction.transaction_type == transaction_type,
            TokenTransaction.reference_id == reference_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_user(
        db: AsyncSession,
        user_id: str,
        *,
        limit: int = 50,
    ) -> list[TokenTransaction]:
        """List a user's ledger entries, newest first.

        Args:
            db: Async database session.
            user_id: Ledger owner.
            limit: Maximum entries to return.

        Returns:
            Entries ordered by sequence descending.
        """
        stmt = (
            select(TokenTransaction)
            .where(TokenTransaction.user_id == user_id)
            .order_by(TokenTransaction.sequence.desc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def exists_of_type(
        db: AsyncSession, user_id: str, transaction_type: str
    ) -> bool:
        """Check whether a user has any entry of the given type.

        Args:
            db: Async database session.
            user_id: Ledger owner.
            transaction_type: TransactionType value.

        Returns:
            True if at least one matching entry exists.
        """
        stmt = (
            select(TokenTransaction.id)
            .where(
                TokenTransaction.user_id == user_id,
                TokenTransaction.transaction_type == transaction_type,
            )
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None
