"""Token ledger: balance reads and append-only writes.

The balance is never stored as a running total. It is the balance_after of
the user's latest ledger entry, so a read is a single indexed lookup no
matter how long the ledger grows.

Writes are optimistic compare-and-swap on the latest entry: the writer
reads the latest entry, computes the next sequence and balance, and
inserts. A concurrent writer that read the same entry collides on
uq_token_txn_user_sequence; the loser re-reads and tries again. Every
insert runs in a SAVEPOINT so a constraint violation never poisons the
caller's transaction.
"""

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import LedgerWriteError
from app.models.token_transaction import (
    SETTLEMENT_TYPES,
    TokenTransaction,
    TransactionType,
)
from app.repositories.token_transaction_repository import TokenTransactionRepository

logger = logging.getLogger(__name__)

_JOB_SCOPED_TYPES = frozenset(
    {
        TransactionType.RENDER_HOLD.value,
        TransactionType.RENDER_DEDUCT.value,
        TransactionType.RENDER_REFUND.value,
    }
)


class WriteOutcome(str, Enum):
    """Result of a ledger write attempt.

    COMMITTED and DUPLICATE are settled states. INSUFFICIENT_FUNDS and
    CONFLICT_RETRIES_EXHAUSTED mean no row was written. STORAGE_ERROR means
    the write state is unknown and must be reconciled.
    """

    COMMITTED = "committed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    DUPLICATE = "duplicate"
    CONFLICT_RETRIES_EXHAUSTED = "conflict_retries_exhausted"
    STORAGE_ERROR = "storage_error"


@dataclass
class TransactionResult:
    """Outcome of TokenLedger.append_transaction().

    Attributes:
        success: True only when a new entry was written.
        new_balance: Balance after the write, or the unchanged balance.
        outcome: Why the write did or did not happen.
        transaction_id: Id of the written entry.
        existing: The entry that made this write a duplicate.
    """

    success: bool
    new_balance: int
    outcome: WriteOutcome
    transaction_id: uuid.UUID | None = None
    existing: TokenTransaction | None = None


def write_failure(outcome: WriteOutcome, action: str) -> LedgerWriteError:
    """Build the API error for a ledger write that did not commit.

    STORAGE_ERROR leaves the write state unknown and asks for reconciliation.
    Any other outcome means nothing was written.
    """
    reconcile = outcome is WriteOutcome.STORAGE_ERROR
    return LedgerWriteError(f"Failed to {action}", reconcile=reconcile)


class TokenLedger:
    """Reads balances and appends entries to the token ledger.

    Args:
        db: Async database session. The caller commits.
        max_retries: Attempts before a contended write gives up.
            Defaults to settings.ledger_write_max_retries.
    """

    def __init__(self, db: AsyncSession, *, max_retries: int | None = None) -> None:
        self._db = db
        self._max_retries = max_retries or settings.ledger_write_max_retries

    async def get_balance(self, user_id: str) -> int:
        """Return the user's current token balance.

        Fail-low: a storage error is logged and reported as 0 so a failed
        read can never let a user spend tokens they do not have. Callers
        must treat 0 as possibly masking a failure.

        Args:
            user_id: Ledger owner.

        Returns:
            balance_after of the latest entry, or 0 if there is none.
        """
        try:
            async with self._db.begin_nested():
                latest = await TokenTransactionRepository.get_latest(
                    self._db, user_id
                )
        except SQLAlchemyError:
            logger.exception(
                "Failed to read token balance for user %s; defaulting to 0",
                user_id,
            )
            return 0

        if latest is None:
            logger.debug("No ledger entries for user %s; balance is 0", user_id)
            return 0
        return latest.balance_after

    async def append_transaction(
        self,
        *,
        user_id: str,
        transaction_type: TransactionType | str,
        amount: int,
        description: str,
        render_job_id: str | None = None,
        reference_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TransactionResult:
        """Append an entry, refusing any write that would go negative.

        Unlike get_balance(), the writer does not fail low: computing a
        balance from a failed read would corrupt the balance_after chain,
        so a read error fails the write with STORAGE_ERROR instead.

        Args:
            user_id: Ledger owner.
            transaction_type: Kind of entry.
            amount: Signed amount (+credit, -debit).
            description: Human-readable description.
            render_job_id: Job correlation id for hold/deduct/refund.
            reference_id: External reference (payment transaction id).
            metadata: Audit context.

        Returns:
            TransactionResult describing the outcome.
        """
        txn_type = TransactionType(transaction_type).value
        current_balance = 0

        for attempt in range(1, self._max_retries + 1):
            try:
                async with self._db.begin_nested():
                    latest = await TokenTransactionRepository.get_latest(
                        self._db, user_id
                    )
            except SQLAlchemyError:
                logger.exception(
                    "Failed to read latest ledger entry for user %s (%s %d)",
                    user_id,
                    txn_type,
                    amount,
                )
                return TransactionResult(
                    success=False,
                    new_balance=current_balance,
                    outcome=WriteOutcome.STORAGE_ERROR,
                )

            current_balance = latest.balance_after if latest else 0
            next_sequence = latest.sequence + 1 if latest else 1
            new_balance = current_balance + amount

            if new_balance < 0:
                logger.info(
                    "Rejected %s of %d tokens for user %s: balance %d",
                    txn_type,
                    amount,
                    user_id,
                    current_balance,
                )
                return TransactionResult(
                    success=False,
                    new_balance=current_balance,
                    outcome=WriteOutcome.INSUFFICIENT_FUNDS,
                )

            try:
                async with self._db.begin_nested():
                    txn = await TokenTransactionRepository.insert(
                        self._db,
                        user_id=user_id,
                        sequence=next_sequence,
                        transaction_type=txn_type,
                        amount=amount,
                        balance_after=new_balance,
                        description=description,
                        render_job_id=render_job_id,
                        reference_id=reference_id,
                        metadata=metadata,
                    )
            except IntegrityError:
                existing = await self._find_duplicate(
                    txn_type, render_job_id, reference_id
                )
                if existing is not None:
                    logger.info(
                        "Duplicate %s for job %s / reference %s; keeping entry %s",
                        txn_type,
                        render_job_id,
                        reference_id,
                        existing.id,
                    )
                    return TransactionResult(
                        success=False,
                        new_balance=existing.balance_after,
                        outcome=WriteOutcome.DUPLICATE,
                        existing=existing,
                    )
                logger.info(
                    "Ledger sequence conflict for user %s (attempt %d/%d)",
                    user_id,
                    attempt,
                    self._max_retries,
                )
                continue
            except SQLAlchemyError:
                logger.critical(
                    "Failed to insert token transaction: user=%s type=%s "
                    "amount=%d attempted_balance=%d description=%r metadata=%r",
                    user_id,
                    txn_type,
                    amount,
                    new_balance,
                    description,
                    metadata,
                    exc_info=True,
                )
                return TransactionResult(
                    success=False,
                    new_balance=current_balance,
                    outcome=WriteOutcome.STORAGE_ERROR,
                )

            logger.info(
                "Token transaction created: %s %d tokens for user %s. New balance: %d",
                txn_type,
                amount,
                user_id,
                new_balance,
            )
            return TransactionResult(
                success=True,
                new_balance=new_balance,
                outcome=WriteOutcome.COMMITTED,
                transaction_id=txn.id,
            )

        logger.error(
            "Gave up writing %s for user %s after %d sequence conflicts",
            txn_type,
            user_id,
            self._max_retries,
        )
        return TransactionResult(
            success=False,
            new_balance=current_balance,
            outcome=WriteOutcome.CONFLICT_RETRIES_EXHAUSTED,
        )

    async def list_transactions(
        self, user_id: str, limit: int | None = None
    ) -> list[TokenTransaction]:
        """Return the user's ledger entries, newest first.

        Returns an empty list on storage error (logged).

        Args:
            user_id: Ledger owner.
            limit: Maximum entries. Defaults to settings.token_history_limit.

        Returns:
            Entries ordered newest first.
        """
        try:
            async with self._db.begin_nested():
                return await TokenTransactionRepository.list_by_user(
                    self._db,
                    user_id,
                    limit=limit or settings.token_history_limit,
                )
        except SQLAlchemyError:
            logger.exception("Failed to list token transactions for user %s", user_id)
            return []

    async def _find_duplicate(
        self,
        txn_type: str,
        render_job_id: str | None,
        reference_id: str | None,
    ) -> TokenTransaction | None:
        """Find the entry that an IntegrityError collided with, if any.

        None means the collision was on the user's sequence and the write
        should be retried.
        """
        if render_job_id is not None and txn_type in _JOB_SCOPED_TYPES:
            if txn_type in SETTLEMENT_TYPES:
                existing = await TokenTransactionRepository.get_settlement(
                    self._db, render_job_id
                )
            else:
                existing = await TokenTransactionRepository.get_for_job(
                    self._db, render_job_id, txn_type
                )
            if existing is not None:
                return existing
        if reference_id is not None:
            return await TokenTransactionRepository.get_by_reference(
                self._db, txn_type, reference_id
            )
        return None
