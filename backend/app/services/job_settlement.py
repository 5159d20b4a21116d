"""Job settlement, the settle phase of render billing.

Resolves a job's hold into exactly one of:
- render_deduct (render succeeded): amount 0, the tokens already left at
  hold time; the entry records that the hold became a real charge.
- render_refund (render failed or was cancelled): +held amount.

Per-job state is derived from the ledger, never stored:

    HOLD_ONLY --settle(True)--> DEDUCTED
    HOLD_ONLY --settle(False)-> REFUNDED

Completion callbacks are delivered at least once and may race a manual
refund, so settle() is idempotent. The first settlement written wins
(uq_token_txn_job_settlement); a repeat with the same outcome reports
already_processed, a repeat with the opposite outcome is refused.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.token_transaction import TokenTransaction, TransactionType
from app.repositories.token_transaction_repository import TokenTransactionRepository
from app.services.token_ledger import TokenLedger, WriteOutcome

logger = logging.getLogger(__name__)

NO_PENDING_TRANSACTION = "No pending transaction found for this job"


@dataclass
class SettleResult:
    """Outcome of JobSettlementService.settle().

    Attributes:
        success: True if the job is settled the way the caller asked.
        already_processed: True if an earlier call settled the job.
        tokens_used: Held amount converted to a charge (success path).
        tokens_refunded: Held amount returned (failure path).
        new_balance: Balance after the settlement entry.
        settled_as: Type of the settlement entry that exists for the job.
        error: Reason when success is False.
        outcome: Ledger write outcome when a write was attempted.
    """

    success: bool
    already_processed: bool = False
    tokens_used: int | None = None
    tokens_refunded: int | None = None
    new_balance: int | None = None
    settled_as: str | None = None
    error: str | None = None
    outcome: WriteOutcome | None = None

    @property
    def missing_hold(self) -> bool:
        """True if settle() found no hold for the job."""
        return self.error == NO_PENDING_TRANSACTION


class JobSettlementService:
    """Resolves render holds into deducts or refunds.

    Args:
        db: Async database session. The caller commits.
        ledger: Ledger to write through. Built from db if omitted.
    """

    def __init__(self, db: AsyncSession, ledger: TokenLedger | None = None) -> None:
        self._db = db
        self._ledger = ledger or TokenLedger(db)

    async def settle(self, user_id: str, job_id: str, succeeded: bool) -> SettleResult:
        """Settle a job's hold. Safe to call any number of times.

        Args:
            user_id: Ledger owner.
            job_id: Render job whose hold is settled.
            succeeded: True to deduct, False to refund.

        Returns:
            SettleResult. A missing hold is reported with
            error=NO_PENDING_TRANSACTION; it indicates an upstream bug.
        """
        hold = await TokenTransactionRepository.get_for_job(
            self._db, job_id, TransactionType.RENDER_HOLD.value, user_id=user_id
        )
        if hold is None:
            logger.error(
                "No hold transaction found for job %s (user %s)", job_id, user_id
            )
            return SettleResult(success=False, error=NO_PENDING_TRANSACTION)

        held_amount = abs(hold.amount)

        existing = await TokenTransactionRepository.get_settlement(self._db, job_id)
        if existing is not None:
            return self._resolve_existing(existing, succeeded, held_amount)

        if succeeded:
            txn_type = TransactionType.RENDER_DEDUCT
            amount = 0
            description = (
                f"Render job completed successfully - {held_amount} tokens used"
            )
            metadata = {"held_transaction_id": str(hold.id), "tokens_used": held_amount}
        else:
            txn_type = TransactionType.RENDER_REFUND
            amount = held_amount
            description = (
                f"Refund for failed render job - {held_amount} tokens returned"
            )
            metadata = {
                "held_transaction_id": str(hold.id),
                "tokens_refunded": held_amount,
            }

        result = await self._ledger.append_transaction(
            user_id=user_id,
            transaction_type=txn_type,
            amount=amount,
            description=description,
            render_job_id=job_id,
            metadata=metadata,
        )

        if result.outcome is WriteOutcome.DUPLICATE and result.existing is not None:
            return self._resolve_existing(result.existing, succeeded, held_amount)

        if not result.success:
            logger.error(
                "Failed to settle job %s as %s: %s",
                job_id,
                txn_type.value,
                result.outcome.value,
            )
            return SettleResult(
                success=False,
                error=f"Failed to write {txn_type.value}",
                outcome=result.outcome,
            )

        return SettleResult(
            success=True,
            tokens_used=held_amount if succeeded else None,
            tokens_refunded=None if succeeded else held_amount,
            new_balance=result.new_balance,
            settled_as=txn_type.value,
            outcome=result.outcome,
        )

    def _resolve_existing(
        self, existing: TokenTransaction, succeeded: bool, held_amount: int
    ) -> SettleResult:
        wanted = (
            TransactionType.RENDER_DEDUCT.value
            if succeeded
            else TransactionType.RENDER_REFUND.value
        )
        if existing.transaction_type == wanted:
            logger.info(
                "%s already exists for job %s", wanted, existing.render_job_id
            )
            return SettleResult(
                success=True,
                already_processed=True,
                tokens_used=held_amount if succeeded else None,
                tokens_refunded=None if succeeded else held_amount,
                new_balance=existing.balance_after,
                settled_as=existing.transaction_type,
                outcome=WriteOutcome.DUPLICATE,
            )

        logger.warning(
            "Job %s already settled as %s; ignoring request for %s",
            existing.render_job_id,
            existing.transaction_type,
            wanted,
        )
        return SettleResult(
            success=False,
            already_processed=True,
            settled_as=existing.transaction_type,
            error=f"Job already settled as {existing.transaction_type}",
            outcome=WriteOutcome.DUPLICATE,
        )
