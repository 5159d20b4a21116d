"""Token holds, the reserve phase of render billing.

A hold is a provisional debit written before a long-running render starts.
Once the render outcome is known, JobSettlementService resolves the hold
into a deduct (success) or a refund (failure).
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.token_transaction import TransactionType
from app.repositories.token_transaction_repository import TokenTransactionRepository
from app.services.token_cost import estimate_cost
from app.services.token_ledger import TokenLedger, WriteOutcome

logger = logging.getLogger(__name__)

INSUFFICIENT_TOKENS = "Insufficient tokens"
HOLD_FAILED = "Failed to hold tokens"


@dataclass
class AvailabilityResult:
    """Pre-flight answer to "can I afford this render?"."""

    has_enough: bool
    tokens_needed: int
    available_tokens: int


@dataclass
class ReserveResult:
    """Outcome of TokenHoldService.reserve().

    Attributes:
        success: True if the job is funded (new or existing hold).
        tokens_needed: Estimated cost of the job.
        available_tokens: Balance seen before the hold.
        tokens_held: Tokens held for the job.
        new_balance: Balance after the hold.
        already_held: True if the job was already funded by an earlier call.
        error: INSUFFICIENT_TOKENS or HOLD_FAILED on failure.
        outcome: Ledger write outcome when a write was attempted.
    """

    success: bool
    tokens_needed: int
    available_tokens: int
    tokens_held: int = 0
    new_balance: int | None = None
    already_held: bool = False
    error: str | None = None
    outcome: WriteOutcome | None = None


class TokenHoldService:
    """Estimates render cost and reserves tokens for a job.

    Args:
        db: Async database session. The caller commits.
        ledger: Ledger to read and write through. Built from db if omitted.
    """

    def __init__(self, db: AsyncSession, ledger: TokenLedger | None = None) -> None:
        self._db = db
        self._ledger = ledger or TokenLedger(db)

    async def check_availability(
        self,
        user_id: str,
        message_count: int,
        has_custom_background: bool = False,
        uses_monetization: bool = False,
    ) -> AvailabilityResult:
        """Report whether the user can afford a render. Writes nothing."""
        tokens_needed = estimate_cost(
            message_count, has_custom_background, uses_monetization
        )
        available = await self._ledger.get_balance(user_id)
        return AvailabilityResult(
            has_enough=available >= tokens_needed,
            tokens_needed=tokens_needed,
            available_tokens=available,
        )

    async def reserve(
        self,
        user_id: str,
        job_id: str,
        message_count: int,
        has_custom_background: bool = False,
        uses_monetization: bool = False,
    ) -> ReserveResult:
        """Hold the estimated cost of a render against the user's balance.

        At most one hold exists per job: repeating the call for a funded
        job returns the existing hold with already_held=True.

        Args:
            user_id: Ledger owner.
            job_id: Render job the hold funds.
            message_count: Number of chat messages in the script.
            has_custom_background: Whether a non-default background is used.
            uses_monetization: Whether the monetization takeover is enabled.

        Returns:
            ReserveResult. On failure nothing was written; the caller should
            delete its placeholder job.
        """
        tokens_needed = estimate_cost(
            message_count, has_custom_background, uses_monetization
        )

        existing = await TokenTransactionRepository.get_for_job(
            self._db, job_id, TransactionType.RENDER_HOLD.value, user_id=user_id
        )
        if existing is not None:
            return await self._existing_hold(user_id, job_id, tokens_needed, existing)

        available = await self._ledger.get_balance(user_id)
        if available < tokens_needed:
            return ReserveResult(
                success=False,
                tokens_needed=tokens_needed,
                available_tokens=available,
                error=INSUFFICIENT_TOKENS,
            )

        description = f"Token hold for render job - {message_count} messages"
        if has_custom_background:
            description += " with custom background"

        result = await self._ledger.append_transaction(
            user_id=user_id,
            transaction_type=TransactionType.RENDER_HOLD,
            amount=-tokens_needed,
            description=description,
            render_job_id=job_id,
            metadata={
                "message_count": message_count,
                "has_custom_background": has_custom_background,
                "monetization_enabled": uses_monetization,
                "estimated_tokens": tokens_needed,
            },
        )

        if result.success:
            return ReserveResult(
                success=True,
                tokens_needed=tokens_needed,
                available_tokens=available,
                tokens_held=tokens_needed,
                new_balance=result.new_balance,
                outcome=result.outcome,
            )

        if result.outcome is WriteOutcome.DUPLICATE and result.existing is not None:
            return await self._existing_hold(
                user_id, job_id, tokens_needed, result.existing
            )

        if result.outcome is WriteOutcome.INSUFFICIENT_FUNDS:
            # Balance dropped between the check and the write.
            return ReserveResult(
                success=False,
                tokens_needed=tokens_needed,
                available_tokens=result.new_balance,
                error=INSUFFICIENT_TOKENS,
                outcome=result.outcome,
            )

        logger.error(
            "Failed to hold %d tokens for job %s (user %s): %s",
            tokens_needed,
            job_id,
            user_id,
            result.outcome.value,
        )
        return ReserveResult(
            success=False,
            tokens_needed=tokens_needed,
            available_tokens=available,
            error=HOLD_FAILED,
            outcome=result.outcome,
        )

    async def _existing_hold(
        self, user_id: str, job_id: str, tokens_needed: int, hold
    ) -> ReserveResult:
        logger.info("Job %s already has hold %s; not holding again", job_id, hold.id)
        balance = await self._ledger.get_balance(user_id)
        return ReserveResult(
            success=True,
            tokens_needed=tokens_needed,
            available_tokens=balance,
            tokens_held=abs(hold.amount),
            new_balance=balance,
            already_held=True,
            outcome=WriteOutcome.DUPLICATE,
        )
