"""Crediting purchased tokens to the ledger.

Payment providers (Stripe, Razorpay, PayPal) verify payments elsewhere;
this service only turns a verified payment into a token_purchase entry.
Provider callbacks and client confirmations can both report the same
payment, so crediting is idempotent per payment transaction id
(uq_token_txn_type_reference).
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError
from app.models.token_transaction import TokenTransaction, TransactionType
from app.repositories.token_transaction_repository import TokenTransactionRepository
from app.services.token_ledger import TokenLedger, WriteOutcome

logger = logging.getLogger(__name__)


@dataclass
class PurchaseResult:
    """Outcome of TokenPurchaseService.record_purchase()."""

    success: bool
    tokens: int
    new_balance: int
    already_processed: bool = False
    outcome: WriteOutcome | None = None


class TokenPurchaseService:
    """Records token purchases and answers purchase-history questions.

    Args:
        db: Async database session. The caller commits.
        ledger: Ledger to write through. Built from db if omitted.
    """

    def __init__(self, db: AsyncSession, ledger: TokenLedger | None = None) -> None:
        self._db = db
        self._ledger = ledger or TokenLedger(db)

    async def record_purchase(
        self,
        user_id: str,
        *,
        tokens: int,
        transaction_id: str,
        method: str,
        package_id: str | None = None,
    ) -> PurchaseResult:
        """Credit purchased tokens once per payment transaction.

        Args:
            user_id: Buyer.
            tokens: Tokens bought (must be positive).
            transaction_id: Payment provider's transaction id.
            method: Payment method label (e.g. "Razorpay", "PayPal").
            package_id: Token package bought, if any.

        Returns:
            PurchaseResult; already_processed if the payment was credited before.

        Raises:
            ValueError: If tokens is not positive.
            ConflictError: If another user already redeemed the payment.
        """
        if tokens <= 0:
            msg = f"Purchased token amount must be positive. Got: {tokens}"
            raise ValueError(msg)

        existing = await TokenTransactionRepository.get_by_reference(
            self._db, TransactionType.TOKEN_PURCHASE.value, transaction_id
        )
        if existing is not None:
            return await self._already_credited(existing, user_id)

        metadata = {"transaction_id": transaction_id, "method": method}
        if package_id:
            metadata["package_id"] = package_id

        result = await self._ledger.append_transaction(
            user_id=user_id,
            transaction_type=TransactionType.TOKEN_PURCHASE,
            amount=tokens,
            description=f"{method} purchase of {tokens} tokens",
            reference_id=transaction_id,
            metadata=metadata,
        )
        if result.outcome is WriteOutcome.DUPLICATE:
            # Lost a race with a concurrent report of the same payment
            existing = await TokenTransactionRepository.get_by_reference(
                self._db, TransactionType.TOKEN_PURCHASE.value, transaction_id
            )
            if existing is not None:
                return await self._already_credited(existing, user_id)
        return PurchaseResult(
            success=result.success,
            tokens=tokens,
            new_balance=result.new_balance,
            outcome=result.outcome,
        )

    async def _already_credited(
        self, existing: TokenTransaction, user_id: str
    ) -> PurchaseResult:
        if existing.user_id != user_id:
            logger.warning(
                "Payment %s reported for user %s but credited to user %s",
                existing.reference_id,
                user_id,
                existing.user_id,
            )
            raise ConflictError(
                "PAYMENT_ALREADY_REDEEMED",
                "This payment was already credited to another account",
            )
        logger.info("Payment %s already credited", existing.reference_id)
        return PurchaseResult(
            success=True,
            tokens=existing.amount,
            new_balance=await self._ledger.get_balance(user_id),
            already_processed=True,
            outcome=WriteOutcome.DUPLICATE,
        )

    async def has_purchase(self, user_id: str) -> bool:
        """Whether the user has ever bought tokens."""
        return await TokenTransactionRepository.exists_of_type(
            self._db, user_id, TransactionType.TOKEN_PURCHASE.value
        )
