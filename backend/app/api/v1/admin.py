"""Admin API router.

Manual token adjustments from the admin dashboard. Each request carries
the dashboard password and a nonce (see require_admin).
"""

import structlog
from fastapi import APIRouter

from app.api.deps import DbSession, require_admin
from app.core.errors import InsufficientTokensError
from app.core.responses import DataResponse
from app.models.token_transaction import TransactionType
from app.schemas.admin import (
    AdminTokenTransactionRequest,
    AdminTokenTransactionResponse,
)
from app.services.token_ledger import TokenLedger, WriteOutcome, write_failure

router = APIRouter()
logger = structlog.get_logger()

_DEFAULT_DESCRIPTION = "Admin token adjustment"
_ADMIN_METADATA = {"source": "admin-dashboard"}


# =============================================================================
# POST /token-transactions
# =============================================================================


@router.post("/token-transactions")
async def create_token_transaction(
    body: AdminTokenTransactionRequest,
    db: DbSession,
) -> DataResponse[AdminTokenTransactionResponse]:
    """Credit or debit a user's tokens.

    Raises:
        InternalError: Admin password not configured (500).
        ValidationError: Missing nonce (400).
        UnauthorizedError: Bad credentials (401).
        InsufficientTokensError: Debit larger than the balance (402).
        LedgerWriteError: Adjustment could not be written (500/503).
    """
    require_admin(body)

    if body.direction == "credit":
        txn_type = TransactionType.ADMIN_CREDIT
        amount = body.amount
    else:
        txn_type = TransactionType.ADMIN_DEBIT
        amount = -body.amount

    result = await TokenLedger(db).append_transaction(
        user_id=body.user_id,
        transaction_type=txn_type,
        amount=amount,
        description=body.description or _DEFAULT_DESCRIPTION,
        metadata=dict(_ADMIN_METADATA),
    )

    if result.outcome is WriteOutcome.INSUFFICIENT_FUNDS:
        raise InsufficientTokensError(
            tokens_needed=body.amount, available_tokens=result.new_balance
        )
    if not result.success:
        raise write_failure(result.outcome, "adjust tokens")

    logger.info(
        "admin_token_adjustment",
        user_id=body.user_id,
        type=txn_type.value,
        amount=amount,
        new_balance=result.new_balance,
    )
    return DataResponse(
        data=AdminTokenTransactionResponse(
            ok=True,
            transaction_id=str(result.transaction_id),
            new_balance=result.new_balance,
        )
    )
