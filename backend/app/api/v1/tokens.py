"""Tokens API router.

Balance, history, affordability checks and purchase quotes. All endpoints
require authentication. Money values are strings.
"""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Query

from app.api.deps import CurrentUserId, DbSession
from app.core.config import settings
from app.core.errors import ValidationError
from app.core.responses import DataResponse
from app.models.token_transaction import TokenTransaction
from app.schemas.tokens import (
    BalanceResponse,
    CreditsCheckResponse,
    DecoratedTransactionResponse,
    RenderCostParams,
    StudioAccessResponse,
    TokenInfoResponse,
    TokenPriceResponse,
    TokenTransactionResponse,
)
from app.services.token_hold_service import TokenHoldService
from app.services.token_ledger import TokenLedger
from app.services.token_pricing import calculate_token_price
from app.services.token_purchase_service import TokenPurchaseService
from app.services.transaction_history import decorate_transactions

router = APIRouter()

HistoryLimit = Annotated[
    int | None,
    Query(ge=1, le=500, description="Maximum entries, newest first"),
]
TokenAmount = Annotated[int, Query(description="Tokens to quote")]


def _to_response(txn: TokenTransaction) -> TokenTransactionResponse:
    return TokenTransactionResponse(
        id=str(txn.id),
        type=txn.transaction_type,
        amount=txn.amount,
        balance_after=txn.balance_after,
        description=txn.description,
        created_at=txn.created_at,
        render_job_id=txn.render_job_id,
    )


# =============================================================================
# GET /balance
# =============================================================================


@router.get("/balance")
async def get_balance(
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[BalanceResponse]:
    """Return the user's current token balance.

    A storage failure reads as 0 (fail-low); it is logged server-side.
    """
    balance = await TokenLedger(db).get_balance(user_id)
    return DataResponse(data=BalanceResponse(balance=balance, as_of=datetime.now(UTC)))


# =============================================================================
# GET /info
# =============================================================================


@router.get("/info")
async def get_token_info(
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[TokenInfoResponse]:
    """Return the balance plus recent history, collapsed for display."""
    ledger = TokenLedger(db)
    balance = await ledger.get_balance(user_id)
    transactions = await ledger.list_transactions(
        user_id, limit=settings.token_info_history_limit
    )
    decorated = decorate_transactions(transactions)
    return DataResponse(
        data=TokenInfoResponse(
            balance=balance,
            transactions=[
                DecoratedTransactionResponse(
                    id=str(item.id),
                    type=item.transaction_type,
                    amount=item.amount,
                    balance_after=item.balance_after,
                    description=item.description,
                    created_at=item.created_at,
                    render_job_id=item.render_job_id,
                    hidden=item.hidden,
                    display_amount=item.display_amount,
                    display_balance_after=item.display_balance_after,
                )
                for item in decorated
            ],
        )
    )


# =============================================================================
# GET /transactions
# =============================================================================


@router.get("/transactions")
async def list_transactions(
    user_id: CurrentUserId,
    db: DbSession,
    limit: HistoryLimit = None,
) -> DataResponse[list[TokenTransactionResponse]]:
    """Return raw ledger entries, newest first."""
    transactions = await TokenLedger(db).list_transactions(user_id, limit=limit)
    return DataResponse(data=[_to_response(txn) for txn in transactions])


# =============================================================================
# POST /credits-check
# =============================================================================


@router.post("/credits-check")
async def credits_check(
    body: RenderCostParams,
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[CreditsCheckResponse]:
    """Report whether the user can afford a render. Writes nothing."""
    result = await TokenHoldService(db).check_availability(
        user_id,
        body.resolved_message_count,
        has_custom_background=body.has_custom_background,
        uses_monetization=body.uses_monetization,
    )
    return DataResponse(
        data=CreditsCheckResponse(
            has_enough=result.has_enough,
            tokens_needed=result.tokens_needed,
            available_tokens=result.available_tokens,
        )
    )


# =============================================================================
# GET /price
# =============================================================================


@router.get("/price")
async def get_price(
    _user_id: CurrentUserId,
    tokens: TokenAmount,
) -> DataResponse[TokenPriceResponse]:
    """Quote a token purchase, volume discounts applied."""
    if not settings.token_min_purchase <= tokens <= settings.token_max_purchase:
        raise ValidationError(
            f"Token amount must be between {settings.token_min_purchase} "
            f"and {settings.token_max_purchase}",
            details=[{"field": "tokens", "value": tokens}],
        )

    quote = calculate_token_price(tokens)
    return DataResponse(
        data=TokenPriceResponse(
            tokens=quote.tokens,
            base_cost_usd=f"{quote.base_cost:.2f}",
            final_cost_usd=f"{quote.final_cost:.2f}",
            discount_percent=quote.discount_percent,
            discount_amount_usd=f"{quote.discount_amount:.2f}",
            usd_per_100=f"{quote.usd_per_100:.4f}",
            effective_usd_per_100=f"{quote.effective_usd_per_100:.4f}",
        )
    )


# =============================================================================
# GET /studio-access
# =============================================================================


@router.get("/studio-access")
async def get_studio_access(
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[StudioAccessResponse]:
    """Report whether the user has ever bought tokens."""
    has_purchase = await TokenPurchaseService(db).has_purchase(user_id)
    return DataResponse(data=StudioAccessResponse(has_purchase=has_purchase))
