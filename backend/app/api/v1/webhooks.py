"""Webhooks API router.

The job registry calls job-completion whenever a render_jobs row changes.
Delivery is at least once, so every terminal transition may arrive more
than once; settlement is idempotent and the endpoint acknowledges every
settled, duplicate or unsettleable payload with 200 to avoid redelivery
storms. Only a failed ledger write answers 5xx so the registry retries.

Payment confirmations arrive on token-purchase, authenticated by a shared
secret header. Providers also retry, and a payment credits only once.
"""

import structlog
from fastapi import APIRouter, Depends

from app.api.deps import DbSession, require_payment_webhook
from app.core.responses import DataResponse
from app.schemas.webhooks import (
    JobCompletionPayload,
    JobCompletionResponse,
    SettlementSummary,
    TokenPurchasePayload,
    TokenPurchaseResponse,
)
from app.services.job_settlement import JobSettlementService
from app.services.token_ledger import write_failure
from app.services.token_purchase_service import TokenPurchaseService

router = APIRouter()
logger = structlog.get_logger()

_SETTLING_STATUSES = frozenset({"done", "failed"})


@router.post("/job-completion")
async def job_completion(
    payload: JobCompletionPayload,
    db: DbSession,
) -> DataResponse[JobCompletionResponse]:
    """Settle a render job's hold when it reaches done or failed."""
    record = payload.record
    old_status = payload.old_record.status if payload.old_record else None

    if record.status == old_status or record.status not in _SETTLING_STATUSES:
        logger.debug(
            "job_completion_skipped",
            job_id=record.id,
            status=record.status,
            old_status=old_status,
        )
        return DataResponse(data=JobCompletionResponse(skipped=True))

    result = await JobSettlementService(db).settle(
        record.user_id, record.id, succeeded=record.status == "done"
    )

    if result.success:
        logger.info(
            "job_settled",
            job_id=record.id,
            user_id=record.user_id,
            settled_as=result.settled_as,
            already_processed=result.already_processed,
        )
    else:
        logger.error(
            "job_settlement_failed",
            job_id=record.id,
            user_id=record.user_id,
            status=record.status,
            error=result.error,
            settled_as=result.settled_as,
        )
        if not result.already_processed and not result.missing_hold:
            raise write_failure(result.outcome, "settle render job")

    return DataResponse(
        data=JobCompletionResponse(
            skipped=False,
            settlement=SettlementSummary(
                success=result.success,
                already_processed=result.already_processed,
                settled_as=result.settled_as,
                tokens_used=result.tokens_used,
                tokens_refunded=result.tokens_refunded,
                new_balance=result.new_balance,
                error=result.error,
            ),
        )
    )


@router.post("/token-purchase", dependencies=[Depends(require_payment_webhook)])
async def token_purchase(
    payload: TokenPurchasePayload,
    db: DbSession,
) -> DataResponse[TokenPurchaseResponse]:
    """Credit tokens for a confirmed payment.

    Raises:
        UnauthorizedError: Missing or wrong webhook secret (401).
        ConflictError: Payment already credited to another user (409).
        LedgerWriteError: Purchase could not be written (500/503).
    """
    result = await TokenPurchaseService(db).record_purchase(
        payload.user_id,
        tokens=payload.tokens,
        transaction_id=payload.transaction_id,
        method=payload.method,
        package_id=payload.package_id,
    )
    if not result.success:
        raise write_failure(result.outcome, "credit purchased tokens")

    logger.info(
        "token_purchase_credited",
        user_id=payload.user_id,
        transaction_id=payload.transaction_id,
        tokens=result.tokens,
        already_processed=result.already_processed,
    )
    return DataResponse(
        data=TokenPurchaseResponse(
            tokens=result.tokens,
            new_balance=result.new_balance,
            already_processed=result.already_processed,
        )
    )
