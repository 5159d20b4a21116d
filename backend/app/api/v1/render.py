"""Render billing API router.

Hold tokens before a render starts; return them when the user abandons
the render before it runs. Completion-driven settlement arrives through
the job-completion webhook.
"""

import structlog
from fastapi import APIRouter

from app.api.deps import CurrentUserId, DbSession
from app.core.errors import (
    ConflictError,
    InsufficientTokensError,
    LedgerConsistencyError,
    NotFoundError,
)
from app.core.responses import DataResponse
from app.repositories.render_job_repository import RenderJobRepository
from app.schemas.render import (
    USER_CANCELLED_REASON,
    HoldTokensRequest,
    HoldTokensResponse,
    RefundHoldRequest,
    RefundHoldResponse,
)
from app.services.job_settlement import JobSettlementService
from app.services.token_hold_service import INSUFFICIENT_TOKENS, TokenHoldService
from app.services.token_ledger import write_failure

router = APIRouter()
logger = structlog.get_logger()

_CANCELLED_MESSAGE = "Generation cancelled before render was started"
_FAILED_MESSAGE = "Generation failed before render was started"


# =============================================================================
# POST /hold-tokens
# =============================================================================


@router.post("/hold-tokens")
async def hold_tokens(
    body: HoldTokensRequest,
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[HoldTokensResponse]:
    """Create a placeholder render job and hold its estimated cost.

    The job is deleted again if the hold fails, so no unfunded job is
    left behind.

    Raises:
        InsufficientTokensError: Balance below the estimated cost (402).
        LedgerWriteError: Hold could not be written (500/503).
    """
    job = await RenderJobRepository.create_placeholder(db, user_id)
    job_id = str(job.id)

    result = await TokenHoldService(db).reserve(
        user_id,
        job_id,
        body.resolved_message_count,
        has_custom_background=body.has_custom_background,
        uses_monetization=body.uses_monetization,
    )

    if not result.success:
        await RenderJobRepository.delete(db, job)
        logger.info(
            "render_hold_rejected",
            user_id=user_id,
            tokens_needed=result.tokens_needed,
            available_tokens=result.available_tokens,
            error=result.error,
        )
        if result.error == INSUFFICIENT_TOKENS:
            raise InsufficientTokensError(
                tokens_needed=result.tokens_needed,
                available_tokens=result.available_tokens,
            )
        raise write_failure(result.outcome, "hold tokens")

    logger.info(
        "render_tokens_held",
        user_id=user_id,
        job_id=job_id,
        tokens_held=result.tokens_held,
    )
    return DataResponse(
        data=HoldTokensResponse(
            success=True,
            job_id=job_id,
            tokens_held=result.tokens_held,
            new_balance=result.new_balance,
        )
    )


# =============================================================================
# POST /refund-hold
# =============================================================================


@router.post("/refund-hold")
async def refund_hold(
    body: RefundHoldRequest,
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[RefundHoldResponse]:
    """Refund a job's hold and end the job.

    Used when generation stops before the render runs (cancelled by the
    user, or failed while producing audio).

    Raises:
        NotFoundError: Job missing or not owned by the user (404).
        ConflictError: Job already completed or already charged (409).
        LedgerConsistencyError: Job has no hold (409).
        LedgerWriteError: Refund could not be written (500/503).
    """
    job = await RenderJobRepository.get_for_user(db, body.job_id, user_id)
    if job is None:
        raise NotFoundError("Render job", str(body.job_id))
    if job.status == "done":
        raise ConflictError(code="JOB_COMPLETED", message="Job already completed")

    job_id = str(job.id)
    result = await JobSettlementService(db).settle(user_id, job_id, succeeded=False)

    if result.missing_hold:
        raise LedgerConsistencyError(job_id)
    if not result.success:
        if result.already_processed:
            raise ConflictError(
                code="JOB_ALREADY_SETTLED",
                message=result.error or "Job already settled",
                details=[{"settled_as": result.settled_as}],
            )
        raise write_failure(result.outcome, "refund tokens")

    cancelled = body.reason == USER_CANCELLED_REASON
    if cancelled:
        error_message = _CANCELLED_MESSAGE
    else:
        error_message = body.reason or _FAILED_MESSAGE
    await RenderJobRepository.mark_ended(
        db,
        job,
        status="cancelled" if cancelled else "failed",
        error_message=error_message,
    )

    logger.info(
        "render_hold_refunded",
        user_id=user_id,
        job_id=job_id,
        refunded=result.tokens_refunded,
        already_processed=result.already_processed,
    )
    return DataResponse(
        data=RefundHoldResponse(
            success=True,
            refunded=result.tokens_refunded or 0,
            already_processed=result.already_processed,
        )
    )
