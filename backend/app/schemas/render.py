"""Render billing request/response schemas."""

import uuid

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.tokens import RenderCostParams

USER_CANCELLED_REASON = "User cancelled generation"


class HoldTokensRequest(RenderCostParams):
    """Request body for POST /api/v1/render/hold-tokens."""


class HoldTokensResponse(BaseModel):
    """Response for POST /api/v1/render/hold-tokens.

    Attributes:
        job_id: Placeholder render job funded by the hold.
        tokens_held: Tokens reserved for the job.
        new_balance: Balance after the hold.
    """

    model_config = ConfigDict(extra="forbid")

    success: bool
    job_id: str
    tokens_held: int
    new_balance: int | None


class RefundHoldRequest(BaseModel):
    """Request body for POST /api/v1/render/refund-hold.

    Attributes:
        job_id: Job whose hold should be returned.
        reason: Why the job ended. USER_CANCELLED_REASON marks it cancelled.
    """

    model_config = ConfigDict(extra="forbid")

    job_id: uuid.UUID
    reason: str | None = Field(default=None, max_length=500)


class RefundHoldResponse(BaseModel):
    """Response for POST /api/v1/render/refund-hold."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    refunded: int
    already_processed: bool
