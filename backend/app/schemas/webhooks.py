"""Job registry webhook schemas.

The job registry posts a row-change payload whenever a render_jobs row
changes. Unknown fields are ignored since the row carries far more than
the ledger needs.
"""

from pydantic import BaseModel, ConfigDict, Field


class JobRecord(BaseModel):
    """The render_jobs row after the change."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1, max_length=64)
    user_id: str = Field(min_length=1, max_length=255)
    status: str


class OldJobRecord(BaseModel):
    """The render_jobs row before the change."""

    model_config = ConfigDict(extra="ignore")

    status: str | None = None


class JobCompletionPayload(BaseModel):
    """Request body for POST /api/v1/webhooks/job-completion."""

    model_config = ConfigDict(extra="ignore")

    record: JobRecord
    old_record: OldJobRecord | None = None


class SettlementSummary(BaseModel):
    """Settle result echoed back to the job registry."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    already_processed: bool
    settled_as: str | None
    tokens_used: int | None
    tokens_refunded: int | None
    new_balance: int | None
    error: str | None


class JobCompletionResponse(BaseModel):
    """Response for POST /api/v1/webhooks/job-completion."""

    model_config = ConfigDict(extra="forbid")

    skipped: bool
    settlement: SettlementSummary | None = None


class TokenPurchasePayload(BaseModel):
    """Request body for POST /api/v1/webhooks/token-purchase.

    Sent once a payment provider has confirmed the payment.

    Attributes:
        user_id: Buyer.
        tokens: Tokens bought.
        transaction_id: Provider's payment id; a payment credits once.
        method: Provider label, e.g. "Razorpay" or "PayPal".
        package_id: Token package bought, if any.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    user_id: str = Field(min_length=1, max_length=255)
    tokens: int = Field(gt=0, le=10_000_000)
    transaction_id: str = Field(min_length=1, max_length=255)
    method: str = Field(min_length=1, max_length=50)
    package_id: str | None = Field(default=None, max_length=100)


class TokenPurchaseResponse(BaseModel):
    """Response for POST /api/v1/webhooks/token-purchase."""

    model_config = ConfigDict(extra="forbid")

    tokens: int
    new_balance: int
    already_processed: bool
