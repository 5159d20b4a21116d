"""Token ledger request/response schemas.

Token amounts are plain integers. Transaction ids are strings.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# =============================================================================
# Shared request body
# =============================================================================


class RenderCostParams(BaseModel):
    """Parameters that determine what a render costs.

    Clients either send the script's messages or just their count.

    Attributes:
        messages: Chat messages of the script (only the count matters).
        message_count: Number of messages, when messages are not sent.
        has_custom_background: Whether a non-default background is used.
        uses_monetization: Whether the monetization takeover is enabled.
    """

    model_config = ConfigDict(extra="forbid")

    messages: list[dict[str, Any]] | None = Field(default=None, max_length=10000)
    message_count: int | None = Field(default=None, ge=0, le=10000)
    has_custom_background: bool = False
    uses_monetization: bool = False

    @model_validator(mode="after")
    def check_messages_present(self) -> "RenderCostParams":
        if self.messages is None and self.message_count is None:
            msg = "Either messages or message_count is required"
            raise ValueError(msg)
        return self

    @property
    def resolved_message_count(self) -> int:
        """Message count, preferring the explicit count."""
        if self.message_count is not None:
            return self.message_count
        return len(self.messages or [])


# =============================================================================
# Responses
# =============================================================================


class BalanceResponse(BaseModel):
    """Response for GET /api/v1/tokens/balance.

    Attributes:
        balance: Current token balance.
        as_of: Timestamp when the balance was read.
    """

    model_config = ConfigDict(extra="forbid")

    balance: int
    as_of: datetime


class TokenTransactionResponse(BaseModel):
    """Ledger entry as returned by GET /api/v1/tokens/transactions.

    Attributes:
        id: Transaction UUID.
        type: TransactionType value.
        amount: Signed token amount (+credit, -debit).
        balance_after: Balance after this entry.
        description: Human-readable description.
        created_at: Transaction timestamp.
        render_job_id: Correlated render job, if any.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    type: str
    amount: int
    balance_after: int
    description: str
    created_at: datetime
    render_job_id: str | None


class DecoratedTransactionResponse(TokenTransactionResponse):
    """Ledger entry prepared for display.

    Attributes:
        hidden: True if the entry is folded into another line.
        display_amount: Amount to show.
        display_balance_after: Balance to show.
    """

    hidden: bool
    display_amount: int
    display_balance_after: int


class TokenInfoResponse(BaseModel):
    """Response for GET /api/v1/tokens/info."""

    model_config = ConfigDict(extra="forbid")

    balance: int
    transactions: list[DecoratedTransactionResponse]


class CreditsCheckResponse(BaseModel):
    """Response for POST /api/v1/tokens/credits-check."""

    model_config = ConfigDict(extra="forbid")

    has_enough: bool
    tokens_needed: int
    available_tokens: int


class TokenPriceResponse(BaseModel):
    """Response for GET /api/v1/tokens/price.

    Money values are strings with 2 decimal places; per-100 rates keep 4.
    """

    model_config = ConfigDict(extra="forbid")

    tokens: int
    base_cost_usd: str
    final_cost_usd: str
    discount_percent: int
    discount_amount_usd: str
    usd_per_100: str
    effective_usd_per_100: str


class StudioAccessResponse(BaseModel):
    """Response for GET /api/v1/tokens/studio-access."""

    model_config = ConfigDict(extra="forbid")

    has_purchase: bool
