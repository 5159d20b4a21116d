"""Admin request/response schemas."""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, StringConstraints

# Stripped before the length bounds apply, so "   " is rejected
_UserId = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)
]
_Description = Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]


class AdminCredentials(BaseModel):
    """Dashboard password and the nonce it was derived with."""

    model_config = ConfigDict(extra="forbid")

    password: SecretStr | None = None
    nonce: str | None = Field(default=None, max_length=200)


class AdminTokenTransactionRequest(AdminCredentials):
    """Request body for POST /api/v1/admin/token-transactions.

    Attributes:
        user_id: User whose balance is adjusted.
        amount: Tokens to move (> 0).
        direction: "credit" adds tokens, "debit" removes them.
        description: Shown in the user's history.
    """

    user_id: _UserId
    amount: int = Field(gt=0, le=10_000_000)
    direction: Literal["credit", "debit"] = "credit"
    description: _Description | None = None


class AdminTokenTransactionResponse(BaseModel):
    """Response for POST /api/v1/admin/token-transactions."""

    model_config = ConfigDict(extra="forbid")

    ok: bool
    transaction_id: str
    new_balance: int
