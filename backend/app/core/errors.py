"""API error classes.

HTTP status codes and machine-readable error codes shared by every
endpoint. Ledger services return typed results for expected outcomes;
route handlers raise these errors to turn a result into a response.
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400)."""

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Use when requested resource doesn't exist OR doesn't belong to user.
    Revealing "exists but not yours" leaks information.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class InsufficientTokensError(APIError):
    """Not enough tokens for the requested operation (402).

    Details carry the figures the client needs to offer a top-up.

    Args:
        tokens_needed: Tokens the operation would cost.
        available_tokens: User's balance at the time of the check.
    """

    def __init__(self, tokens_needed: int, available_tokens: int) -> None:
        super().__init__(
            code="INSUFFICIENT_TOKENS",
            message=(
                f"This needs {tokens_needed} tokens but you have "
                f"{available_tokens}. Please buy more tokens to continue."
            ),
            status_code=402,
            details=[
                {
                    "tokens_needed": tokens_needed,
                    "available_tokens": available_tokens,
                }
            ],
        )


class LedgerConsistencyError(ConflictError):
    """Settlement requested for a job with no hold (409).

    Signals an upstream bug (job created without a reservation). Not
    retryable.
    """

    def __init__(self, job_id: str) -> None:
        super().__init__(
            code="NO_PENDING_TRANSACTION",
            message=f"No pending transaction found for job '{job_id}'",
        )


class LedgerWriteError(APIError):
    """Ledger write failed or ended in an unknown state.

    ``reconcile`` distinguishes "definitely not charged" (500) from
    "unknown state, reconcile" (503).

    Args:
        message: Human-readable description.
        reconcile: True if the write may or may not have been applied.
    """

    def __init__(self, message: str, *, reconcile: bool = False) -> None:
        super().__init__(
            code="LEDGER_RECONCILE_REQUIRED" if reconcile else "LEDGER_WRITE_FAILED",
            message=message,
            status_code=503 if reconcile else 500,
        )
        self.reconcile = reconcile


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
