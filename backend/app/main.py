"""FastAPI application for the token ledger.

Mounts the v1 router under /api/v1 and renders every failure in the
{"error": {...}} envelope.
"""

import logging

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.api.v1.router import router as v1_router
from app.core.config import settings
from app.core.errors import APIError, InsufficientTokensError, LedgerWriteError
from app.core.responses import ErrorDetail, ErrorResponse

logger = structlog.get_logger()


class LedgerHeadersMiddleware(BaseHTTPMiddleware):
    """Keep balances and history out of shared caches.

    Only JSON leaves this service, so there is no frame or content
    policy to set.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"
        # TLS terminates at the proxy in production
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response


def _envelope(status_code: int, detail: ErrorDetail) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=detail).model_dump(),
    )


def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Render an APIError.

    Ledger write failures are logged at error level: a 503 leaves the
    user's ledger in an unknown state for an operator to reconcile.
    Refused holds and debits are logged at info.
    """
    if isinstance(exc, LedgerWriteError):
        logger.error(
            "ledger_write_failed",
            code=exc.code,
            reconcile=exc.reconcile,
            path=request.url.path,
        )
    elif isinstance(exc, InsufficientTokensError):
        logger.info("insufficient_tokens", path=request.url.path, details=exc.details)
    return _envelope(
        exc.status_code,
        ErrorDetail(code=exc.code, message=exc.message, details=exc.details),
    )


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request-body and query validation failures as 400."""
    return _envelope(
        400,
        ErrorDetail(
            code="VALIDATION_ERROR",
            message="Request validation failed",
            details=[
                {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                for e in exc.errors()
            ],
        ),
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log an unexpected exception and answer a generic 500."""
    logger.exception("unhandled_exception", exc_info=exc, path=request.url.path)
    return _envelope(
        500,
        ErrorDetail(code="INTERNAL_ERROR", message="An unexpected error occurred"),
    )


def create_app() -> FastAPI:
    """Build the ledger API application."""
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(
        title="ReelForge Token Ledger API",
        version="1.0.0",
        description="Token balances, render holds and settlement",
    )

    # Added last so CORS answers preflights before any other middleware runs
    app.add_middleware(LedgerHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization"],
    )

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.include_router(v1_router, prefix="/api/v1")

    @app.get("/health")
    def health_check() -> dict:
        return {"status": "healthy"}

    return app


app = create_app()
