"""API v1 router aggregator.

All v1 endpoint routers are included here.
"""

from fastapi import APIRouter

from app.api.v1 import admin, render, tokens, webhooks

router = APIRouter()

# =============================================================================
# Tokens & render billing
# =============================================================================

router.include_router(tokens.router, prefix="/tokens", tags=["tokens"])
router.include_router(render.router, prefix="/render", tags=["render"])

# =============================================================================
# Job registry callbacks
# =============================================================================

router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

# =============================================================================
# Admin
# =============================================================================

router.include_router(admin.router, prefix="/admin", tags=["admin"])
