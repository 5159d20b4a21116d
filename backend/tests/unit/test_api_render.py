"""Tests for Render billing API endpoints.

- POST /api/v1/render/hold-tokens
- POST /api/v1/render/refund-hold
"""

import uuid
from unittest.mock import AsyncMock, patch

from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.render_job import RenderJob
from app.services.token_hold_service import HOLD_FAILED, ReserveResult
from app.services.token_ledger import WriteOutcome
from tests.conftest import OTHER_USER_ID, TEST_USER_ID, seed_transaction

# =============================================================================
# URL constants
# =============================================================================

_URL_HOLD = "/api/v1/render/hold-tokens"
_URL_REFUND = "/api/v1/render/refund-hold"
_URL_BALANCE = "/api/v1/tokens/balance"
_URL_WEBHOOK = "/api/v1/webhooks/job-completion"
_PATCH_RESERVE = "app.api.v1.render.TokenHoldService.reserve"


# =============================================================================
# Helpers
# =============================================================================


async def _fund(db: AsyncSession, amount: int = 100) -> None:
    await seed_transaction(db, TEST_USER_ID, amount)
    await db.commit()


async def _hold(client: AsyncClient, message_count: int = 50) -> str:
    response = await client.post(_URL_HOLD, json={"message_count": message_count})
    assert response.status_code == 200
    return response.json()["data"]["job_id"]


async def _balance(client: AsyncClient) -> int:
    response = await client.get(_URL_BALANCE)
    return response.json()["data"]["balance"]


async def _job_count(db: AsyncSession) -> int:
    result = await db.execute(
        select(func.count()).select_from(RenderJob).where(
            RenderJob.user_id == TEST_USER_ID
        )
    )
    return result.scalar_one()


async def _get_job(db: AsyncSession, job_id: str) -> RenderJob:
    result = await db.execute(
        select(RenderJob).where(RenderJob.id == uuid.UUID(job_id))
    )
    return result.scalar_one()


# =============================================================================
# POST /hold-tokens
# =============================================================================


class TestHoldTokens:
    """POST /api/v1/render/hold-tokens."""

    async def test_holds_and_creates_job(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        await _fund(db_session)

        response = await client.post(_URL_HOLD, json={"messages": [{}] * 50})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["success"] is True
        assert data["tokens_held"] == 60
        assert data["new_balance"] == 40
        assert await _balance(client) == 40

        job = await _get_job(db_session, data["job_id"])
        assert job.user_id == TEST_USER_ID
        assert job.status == "processing"
        assert job.stage == "audio"
        assert job.utc_start is not None

    async def test_insufficient_tokens_402_and_no_job(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        await _fund(db_session, 50)

        response = await client.post(_URL_HOLD, json={"message_count": 50})

        assert response.status_code == 402
        error = response.json()["error"]
        assert error["code"] == "INSUFFICIENT_TOKENS"
        assert error["details"] == [{"tokens_needed": 60, "available_tokens": 50}]
        assert await _job_count(db_session) == 0
        assert await _balance(client) == 50

    async def test_storage_error_503_and_no_job(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        await _fund(db_session)
        failed = ReserveResult(
            success=False,
            tokens_needed=60,
            available_tokens=100,
            error=HOLD_FAILED,
            outcome=WriteOutcome.STORAGE_ERROR,
        )

        with patch(_PATCH_RESERVE, new=AsyncMock(return_value=failed)):
            response = await client.post(_URL_HOLD, json={"message_count": 50})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "LEDGER_RECONCILE_REQUIRED"
        assert await _job_count(db_session) == 0

    async def test_exhausted_retries_500(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        await _fund(db_session)
        failed = ReserveResult(
            success=False,
            tokens_needed=60,
            available_tokens=100,
            error=HOLD_FAILED,
            outcome=WriteOutcome.CONFLICT_RETRIES_EXHAUSTED,
        )

        with patch(_PATCH_RESERVE, new=AsyncMock(return_value=failed)):
            response = await client.post(_URL_HOLD, json={"message_count": 50})

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "LEDGER_WRITE_FAILED"

    async def test_rejects_unknown_fields(self, client: AsyncClient) -> None:
        response = await client.post(
            _URL_HOLD, json={"message_count": 1, "discount": 100}
        )

        assert response.status_code == 400


# =============================================================================
# POST /refund-hold
# =============================================================================


class TestRefundHold:
    """POST /api/v1/render/refund-hold."""

    async def test_user_cancel_refunds_and_cancels_job(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        await _fund(db_session)
        job_id = await _hold(client)

        response = await client.post(
            _URL_REFUND,
            json={"job_id": job_id, "reason": "User cancelled generation"},
        )

        assert response.status_code == 200
        assert response.json()["data"] == {
            "success": True,
            "refunded": 60,
            "already_processed": False,
        }
        assert await _balance(client) == 100

        job = await _get_job(db_session, job_id)
        assert job.status == "cancelled"
        assert job.error_message == "Generation cancelled before render was started"
        assert job.utc_end is not None

    async def test_failure_reason_marks_job_failed(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        await _fund(db_session)
        job_id = await _hold(client)

        await client.post(
            _URL_REFUND, json={"job_id": job_id, "reason": "TTS provider down"}
        )

        job = await _get_job(db_session, job_id)
        assert job.status == "failed"
        assert job.error_message == "TTS provider down"

    async def test_default_failure_message(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        await _fund(db_session)
        job_id = await _hold(client)

        await client.post(_URL_REFUND, json={"job_id": job_id})

        job = await _get_job(db_session, job_id)
        assert job.error_message == "Generation failed before render was started"

    async def test_second_refund_already_processed(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        await _fund(db_session)
        job_id = await _hold(client)
        await client.post(_URL_REFUND, json={"job_id": job_id})

        response = await client.post(_URL_REFUND, json={"job_id": job_id})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["already_processed"] is True
        assert data["refunded"] == 60
        assert await _balance(client) == 100

    async def test_unknown_job_404(self, client: AsyncClient) -> None:
        response = await client.post(_URL_REFUND, json={"job_id": str(uuid.uuid4())})

        assert response.status_code == 404

    async def test_other_users_job_404(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        job = RenderJob(user_id=OTHER_USER_ID, status="processing", stage="audio")
        db_session.add(job)
        await db_session.commit()

        response = await client.post(_URL_REFUND, json={"job_id": str(job.id)})

        assert response.status_code == 404

    async def test_completed_job_409(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        await _fund(db_session)
        job_id = await _hold(client)
        job = await _get_job(db_session, job_id)
        job.status = "done"
        await db_session.commit()

        response = await client.post(_URL_REFUND, json={"job_id": job_id})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "JOB_COMPLETED"
        assert await _balance(client) == 40

    async def test_already_charged_job_409(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        """The completion callback won the race; the refund is refused."""
        await _fund(db_session)
        job_id = await _hold(client)
        await client.post(
            _URL_WEBHOOK,
            json={
                "record": {"id": job_id, "user_id": TEST_USER_ID, "status": "done"},
                "old_record": {"status": "video_generation"},
            },
        )

        response = await client.post(_URL_REFUND, json={"job_id": job_id})

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "JOB_ALREADY_SETTLED"
        assert error["details"] == [{"settled_as": "render_deduct"}]
        assert await _balance(client) == 40

    async def test_job_without_hold_409(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        job = RenderJob(user_id=TEST_USER_ID, status="processing", stage="audio")
        db_session.add(job)
        await db_session.commit()

        response = await client.post(_URL_REFUND, json={"job_id": str(job.id)})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "NO_PENDING_TRANSACTION"

    async def test_invalid_job_id_400(self, client: AsyncClient) -> None:
        response = await client.post(_URL_REFUND, json={"job_id": "not-a-uuid"})

        assert response.status_code == 400
