"""Repository for render job placeholder rows."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.render_job import RenderJob


class RenderJobRepository:
    """Stateless repository for RenderJob operations.

    All methods are static. The caller owns the transaction.
    """

    @staticmethod
    async def create_placeholder(db: AsyncSession, user_id: str) -> RenderJob:
        """Create a processing/audio job that a token hold will fund.

        Args:
            db: Async database session.
            user_id: Owning user.

        Returns:
            The created RenderJob.
        """
        job = RenderJob(
            user_id=user_id,
            status="processing",
            stage="audio",
            utc_start=datetime.now(UTC),
        )
        db.add(job)
        await db.flush()
        await db.refresh(job)
        return job

    @staticmethod
    async def get_for_user(
        db: AsyncSession, job_id: uuid.UUID, user_id: str
    ) -> RenderJob | None:
        """Fetch a job owned by the given user.

        Args:
            db: Async database session.
            job_id: Job primary key.
            user_id: Expected owner.

        Returns:
            RenderJob if found and owned by user_id, None otherwise.
        """
        stmt = select(RenderJob).where(
            RenderJob.id == job_id,
            RenderJob.user_id == user_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def delete(db: AsyncSession, job: RenderJob) -> None:
        """Delete a placeholder job whose hold failed.

        Args:
            db: Async database session.
            job: Job to delete.
        """
        await db.delete(job)
        await db.flush()

    @staticmethod
    async def mark_ended(
        db: AsyncSession,
        job: RenderJob,
        *,
        status: str,
        error_message: str | None = None,
    ) -> RenderJob:
        """Move a job to a terminal status and stamp utc_end.

        Args:
            db: Async database session.
            job: Job to update.
            status: 'failed' or 'cancelled'.
            error_message: Reason shown to the user.

        Returns:
            The updated RenderJob.
        """
        job.status = status
        job.error_message = error_message
        job.utc_end = datetime.now(UTC)
        await db.flush()
        await db.refresh(job)
        return job
