"""RenderJob model - placeholder registry row for a render.

The ledger never mutates these rows; it only correlates ledger entries
to a job through ``TokenTransaction.render_job_id``. The hold endpoint
creates the placeholder and deletes it again if the hold fails.
"""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin

RENDER_STATUSES = (
    "queued",
    "processing",
    "audio_generation",
    "audio_uploaded",
    "awaiting_to_start_render",
    "video_generation",
    "video_generated",
    "done",
    "failed",
    "cancelled",
)

# Statuses after which a job never changes again.
TERMINAL_STATUSES = frozenset({"done", "failed", "cancelled"})

_STATUS_LIST = ", ".join(f"'{s}'" for s in RENDER_STATUSES)


class RenderJob(Base, TimestampMixin):
    """A render job owned by the render pipeline.

    Attributes:
        id: UUID primary key; also the ledger's render_job_id.
        user_id: Owning user.
        status: Lifecycle status (see RENDER_STATUSES).
        stage: Generation phase, 'audio' or 'video'.
        error_message: Failure or cancellation reason.
        utc_start: When the job was created.
        utc_end: When the job reached a terminal state.
    """

    __tablename__ = "render_jobs"
    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_LIST})", name="ck_render_job_status"),
        CheckConstraint("stage IN ('audio', 'video')", name="ck_render_job_stage"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="processing",
    )
    stage: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="audio",
    )
    error_message: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    utc_start: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    utc_end: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
