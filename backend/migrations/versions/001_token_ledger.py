"""Create token ledger and render job tables.

Revision ID: 001_token_ledger
Revises:
Create Date: 2026-10-17

token_transactions is append-only. Concurrency is enforced by constraints:
uq_token_txn_user_sequence serializes writers per user,
uq_token_txn_job_type and uq_token_txn_job_settlement keep render
settlement idempotent, uq_token_txn_type_reference keeps purchases
idempotent.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "001_token_ledger"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Shared column types
_PG_UUID = sa.dialects.postgresql.UUID(as_uuid=True)
_UUID_DEFAULT = sa.text("gen_random_uuid()")

_TRANSACTION_TYPES = (
    "render_hold",
    "render_deduct",
    "render_refund",
    "admin_credit",
    "admin_debit",
    "token_purchase",
)
_RENDER_STATUSES = (
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


def _in_list(values: Sequence[str]) -> str:
    return ", ".join(f"'{v}'" for v in values)


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    """Create render_jobs and token_transactions."""
    # 1. Render job registry rows
    op.create_table(
        "render_jobs",
        sa.Column("id", _PG_UUID, server_default=_UUID_DEFAULT, primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column(
            "status", sa.String(30), server_default="processing", nullable=False
        ),
        sa.Column("stage", sa.String(10), server_default="audio", nullable=False),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("utc_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("utc_end", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            f"status IN ({_in_list(_RENDER_STATUSES)})",
            name="ck_render_job_status",
        ),
        sa.CheckConstraint(
            "stage IN ('audio', 'video')", name="ck_render_job_stage"
        ),
    )
    op.create_index("ix_render_jobs_user_id", "render_jobs", ["user_id"])

    # 2. Token ledger
    op.create_table(
        "token_transactions",
        sa.Column("id", _PG_UUID, server_default=_UUID_DEFAULT, primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("amount", sa.BigInteger, nullable=False),
        sa.Column("balance_after", sa.BigInteger, nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("render_job_id", sa.String(64), nullable=True),
        sa.Column("reference_id", sa.String(255), nullable=True),
        sa.Column("metadata", JSONB, nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint(
            f"type IN ({_in_list(_TRANSACTION_TYPES)})",
            name="ck_token_txn_type_valid",
        ),
        sa.CheckConstraint("balance_after >= 0", name="ck_token_txn_balance_nonneg"),
        sa.CheckConstraint("sequence > 0", name="ck_token_txn_sequence_positive"),
        # Latest-entry lookups use this constraint's index
        sa.UniqueConstraint(
            "user_id", "sequence", name="uq_token_txn_user_sequence"
        ),
        sa.UniqueConstraint("render_job_id", "type", name="uq_token_txn_job_type"),
        sa.UniqueConstraint(
            "type", "reference_id", name="uq_token_txn_type_reference"
        ),
    )

    # 3. One settlement (deduct OR refund) per job
    op.create_index(
        "uq_token_txn_job_settlement",
        "token_transactions",
        ["render_job_id"],
        unique=True,
        postgresql_where=sa.text("type IN ('render_deduct', 'render_refund')"),
    )
    op.create_index(
        "ix_token_txn_user_type",
        "token_transactions",
        ["user_id", "type"],
    )


def downgrade() -> None:
    """Drop token ledger and render job tables."""
    op.drop_index("ix_token_txn_user_type", table_name="token_transactions")
    op.drop_index("uq_token_txn_job_settlement", table_name="token_transactions")
    op.drop_table("token_transactions")
    op.drop_index("ix_render_jobs_user_id", table_name="render_jobs")
    op.drop_table("render_jobs")
