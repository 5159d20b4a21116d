"""Token ledger ORM model (append-only, no TimestampMixin).

TokenTransaction is the ledger of every token balance change. Rows are
immutable: corrections are always new entries, never updates or deletes.

Concurrency is handled by constraints, not by the application:
- uq_token_txn_user_sequence: two writers that read the same latest entry
  compute the same next sequence; only one insert wins.
- uq_token_txn_job_type: at most one hold, deduct and refund per job.
- uq_token_txn_job_settlement: at most one settlement (deduct OR refund)
  per job; the first writer wins.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONVariant


class TransactionType(str, Enum):
    """Kinds of ledger entries."""

    RENDER_HOLD = "render_hold"
    RENDER_DEDUCT = "render_deduct"
    RENDER_REFUND = "render_refund"
    ADMIN_CREDIT = "admin_credit"
    ADMIN_DEBIT = "admin_debit"
    TOKEN_PURCHASE = "token_purchase"


# Entry types that resolve a hold; a job may carry at most one of them.
SETTLEMENT_TYPES = (
    TransactionType.RENDER_DEDUCT.value,
    TransactionType.RENDER_REFUND.value,
)

_TYPE_LIST = ", ".join(f"'{t.value}'" for t in TransactionType)
_SETTLEMENT_PREDICATE = text("type IN ('render_deduct', 'render_refund')")


class TokenTransaction(Base):
    """Append-only ledger of all token balance changes.

    Positive amounts = credits (purchases, admin credits, refunds).
    Negative amounts = debits (holds, admin debits).
    Deducts carry amount 0: the tokens already left at hold time.

    Attributes:
        id: UUID primary key.
        user_id: Owning user, as supplied by the identity provider.
        sequence: Per-user position in the ledger (1, 2, 3, ...).
        transaction_type: One of TransactionType (column ``type``).
        amount: Signed token amount (+credit, -debit).
        balance_after: User balance immediately after this entry.
        description: Human-readable description.
        render_job_id: Correlates hold/deduct/refund entries of one job.
        reference_id: External reference (payment transaction id).
        metadata_: Audit context (column ``metadata``).
        created_at: Transaction timestamp.
    """

    __tablename__ = "token_transactions"
    __table_args__ = (
        CheckConstraint(f"type IN ({_TYPE_LIST})", name="ck_token_txn_type_valid"),
        CheckConstraint("balance_after >= 0", name="ck_token_txn_balance_nonneg"),
        CheckConstraint("sequence > 0", name="ck_token_txn_sequence_positive"),
        UniqueConstraint("user_id", "sequence", name="uq_token_txn_user_sequence"),
        UniqueConstraint("render_job_id", "type", name="uq_token_txn_job_type"),
        UniqueConstraint("type", "reference_id", name="uq_token_txn_type_reference"),
        Index(
            "uq_token_txn_job_settlement",
            "render_job_id",
            unique=True,
            postgresql_where=_SETTLEMENT_PREDICATE,
            sqlite_where=_SETTLEMENT_PREDICATE,
        ),
        Index("ix_token_txn_user_type", "user_id", "type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    transaction_type: Mapped[str] = mapped_column(
        "type",
        String(20),
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )
    balance_after: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )
    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )
    render_job_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    reference_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSONVariant,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
