"""SQLAlchemy ORM models.

All models are exported from this module for convenient imports:
    from app.models import TokenTransaction, RenderJob

- token_transaction.py: TokenTransaction (append-only token ledger)
- render_job.py: RenderJob (placeholder job registry row)
"""

from app.models.base import Base, TimestampMixin
from app.models.render_job import RenderJob
from app.models.token_transaction import TokenTransaction, TransactionType

__all__ = [
    "Base",
    "TimestampMixin",
    "RenderJob",
    "TokenTransaction",
    "TransactionType",
]
