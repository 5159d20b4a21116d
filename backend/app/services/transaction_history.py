"""Display projection of a user's token history.

A render leaves up to three ledger entries (hold, then deduct or refund).
Users should see one line per render, so:
- hold + refund, no deduct: both hidden (net zero)
- hold + deduct: hold hidden; deduct displays the hold's amount and
  balance_after instead of its own zero amount
- hold only (pending): shown as-is
- entries without a render_job_id: shown as-is

Read-side only; the ledger itself is never touched.
"""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from app.models.token_transaction import TokenTransaction, TransactionType

_HOLD = TransactionType.RENDER_HOLD.value
_DEDUCT = TransactionType.RENDER_DEDUCT.value
_REFUND = TransactionType.RENDER_REFUND.value


@dataclass
class DecoratedTransaction:
    """A ledger entry prepared for display."""

    id: uuid.UUID
    transaction_type: str
    amount: int
    balance_after: int
    description: str
    created_at: datetime
    render_job_id: str | None
    display_amount: int
    display_balance_after: int
    hidden: bool = False


@dataclass
class _JobEntries:
    hold: TokenTransaction | None = None
    deduct: TokenTransaction | None = None
    refund: TokenTransaction | None = None


def _group_by_job(transactions: Sequence[TokenTransaction]) -> dict[str, _JobEntries]:
    groups: dict[str, _JobEntries] = {}
    for txn in transactions:
        if txn.render_job_id is None:
            continue
        entries = groups.setdefault(txn.render_job_id, _JobEntries())
        if txn.transaction_type == _HOLD:
            entries.hold = txn
        elif txn.transaction_type == _DEDUCT:
            entries.deduct = txn
        elif txn.transaction_type == _REFUND:
            entries.refund = txn
    return groups


def decorate_transactions(
    transactions: Sequence[TokenTransaction],
) -> list[DecoratedTransaction]:
    """Collapse each render's hold/deduct/refund entries into one visible line.

    Args:
        transactions: One user's entries, in any consistent time order.

    Returns:
        One DecoratedTransaction per input entry, in input order.
    """
    groups = _group_by_job(transactions)
    decorated = []

    for txn in transactions:
        item = DecoratedTransaction(
            id=txn.id,
            transaction_type=txn.transaction_type,
            amount=txn.amount,
            balance_after=txn.balance_after,
            description=txn.description,
            created_at=txn.created_at,
            render_job_id=txn.render_job_id,
            display_amount=txn.amount,
            display_balance_after=txn.balance_after,
        )
        decorated.append(item)

        if txn.render_job_id is None:
            continue
        entries = groups[txn.render_job_id]
        # Without the hold in view there is nothing to collapse into.
        if entries.hold is None:
            continue

        if entries.refund is not None and entries.deduct is None:
            if txn.transaction_type in (_HOLD, _REFUND):
                item.hidden = True
        elif entries.deduct is not None:
            if txn.transaction_type == _HOLD:
                item.hidden = True
            elif txn.transaction_type == _DEDUCT:
                item.display_amount = entries.hold.amount
                item.display_balance_after = entries.hold.balance_after

    return decorated
