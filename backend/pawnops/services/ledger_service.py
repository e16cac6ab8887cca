# Overview: Service-layer operations for the branch capital ledger; append-only postings and balances.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from flask import current_app, has_app_context
from sqlalchemy import and_, or_

from ..extensions import db
from ..models import Branch, CapitalLedgerEntry
from ..models.ledger import TRANSACTION_TYPES
from ..validation import NotFoundError, ValidationError, amount_to_cents, cents_to_decimal
from ..time_utils import today, utcnow
from .concurrency import branch_lock, lock_for_update, run_with_retry

"""
Branch Capital Ledger Invariants (authoritative)

- Append-only: no updates or deletes of existing entries.
- running_balance[n] == running_balance[n-1] + amount[n] per branch, in
  (created_at, id) order, starting from zero.
- Every read-latest/insert pair runs under branch_lock(branch_id) plus a
  FOR UPDATE on the branch row, and commits before the lock is released.
- A failed posting rolls back completely; no partial balance is visible.
"""


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceDiscrepancy:
    entry_id: int
    expected_balance_cents: int
    stored_balance_cents: int

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "expected_balance_cents": self.expected_balance_cents,
            "stored_balance_cents": self.stored_balance_cents,
        }


def retry_attempts() -> int:
    if has_app_context():
        return int(current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3))
    return 3


def _latest_entry(branch_id: int) -> CapitalLedgerEntry | None:
    return (
        db.session.query(CapitalLedgerEntry)
        .filter(CapitalLedgerEntry.branch_id == branch_id)
        .order_by(CapitalLedgerEntry.created_at.desc(), CapitalLedgerEntry.id.desc())
        .first()
    )


def get_current_capital_cents(branch_id: int) -> int:
    """Running balance of the latest entry for the branch; 0 when none exist."""
    latest = _latest_entry(branch_id)
    return int(latest.running_balance_cents) if latest else 0


def get_current_capital(branch_id: int) -> Decimal:
    """
    Current capital of a branch as a Decimal.

    Absence of entries (or of the branch itself) is the zero state, not an
    error.
    """
    return cents_to_decimal(get_current_capital_cents(branch_id))


def get_all_current_capital() -> dict[int, Decimal]:
    """Current capital for every branch that has at least one entry."""
    branch_ids = [row[0] for row in db.session.query(CapitalLedgerEntry.branch_id).distinct().all()]
    return {branch_id: get_current_capital(branch_id) for branch_id in sorted(branch_ids)}


def append_entry(
    *,
    branch_id: int,
    transaction_type: str,
    amount_cents: int,
    related_loan_id: int | None = None,
    assignment_id: int | None = None,
    posted_by_account_id: int | None = None,
    description: Optional[str] = None,
    transaction_date: Optional[date] = None,
) -> CapitalLedgerEntry:
    """
    Insert the next entry for a branch without locking or committing.

    Callers MUST hold branch_lock(branch_id) and commit before releasing it
    (post_entry does this; loan_service uses it to share one transaction).
    """
    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"transaction_type must be one of: {', '.join(TRANSACTION_TYPES)}")

    branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
    if not branch:
        raise NotFoundError(f"Branch {branch_id} not found")

    latest = _latest_entry(branch_id)
    current = int(latest.running_balance_cents) if latest else 0
    created_at = utcnow()
    if latest is not None and latest.created_at > created_at:
        # keep (created_at, id) order equal to insertion order if the clock steps back
        created_at = latest.created_at

    entry = CapitalLedgerEntry(
        branch_id=branch_id,
        transaction_type=transaction_type,
        amount_cents=amount_cents,
        running_balance_cents=current + amount_cents,
        related_loan_id=related_loan_id,
        assignment_id=assignment_id,
        posted_by_account_id=posted_by_account_id,
        description=description,
        transaction_date=transaction_date or today(),
        created_at=created_at,
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def post_entry(
    branch_id: int,
    transaction_type: str,
    signed_amount,
    *,
    related_loan_id: int | None = None,
    assignment_id: int | None = None,
    posted_by_account_id: int | None = None,
    description: Optional[str] = None,
    transaction_date: Optional[date] = None,
) -> CapitalLedgerEntry:
    """
    Post one signed capital movement and commit it.

    The caller owns the sign: negative for outflows, positive for inflows.
    Read-latest and insert run as one unit under the branch lock, retried on
    lock contention. Raises ValidationError, NotFoundError, or
    ConcurrencyConflictError once retries are exhausted.
    """
    amount_cents = amount_to_cents(signed_amount)

    def _op():
        with branch_lock(branch_id):
            try:
                entry = append_entry(
                    branch_id=branch_id,
                    transaction_type=transaction_type,
                    amount_cents=amount_cents,
                    related_loan_id=related_loan_id,
                    assignment_id=assignment_id,
                    posted_by_account_id=posted_by_account_id,
                    description=description,
                    transaction_date=transaction_date,
                )
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
        logger.info(
            "Posted %s %s to branch %s (balance %s)",
            transaction_type, amount_cents, branch_id, entry.running_balance_cents,
        )
        return entry

    return run_with_retry(_op, attempts=retry_attempts())


def list_entries(
    branch_id: int,
    *,
    order_descending: bool = True,
    limit: int | None = None,
    before_id: int | None = None,
) -> list[CapitalLedgerEntry]:
    """
    Ledger entries for a branch in (created_at, id) order.

    before_id pages backwards from a previously returned entry (descending
    order only).
    """
    q = db.session.query(CapitalLedgerEntry).filter(CapitalLedgerEntry.branch_id == branch_id)

    if before_id is not None and order_descending:
        anchor = db.session.query(CapitalLedgerEntry).filter_by(id=before_id, branch_id=branch_id).first()
        if not anchor:
            raise NotFoundError(f"Ledger entry {before_id} not found for branch {branch_id}")
        q = q.filter(
            or_(
                CapitalLedgerEntry.created_at < anchor.created_at,
                and_(
                    CapitalLedgerEntry.created_at == anchor.created_at,
                    CapitalLedgerEntry.id < anchor.id,
                ),
            )
        )

    if order_descending:
        q = q.order_by(CapitalLedgerEntry.created_at.desc(), CapitalLedgerEntry.id.desc())
    else:
        q = q.order_by(CapitalLedgerEntry.created_at.asc(), CapitalLedgerEntry.id.asc())

    if limit is not None:
        q = q.limit(limit)
    return q.all()


def verify_branch_ledger(branch_id: int) -> list[BalanceDiscrepancy]:
    """
    Replay a branch's entries from zero and report every stored running
    balance that disagrees with the replay. Empty list == invariant holds.
    """
    discrepancies: list[BalanceDiscrepancy] = []
    expected = 0
    for entry in list_entries(branch_id, order_descending=False):
        expected += int(entry.amount_cents)
        if int(entry.running_balance_cents) != expected:
            discrepancies.append(BalanceDiscrepancy(
                entry_id=entry.id,
                expected_balance_cents=expected,
                stored_balance_cents=int(entry.running_balance_cents),
            ))
    return discrepancies
