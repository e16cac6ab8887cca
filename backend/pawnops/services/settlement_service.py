# Overview: Service-layer operations for delivery settlement; ledger postings and item relocation on assignment edges.

"""
Settlement Coordinator

Keeps the capital ledger and inventory location in line with assignment
lifecycle edges:

- Creation of a capital-type assignment posts TRANSFER_OUT (-amount) against
  the source branch. Cash leaves the source's custody at dispatch.
- Completion relocates carried items to the destination branch and posts
  TRANSFER_IN (+amount) against the destination branch.

Each side effect runs in its own transaction AFTER the assignment row has
been committed. A failure rolls back only that side effect, is logged at
WARNING and is persisted as a SettlementIssue row for operators. It never
propagates to the request that triggered it.

Callers guarantee completion runs once per assignment: it is only invoked
on the conditional IN_PROGRESS -> COMPLETED update (see assignment_service).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..extensions import db
from ..models import CapitalLedgerEntry, DeliveryAssignment, SettlementIssue
from ..models.ledger import TRANSACTION_TRANSFER_IN, TRANSACTION_TRANSFER_OUT
from ..models.logistics import (
    ISSUE_CANCELLED_AFTER_DISPATCH,
    ISSUE_INBOUND_POSTING,
    ISSUE_INVENTORY_RELOCATION,
    ISSUE_OUTBOUND_POSTING,
    ISSUE_STAGES,
)
from ..roles import Principal
from ..validation import ConflictError, ForbiddenError, NotFoundError, cents_to_decimal, parse_choice
from pawnops.time_utils import utcnow
from . import inventory_service, ledger_service
from .item_refs import extract_item_ids


logger = logging.getLogger(__name__)


class SettlementSideEffectFailure(Exception):
    """A ledger posting or item relocation behind an assignment transition failed."""

    def __init__(self, assignment_id: int, stage: str, branch_id: int | None,
                 amount_cents: int | None, cause: BaseException):
        self.assignment_id = assignment_id
        self.stage = stage
        self.branch_id = branch_id
        self.amount_cents = amount_cents
        self.cause = cause
        super().__init__(
            f"Assignment #{assignment_id} {stage} failed "
            f"(branch={branch_id}, amount_cents={amount_cents}): {cause}"
        )


@dataclass
class CompletionResult:
    """What the completion edge did; failures are already recorded as issues."""
    assignment_id: int
    items_updated: int = 0
    new_branch_id: int | None = None
    updated_items: list[int] = field(default_factory=list)
    inbound_entry_id: int | None = None
    failures: list[SettlementSideEffectFailure] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "assignment_id": self.assignment_id,
            "items_updated": self.items_updated,
            "new_branch_id": self.new_branch_id,
            "updated_items": list(self.updated_items),
            "inbound_entry_id": self.inbound_entry_id,
            "settlement_failures": [f.stage for f in self.failures],
        }


def _has_positive_amount(assignment: DeliveryAssignment) -> bool:
    return assignment.amount_cents is not None and assignment.amount_cents > 0


def record_issue(
    assignment_id: int,
    stage: str,
    *,
    branch_id: int | None = None,
    amount_cents: int | None = None,
    error: str,
) -> SettlementIssue | None:
    """
    Persist one reconciliation row in its own transaction.

    Returns None (after logging) if even the issue could not be written; the
    log line is then the only record.
    """
    issue = SettlementIssue(
        assignment_id=assignment_id,
        stage=stage,
        branch_id=branch_id,
        amount_cents=amount_cents,
        error=error,
        created_at=utcnow(),
    )
    try:
        db.session.add(issue)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception(
            "Could not record settlement issue for assignment #%s stage %s", assignment_id, stage
        )
        return None
    return issue


def _side_effect(assignment_id: int, stage: str, branch_id, amount_cents, func):
    """
    Run one side effect; on failure roll back, log and record it.

    Returns (result, failure) where exactly one is not None.
    """
    try:
        return func(), None
    except Exception as exc:
        db.session.rollback()
        failure = SettlementSideEffectFailure(assignment_id, stage, branch_id, amount_cents, exc)
        logger.warning("Settlement side effect failed: %s", failure)
        record_issue(assignment_id, stage, branch_id=branch_id, amount_cents=amount_cents, error=str(exc))
        return None, failure


def on_assignment_created(
    assignment: DeliveryAssignment,
    *,
    posted_by_account_id: int | None = None,
) -> CapitalLedgerEntry | SettlementSideEffectFailure | None:
    """
    Post the outbound (source) half of a capital-type assignment.

    No-op for ITEM_TRANSFER, a missing source branch, or a non-positive
    amount. Returns the ledger entry, the recorded failure, or None.
    """
    if not (assignment.is_capital_type and assignment.from_branch_id and _has_positive_amount(assignment)):
        return None

    assignment_id = assignment.id
    branch_id = assignment.from_branch_id
    amount_cents = int(assignment.amount_cents)

    entry, failure = _side_effect(
        assignment_id, ISSUE_OUTBOUND_POSTING, branch_id, amount_cents,
        lambda: ledger_service.post_entry(
            branch_id,
            TRANSACTION_TRANSFER_OUT,
            -cents_to_decimal(amount_cents),
            assignment_id=assignment_id,
            posted_by_account_id=posted_by_account_id,
            description=f"Assignment #{assignment_id} source deduction ({assignment.assignment_type})",
        ),
    )
    return entry if failure is None else failure


def on_assignment_completed(
    assignment: DeliveryAssignment,
    *,
    posted_by_account_id: int | None = None,
) -> CompletionResult:
    """
    Run both completion sub-steps independently: item relocation, then the
    inbound capital posting. Neither failure blocks the other.
    """
    assignment_id = assignment.id
    to_branch_id = assignment.to_branch_id
    result = CompletionResult(assignment_id=assignment_id, new_branch_id=to_branch_id)

    # 1) inventory relocation; unrecognised item shapes relocate nothing
    item_ids = extract_item_ids(assignment.items_json)
    if item_ids and to_branch_id:
        def _relocate():
            moved = inventory_service.relocate_items(item_ids, to_branch_id)
            db.session.commit()
            return moved

        moved, failure = _side_effect(
            assignment_id, ISSUE_INVENTORY_RELOCATION, to_branch_id, None, _relocate,
        )
        if failure is None:
            result.items_updated = len(moved)
            result.updated_items = moved
            logger.info(
                "Assignment #%s relocated %s item(s) to branch %s", assignment_id, len(moved), to_branch_id
            )
        else:
            result.failures.append(failure)

    # 2) inbound capital posting
    if assignment.is_capital_type and to_branch_id and _has_positive_amount(assignment):
        amount_cents = int(assignment.amount_cents)
        entry, failure = _side_effect(
            assignment_id, ISSUE_INBOUND_POSTING, to_branch_id, amount_cents,
            lambda: ledger_service.post_entry(
                to_branch_id,
                TRANSACTION_TRANSFER_IN,
                cents_to_decimal(amount_cents),
                assignment_id=assignment_id,
                posted_by_account_id=posted_by_account_id,
                description=f"Assignment #{assignment_id} destination addition ({assignment.assignment_type})",
            ),
        )
        if failure is None:
            result.inbound_entry_id = entry.id
        else:
            result.failures.append(failure)

    return result


def _outbound_entry(assignment_id: int) -> CapitalLedgerEntry | None:
    return (
        db.session.query(CapitalLedgerEntry)
        .filter(
            CapitalLedgerEntry.assignment_id == assignment_id,
            CapitalLedgerEntry.transaction_type == TRANSACTION_TRANSFER_OUT,
        )
        .first()
    )


def on_assignment_abandoned(assignment: DeliveryAssignment) -> SettlementIssue | None:
    """
    Flag a capital-type assignment that ended CANCELLED/EXPIRED/FAILED after
    its outbound posting exists. The ledger is not reversed; an operator
    reconciles the source branch by hand.
    """
    if not assignment.is_capital_type:
        return None

    assignment_id = assignment.id
    outbound, _ = _side_effect(
        assignment_id, ISSUE_CANCELLED_AFTER_DISPATCH, assignment.from_branch_id, assignment.amount_cents,
        lambda: _outbound_entry(assignment_id),
    )
    if outbound is None:
        return None

    logger.warning(
        "Assignment #%s %s after dispatch; %s cents left branch %s and were not returned",
        assignment.id, assignment.status, -outbound.amount_cents, outbound.branch_id,
    )
    return record_issue(
        assignment.id,
        ISSUE_CANCELLED_AFTER_DISPATCH,
        branch_id=outbound.branch_id,
        amount_cents=-int(outbound.amount_cents),
        error=f"Assignment {assignment.status} after outbound posting #{outbound.id}",
    )


def list_issues(
    *,
    unresolved_only: bool = True,
    assignment_id: int | None = None,
    stage: str | None = None,
) -> list[SettlementIssue]:
    """Reconciliation rows, oldest first. An unknown stage is a ValidationError."""
    q = db.session.query(SettlementIssue)
    if unresolved_only:
        q = q.filter(SettlementIssue.resolved_at.is_(None))
    if assignment_id is not None:
        q = q.filter(SettlementIssue.assignment_id == assignment_id)
    if stage is not None:
        q = q.filter(SettlementIssue.stage == parse_choice(stage, "stage", ISSUE_STAGES))
    return q.order_by(SettlementIssue.created_at.asc(), SettlementIssue.id.asc()).all()


def resolve_issue(issue_id: int, principal: Principal, note: str | None = None) -> SettlementIssue:
    """Mark an issue reconciled. Admins and auditors only; resolving twice is a conflict."""
    if not (principal.is_admin or principal.is_auditor):
        raise ForbiddenError("Only admins and auditors may resolve settlement issues")

    issue = db.session.get(SettlementIssue, issue_id)
    if issue is None:
        raise NotFoundError(f"Settlement issue {issue_id} not found")
    if issue.resolved_at is not None:
        raise ConflictError(f"Settlement issue {issue_id} is already resolved")

    issue.resolved_at = utcnow()
    issue.resolved_by_account_id = principal.id
    issue.resolution_note = (note or "").strip() or None
    db.session.commit()
    return issue
