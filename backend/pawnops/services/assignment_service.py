# Overview: Service-layer operations for delivery assignments; creation, the status state machine and read views.

"""
Delivery assignment state machine.

Assignments move items and/or cash between branches (or the vault).
Their status edges drive settlement, so every edge that settles is a
single-row conditional UPDATE: it only succeeds if the row is still in the
expected prior state, which makes double completion impossible.

LIFECYCLE:
1. ASSIGNED: Created (admin, or auditor for capital types only)
2. IN_PROGRESS: verify_pickup (from ASSIGNED, or again from IN_PROGRESS)
3. COMPLETED: verify_dropoff, or set_status, from IN_PROGRESS only
4. CANCELLED / EXPIRED / FAILED: set_status from any active state

Terminal states are final. Side effects (settlement, driver status, tracker)
run after the assignment row is committed and never fail the transition.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import case, or_

from ..extensions import db
from ..models import Account, Branch, DeliveryAssignment
from ..models.accounts import LOGISTICS_ASSIGNED, LOGISTICS_STANDBY
from ..models.logistics import (
    ACTIVE_STATUSES,
    ASSIGNMENT_STATUSES,
    ASSIGNMENT_TYPES,
    CAPITAL_ASSIGNMENT_TYPES,
    LOCATION_BRANCH,
    LOCATION_TYPES,
    STATUS_ASSIGNED,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    TERMINAL_STATUSES,
)
from ..roles import Principal
from ..validation import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    optional_amount_cents,
    optional_text,
    parse_choice,
    parse_int_id,
    require_fields,
)
from pawnops.time_utils import parse_iso_date, to_utc_z, utcnow
from . import settlement_service, tracking_service
from .concurrency import run_with_retry
from .logistics_status_service import set_driver_status
from .settlement_service import CompletionResult


logger = logging.getLogger(__name__)

DRIVER_HISTORY_LIMIT = 50

# camelCase keys accepted from older clients
_FIELD_ALIASES = {
    "assignedTo": "assigned_to",
    "assignmentType": "assignment_type",
    "fromLocationType": "from_location_type",
    "toLocationType": "to_location_type",
    "fromBranchId": "from_branch_id",
    "toBranchId": "to_branch_id",
    "dueDate": "due_date",
}

REQUIRED_FIELDS = ("assigned_to", "assignment_type", "from_location_type", "to_location_type")


def _normalize_payload(payload: dict) -> dict:
    normalized = {}
    for key, value in (payload or {}).items():
        normalized[_FIELD_ALIASES.get(key, key)] = value
    return normalized


def _serialize_items(items) -> str:
    if items is None or items == "":
        return "[]"
    if isinstance(items, str):
        try:
            items = json.loads(items)
        except ValueError:
            raise ValidationError("items must be a JSON list or object")
    if not isinstance(items, (list, dict)):
        raise ValidationError("items must be a list or object")
    return json.dumps(items)


def _append_note(existing: str | None, note: str | None, now) -> str | None:
    if not note:
        return existing
    line = f"{to_utc_z(now)}: {note}"
    return f"{existing}\n{line}" if existing else line


def _require_branch(branch_id: int, field: str) -> None:
    if db.session.get(Branch, branch_id) is None:
        raise NotFoundError(f"{field}: branch {branch_id} not found")


def create_assignment(principal: Principal, payload: dict) -> DeliveryAssignment:
    """
    Create an assignment in ASSIGNED and run its creation side effects.

    Everything is validated before the first write. Raises ForbiddenError
    for roles that may not create this type, ValidationError for bad input
    and NotFoundError for unknown branches or driver.
    """
    if not (principal.is_admin or principal.is_auditor):
        raise ForbiddenError("Only admins and auditors may create delivery assignments")

    data = _normalize_payload(payload)
    require_fields(data, REQUIRED_FIELDS)

    assignment_type = parse_choice(data["assignment_type"], "assignment_type", ASSIGNMENT_TYPES)
    if principal.is_auditor and assignment_type not in CAPITAL_ASSIGNMENT_TYPES:
        raise ForbiddenError("Auditors may only create CAPITAL_DELIVERY or BALANCE_DELIVERY assignments")

    from_location_type = parse_choice(data["from_location_type"], "from_location_type", LOCATION_TYPES)
    to_location_type = parse_choice(data["to_location_type"], "to_location_type", LOCATION_TYPES)
    from_branch_id = parse_int_id(
        data.get("from_branch_id"), "from_branch_id", required=from_location_type == LOCATION_BRANCH
    )
    to_branch_id = parse_int_id(
        data.get("to_branch_id"), "to_branch_id", required=to_location_type == LOCATION_BRANCH
    )
    assigned_to = parse_int_id(data["assigned_to"], "assigned_to", required=True)

    amount_cents = optional_amount_cents(data.get("amount"))
    if amount_cents is not None and amount_cents <= 0:
        raise ValidationError("amount must be greater than zero")
    if assignment_type in CAPITAL_ASSIGNMENT_TYPES:
        if amount_cents is None:
            raise ValidationError(f"amount is required for {assignment_type}")
        if from_branch_id is not None and from_branch_id == to_branch_id:
            raise ValidationError("from_branch_id and to_branch_id must differ")

    try:
        due_date = parse_iso_date(data.get("due_date"))
    except ValueError:
        raise ValidationError("due_date must be an ISO date (YYYY-MM-DD)")
    notes = optional_text(data.get("notes"), "notes")

    items_json = _serialize_items(data.get("items"))

    for branch_id, field in ((from_branch_id, "from_branch_id"), (to_branch_id, "to_branch_id")):
        if branch_id is not None:
            _require_branch(branch_id, field)
    driver = db.session.get(Account, assigned_to)
    if driver is None or not driver.is_active:
        raise NotFoundError(f"Driver account {assigned_to} not found")

    def _op():
        now = utcnow()
        assignment = DeliveryAssignment(
            assignment_type=assignment_type,
            from_location_type=from_location_type,
            from_branch_id=from_branch_id,
            to_location_type=to_location_type,
            to_branch_id=to_branch_id,
            items_json=items_json,
            amount_cents=amount_cents,
            status=STATUS_ASSIGNED,
            assigned_by_account_id=principal.id,
            assigned_by_role=principal.role,
            assigned_to_account_id=assigned_to,
            notes=notes,
            due_date=due_date,
            created_at=now,
            updated_at=now,
        )
        db.session.add(assignment)
        db.session.commit()
        return assignment

    assignment = run_with_retry(_op)
    logger.info(
        "Assignment #%s %s created by %s for driver %s",
        assignment.id, assignment_type, principal.id, assigned_to,
    )

    set_driver_status(assigned_to, principal.role, LOGISTICS_ASSIGNED)
    settlement_service.on_assignment_created(assignment, posted_by_account_id=principal.id)
    return assignment


def _load_scoped(principal: Principal, assignment_id: int, *, allow_auditor: bool = False) -> DeliveryAssignment:
    """
    The assignment if the principal may act on it: its driver, an admin, or
    (when allowed) an auditor. Anything else looks like a missing row.
    """
    assignment = db.session.get(DeliveryAssignment, assignment_id)
    if assignment is None:
        raise NotFoundError(f"Delivery assignment {assignment_id} not found")
    if principal.is_admin or (allow_auditor and principal.is_auditor):
        return assignment
    if assignment.assigned_to_account_id == principal.id:
        return assignment
    raise NotFoundError(f"Delivery assignment {assignment_id} not found")


def _conditional_update(assignment_id: int, expected_statuses, values: dict) -> int:
    """Single-row UPDATE guarded on the current status; returns rows changed."""
    return (
        db.session.query(DeliveryAssignment)
        .filter(
            DeliveryAssignment.id == assignment_id,
            DeliveryAssignment.status.in_(tuple(expected_statuses)),
        )
        .update(values, synchronize_session=False)
    )


def verify_pickup(principal: Principal, assignment_id: int, proof_ref: str | None = None) -> DeliveryAssignment:
    """
    Record the pickup proof and move the assignment to IN_PROGRESS.

    Accepted from ASSIGNED or IN_PROGRESS (a second pickup replaces the
    proof). Raises NotFoundError or ConflictError.
    """
    assignment = _load_scoped(principal, assignment_id)

    def _op():
        now = utcnow()
        updated = _conditional_update(assignment_id, ACTIVE_STATUSES, {
            DeliveryAssignment.status: STATUS_IN_PROGRESS,
            DeliveryAssignment.pickup_verified_at: now,
            DeliveryAssignment.item_image: proof_ref,
            DeliveryAssignment.updated_at: now,
        })
        if not updated:
            db.session.rollback()
            raise ConflictError(
                f"Delivery assignment {assignment_id} cannot be picked up from status {assignment.status}"
            )
        db.session.commit()

    run_with_retry(_op)
    logger.info("Assignment #%s picked up", assignment_id)

    set_driver_status(assignment.assigned_to_account_id, assignment.assigned_by_role, LOGISTICS_ASSIGNED)
    tracker = tracking_service.get_tracker()
    if tracker is not None:
        dropoff = assignment.to_branch.coords() if assignment.to_branch is not None else None
        tracker.mark_picked_up(assignment_id, dropoff)
    return assignment


def _complete(
    principal: Principal,
    assignment: DeliveryAssignment,
    *,
    dropoff_image: str | None = None,
    note: str | None = None,
) -> CompletionResult:
    """
    The one IN_PROGRESS -> COMPLETED edge. Settlement runs only when this
    process won the conditional update.
    """
    assignment_id = assignment.id

    def _op():
        now = utcnow()
        values = {
            DeliveryAssignment.status: STATUS_COMPLETED,
            DeliveryAssignment.delivered_at: now,
            DeliveryAssignment.updated_at: now,
        }
        if dropoff_image is not None:
            values[DeliveryAssignment.dropoff_image] = dropoff_image
        if note:
            values[DeliveryAssignment.notes] = _append_note(assignment.notes, note, now)
        updated = _conditional_update(assignment_id, (STATUS_IN_PROGRESS,), values)
        if not updated:
            db.session.rollback()
            raise ConflictError(
                f"Delivery assignment {assignment_id} is not in progress (status {assignment.status})"
            )
        db.session.commit()

    run_with_retry(_op)
    logger.info("Assignment #%s completed", assignment_id)

    set_driver_status(assignment.assigned_to_account_id, assignment.assigned_by_role, LOGISTICS_STANDBY)
    result = settlement_service.on_assignment_completed(assignment, posted_by_account_id=principal.id)
    tracker = tracking_service.get_tracker()
    if tracker is not None:
        tracker.mark_delivered(assignment_id)
    return result


def verify_dropoff(principal: Principal, assignment_id: int, proof_ref: str | None = None) -> CompletionResult:
    """
    Record the dropoff proof, mark COMPLETED and settle.

    Only from IN_PROGRESS; a repeated dropoff raises ConflictError and never
    settles twice.
    """
    assignment = _load_scoped(principal, assignment_id)
    return _complete(principal, assignment, dropoff_image=proof_ref)


def set_status(
    principal: Principal,
    assignment_id: int,
    status: str,
    notes: str | None = None,
) -> DeliveryAssignment:
    """
    Generic status override used for cancellation, expiry and failure.

    - Same status: only the note is appended.
    - Out of a terminal state: ConflictError.
    - COMPLETED: only from IN_PROGRESS, through the same path as dropoff.
    """
    new_status = parse_choice(status, "status", ASSIGNMENT_STATUSES)
    notes = optional_text(notes, "notes")
    assignment = _load_scoped(principal, assignment_id, allow_auditor=True)
    current = assignment.status

    if new_status == current:
        now = utcnow()
        if notes:
            assignment.notes = _append_note(assignment.notes, notes, now)
            assignment.updated_at = now
            db.session.commit()
        return assignment

    if assignment.is_terminal:
        raise ConflictError(f"Delivery assignment {assignment_id} is already {current}")

    if new_status == STATUS_COMPLETED:
        _complete(principal, assignment, note=notes)
        return assignment

    def _op():
        now = utcnow()
        updated = _conditional_update(assignment_id, (current,), {
            DeliveryAssignment.status: new_status,
            DeliveryAssignment.notes: _append_note(assignment.notes, notes, now),
            DeliveryAssignment.updated_at: now,
        })
        if not updated:
            db.session.rollback()
            raise ConflictError(f"Delivery assignment {assignment_id} changed concurrently; retry")
        db.session.commit()

    run_with_retry(_op)
    logger.info("Assignment #%s %s -> %s by %s", assignment_id, current, new_status, principal.id)

    driver_status = LOGISTICS_ASSIGNED if new_status in ACTIVE_STATUSES else LOGISTICS_STANDBY
    set_driver_status(assignment.assigned_to_account_id, assignment.assigned_by_role, driver_status)
    if new_status in TERMINAL_STATUSES:
        settlement_service.on_assignment_abandoned(assignment)
    return assignment


def _active_order():
    return (
        case((DeliveryAssignment.status == STATUS_ASSIGNED, 0), else_=1),
        DeliveryAssignment.created_at.desc(),
        DeliveryAssignment.id.desc(),
    )


def _branch_filter(branch_id: int):
    return or_(DeliveryAssignment.from_branch_id == branch_id, DeliveryAssignment.to_branch_id == branch_id)


def get_active(branch_id: int | None = None) -> list[DeliveryAssignment]:
    """ASSIGNED and IN_PROGRESS assignments, ASSIGNED first, newest first within each."""
    q = db.session.query(DeliveryAssignment).filter(DeliveryAssignment.status.in_(ACTIVE_STATUSES))
    if branch_id is not None:
        q = q.filter(_branch_filter(branch_id))
    return q.order_by(*_active_order()).all()


def list_assignments(
    principal: Principal,
    *,
    branch_id: int | None = None,
    status: str | None = None,
    limit: int | None = None,
) -> list[DeliveryAssignment]:
    """All assignments (admin/auditor), optionally one branch's history, newest first."""
    if not (principal.is_admin or principal.is_auditor):
        raise ForbiddenError("Only admins and auditors may list all assignments")

    q = db.session.query(DeliveryAssignment)
    if branch_id is not None:
        q = q.filter(_branch_filter(branch_id))
    if status:
        q = q.filter(DeliveryAssignment.status == parse_choice(status, "status", ASSIGNMENT_STATUSES))
    q = q.order_by(DeliveryAssignment.created_at.desc(), DeliveryAssignment.id.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def get_active_for_driver(driver_id: int) -> DeliveryAssignment | None:
    return (
        db.session.query(DeliveryAssignment)
        .filter(
            DeliveryAssignment.assigned_to_account_id == driver_id,
            DeliveryAssignment.status.in_(ACTIVE_STATUSES),
        )
        .order_by(*_active_order())
        .first()
    )


def get_driver_history(driver_id: int, limit: int = DRIVER_HISTORY_LIMIT) -> list[DeliveryAssignment]:
    return (
        db.session.query(DeliveryAssignment)
        .filter(DeliveryAssignment.assigned_to_account_id == driver_id)
        .order_by(DeliveryAssignment.created_at.desc(), DeliveryAssignment.id.desc())
        .limit(limit)
        .all()
    )


def get_assignment(principal: Principal, assignment_id: int) -> DeliveryAssignment:
    return _load_scoped(principal, assignment_id, allow_auditor=True)
