# Overview: Service-layer operations for pawn loans; item intake, loan row and capital disbursement in one unit.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Branch, InventoryItem, Loan
from ..models.inventory import ITEM_STATUS_VAULT, LOAN_STATUS_ACTIVE
from ..models.ledger import TRANSACTION_LOAN_DISBURSEMENT
from ..roles import ROLE_ACCOUNT_EXECUTIVE, ROLE_ADMIN, Principal
from ..validation import (
    ForbiddenError,
    NotFoundError,
    ValidationError,
    amount_to_cents,
    optional_amount_cents,
    parse_int_id,
    require_fields,
)
from pawnops.time_utils import parse_iso_date, today
from .concurrency import branch_lock, run_with_retry
from .ledger_service import retry_attempts, append_entry


logger = logging.getLogger(__name__)

LOAN_ROLES = (ROLE_ADMIN, ROLE_ACCOUNT_EXECUTIVE)


def _parse_date(value, field):
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")


def create_loan_with_item(principal: Principal, item_fields: dict, loan_fields: dict) -> tuple[InventoryItem, Loan]:
    """
    Take in a pawned item and disburse its loan.

    The item (VAULT), the loan (ACTIVE) and the LOAN_DISBURSEMENT ledger
    entry (-loan amount against the branch) commit together under the
    branch ledger lock, or not at all.

    Raises ForbiddenError, ValidationError or NotFoundError before any write.
    """
    if principal.role not in LOAN_ROLES:
        raise ForbiddenError("Only admins and account executives may create loans")

    item_fields = item_fields or {}
    loan_fields = loan_fields or {}
    require_fields(item_fields, ("branch_id", "serial_number"))
    require_fields(loan_fields, ("customer_name", "loan_amount"))

    branch_id = parse_int_id(item_fields["branch_id"], "branch_id", required=True)
    if db.session.get(Branch, branch_id) is None:
        raise NotFoundError(f"Branch {branch_id} not found")

    loan_cents = amount_to_cents(loan_fields["loan_amount"], "loan_amount")
    if loan_cents <= 0:
        raise ValidationError("loan_amount must be greater than zero")
    appraised_cents = optional_amount_cents(item_fields.get("appraised_amount"), "appraised_amount")

    loan_date = _parse_date(loan_fields.get("loan_date"), "loan_date") or today()
    due_date = _parse_date(loan_fields.get("due_date"), "due_date")
    if due_date is not None and due_date < loan_date:
        raise ValidationError("due_date cannot be before loan_date")

    serial = str(item_fields["serial_number"]).strip()

    def _op():
        with branch_lock(branch_id):
            try:
                item = InventoryItem(
                    branch_id=branch_id,
                    serial_number=serial,
                    loan_agreement_number=item_fields.get("loan_agreement_number"),
                    classification=item_fields.get("classification"),
                    brand=item_fields.get("brand"),
                    model=item_fields.get("model"),
                    status=ITEM_STATUS_VAULT,
                    appraised_amount_cents=appraised_cents,
                    customer_name=loan_fields["customer_name"],
                    customer_contact=loan_fields.get("customer_contact"),
                )
                db.session.add(item)
                db.session.flush()

                loan = Loan(
                    branch_id=branch_id,
                    item_id=item.id,
                    customer_name=loan_fields["customer_name"],
                    customer_contact=loan_fields.get("customer_contact"),
                    loan_amount_cents=loan_cents,
                    loan_date=loan_date,
                    due_date=due_date,
                    status=LOAN_STATUS_ACTIVE,
                    created_by_account_id=principal.id,
                )
                db.session.add(loan)
                db.session.flush()

                append_entry(
                    branch_id=branch_id,
                    transaction_type=TRANSACTION_LOAN_DISBURSEMENT,
                    amount_cents=-loan_cents,
                    related_loan_id=loan.id,
                    posted_by_account_id=principal.id,
                    description=f"Loan disbursement for item {serial}",
                    transaction_date=loan_date,
                )
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
        return item, loan

    item, loan = run_with_retry(_op, attempts=retry_attempts())
    logger.info("Loan #%s disbursed %s cents at branch %s", loan.id, loan_cents, branch_id)
    return item, loan
