from __future__ import annotations

from ..extensions import db
from pawnops.time_utils import to_utc_z, to_iso_date
from pawnops.validation import format_cents


TRANSACTION_LOAN_DISBURSEMENT = "LOAN_DISBURSEMENT"
TRANSACTION_TRANSFER_OUT = "TRANSFER_OUT"
TRANSACTION_TRANSFER_IN = "TRANSFER_IN"

TRANSACTION_TYPES = (
    TRANSACTION_LOAN_DISBURSEMENT,
    TRANSACTION_TRANSFER_OUT,
    TRANSACTION_TRANSFER_IN,
)


class CapitalLedgerEntry(db.Model):
    """
    One money movement affecting one branch's capital balance.

    Branch Capital Ledger Invariants (authoritative)

    - Append-only: rows are never updated or deleted.
    - amount_cents is signed: positive = inflow, negative = outflow.
    - For a branch, entries ordered by (created_at, id) ascending satisfy
      running_balance[n] == running_balance[n-1] + amount[n], starting at 0.
    - Current capital == running_balance of the latest (created_at, id) entry,
      or 0 when the branch has no entries.
    - The database does not enforce the running balance; writers hold the
      per-branch ledger lock around read-latest/insert (ledger_service).
    """
    __tablename__ = "capital_ledger_entries"
    __table_args__ = (
        # Latest-entry lookup per branch
        db.Index("ix_capital_ledger_branch_created", "branch_id", "created_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    transaction_type = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    running_balance_cents = db.Column(db.BigInteger, nullable=False)

    related_loan_id = db.Column(db.Integer, db.ForeignKey("loans.id"), nullable=True, index=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey("delivery_assignments.id"), nullable=True, index=True)
    posted_by_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    description = db.Column(db.Text, nullable=True)

    # Business date; created_at is system time and drives ordering
    transaction_date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    branch = db.relationship("Branch", backref=db.backref("capital_entries", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<CapitalLedgerEntry id={self.id} branch_id={self.branch_id} "
            f"amount_cents={self.amount_cents} running_balance_cents={self.running_balance_cents}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "transaction_type": self.transaction_type,
            "amount_cents": self.amount_cents,
            "amount": format_cents(self.amount_cents),
            "running_balance_cents": self.running_balance_cents,
            "running_balance": format_cents(self.running_balance_cents),
            "related_loan_id": self.related_loan_id,
            "assignment_id": self.assignment_id,
            "posted_by_account_id": self.posted_by_account_id,
            "description": self.description,
            "transaction_date": to_iso_date(self.transaction_date),
            "created_at": to_utc_z(self.created_at),
        }
