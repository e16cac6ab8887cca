from __future__ import annotations

from ..extensions import db
from pawnops.time_utils import to_utc_z, to_iso_date
from pawnops.validation import format_cents


ITEM_STATUS_VAULT = "VAULT"
ITEM_STATUS_DISPLAY = "DISPLAY"
ITEM_STATUS_SOLD = "SOLD"
ITEM_STATUS_REDEEMED = "REDEEMED"

LOAN_STATUS_ACTIVE = "ACTIVE"
LOAN_STATUS_REDEEMED = "REDEEMED"
LOAN_STATUS_FORFEITED = "FORFEITED"


class InventoryItem(db.Model):
    """
    A pawned or for-sale item held by a branch.

    Only branch_id is mutated by the settlement flow: it is reassigned to the
    destination branch when a delivery carrying the item is completed.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index("ix_inventory_items_branch_status", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    serial_number = db.Column(db.String(128), nullable=False, index=True)
    loan_agreement_number = db.Column(db.String(64), nullable=True)
    classification = db.Column(db.String(64), nullable=True)
    brand = db.Column(db.String(120), nullable=True)
    model = db.Column(db.String(120), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=ITEM_STATUS_VAULT, index=True)
    appraised_amount_cents = db.Column(db.Integer, nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_contact = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("inventory_items", lazy=True))

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} serial={self.serial_number!r} branch_id={self.branch_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "serial_number": self.serial_number,
            "loan_agreement_number": self.loan_agreement_number,
            "classification": self.classification,
            "brand": self.brand,
            "model": self.model,
            "status": self.status,
            "appraised_amount_cents": self.appraised_amount_cents,
            "appraised_amount": format_cents(self.appraised_amount_cents),
            "customer_name": self.customer_name,
            "customer_contact": self.customer_contact,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Loan(db.Model):
    """
    Pawn loan secured by an inventory item.

    Creating a loan disburses cash from the branch: a LOAN_DISBURSEMENT
    capital ledger entry is posted in the same transaction.
    """
    __tablename__ = "loans"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=False)
    customer_contact = db.Column(db.String(64), nullable=True)
    loan_amount_cents = db.Column(db.Integer, nullable=False)
    loan_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=LOAN_STATUS_ACTIVE, index=True)
    created_by_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("loans", lazy=True))
    item = db.relationship("InventoryItem", backref=db.backref("loans", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "item_id": self.item_id,
            "customer_name": self.customer_name,
            "customer_contact": self.customer_contact,
            "loan_amount_cents": self.loan_amount_cents,
            "loan_amount": format_cents(self.loan_amount_cents),
            "loan_date": to_iso_date(self.loan_date),
            "due_date": to_iso_date(self.due_date),
            "status": self.status,
            "created_by_account_id": self.created_by_account_id,
            "created_at": to_utc_z(self.created_at),
        }
