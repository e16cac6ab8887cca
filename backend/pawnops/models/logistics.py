from __future__ import annotations

import json

from ..extensions import db
from pawnops.time_utils import to_utc_z, to_iso_date
from pawnops.validation import format_cents


ASSIGNMENT_ITEM_TRANSFER = "ITEM_TRANSFER"
ASSIGNMENT_CAPITAL_DELIVERY = "CAPITAL_DELIVERY"
ASSIGNMENT_BALANCE_DELIVERY = "BALANCE_DELIVERY"

ASSIGNMENT_TYPES = (
    ASSIGNMENT_ITEM_TRANSFER,
    ASSIGNMENT_CAPITAL_DELIVERY,
    ASSIGNMENT_BALANCE_DELIVERY,
)
CAPITAL_ASSIGNMENT_TYPES = (ASSIGNMENT_CAPITAL_DELIVERY, ASSIGNMENT_BALANCE_DELIVERY)

LOCATION_BRANCH = "BRANCH"
LOCATION_VAULT = "VAULT"
LOCATION_TYPES = (LOCATION_BRANCH, LOCATION_VAULT)

STATUS_ASSIGNED = "ASSIGNED"
STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_COMPLETED = "COMPLETED"
STATUS_CANCELLED = "CANCELLED"
STATUS_EXPIRED = "EXPIRED"
STATUS_FAILED = "FAILED"

ASSIGNMENT_STATUSES = (
    STATUS_ASSIGNED,
    STATUS_IN_PROGRESS,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
    STATUS_EXPIRED,
    STATUS_FAILED,
)
ACTIVE_STATUSES = (STATUS_ASSIGNED, STATUS_IN_PROGRESS)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED, STATUS_EXPIRED, STATUS_FAILED)

ISSUE_OUTBOUND_POSTING = "OUTBOUND_POSTING"
ISSUE_INVENTORY_RELOCATION = "INVENTORY_RELOCATION"
ISSUE_INBOUND_POSTING = "INBOUND_POSTING"
ISSUE_CANCELLED_AFTER_DISPATCH = "CANCELLED_AFTER_DISPATCH"

ISSUE_STAGES = (
    ISSUE_OUTBOUND_POSTING,
    ISSUE_INVENTORY_RELOCATION,
    ISSUE_INBOUND_POSTING,
    ISSUE_CANCELLED_AFTER_DISPATCH,
)


class DeliveryAssignment(db.Model):
    """
    A driver task moving items and/or cash between two locations.

    LIFECYCLE:
    1. ASSIGNED: Created by an admin (or auditor, capital types only)
    2. IN_PROGRESS: Pickup verified with proof image
    3. COMPLETED: Dropoff verified; settlement runs on this edge only
    4. CANCELLED / EXPIRED / FAILED: Set through the generic status path

    SETTLEMENT:
    - Capital types post TRANSFER_OUT against the source branch at creation.
    - Completion relocates carried items and posts TRANSFER_IN against the
      destination branch.
    - Both halves are best-effort and separate from the row's own commit;
      failures are recorded as SettlementIssue rows.

    items_json keeps the item list as submitted. Historical rows hold either
    a list of {"item_id": ...} objects, a flat list of ids, or
    {"itemIds": [...]}; see services.item_refs.
    """
    __tablename__ = "delivery_assignments"
    __table_args__ = (
        db.Index("ix_delivery_assignments_status_created", "status", "created_at"),
        db.Index("ix_delivery_assignments_driver_status", "assigned_to_account_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    assignment_type = db.Column(db.String(32), nullable=False, index=True)

    from_location_type = db.Column(db.String(16), nullable=False)
    from_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    to_location_type = db.Column(db.String(16), nullable=False)
    to_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    items_json = db.Column(db.Text, nullable=False, default="[]")
    amount_cents = db.Column(db.BigInteger, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_ASSIGNED, index=True)

    assigned_by_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    # Role of the creator, snapshotted to pick the driver's logistics-status column
    assigned_by_role = db.Column(db.String(32), nullable=False)
    assigned_to_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)

    # Append-only, one timestamped line per entry
    notes = db.Column(db.Text, nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)
    pickup_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Proof-of-custody references (stored image names/URLs)
    item_image = db.Column(db.String(512), nullable=True)
    dropoff_image = db.Column(db.String(512), nullable=True)

    from_branch = db.relationship("Branch", foreign_keys=[from_branch_id])
    to_branch = db.relationship("Branch", foreign_keys=[to_branch_id])
    assigned_by = db.relationship("Account", foreign_keys=[assigned_by_account_id])
    assigned_to = db.relationship(
        "Account",
        foreign_keys=[assigned_to_account_id],
        backref=db.backref("delivery_assignments", lazy=True),
    )

    def __repr__(self) -> str:
        return f"<DeliveryAssignment id={self.id} type={self.assignment_type} status={self.status}>"

    @property
    def is_capital_type(self) -> bool:
        return self.assignment_type in CAPITAL_ASSIGNMENT_TYPES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def items(self):
        """Stored item list decoded from JSON; None when unparseable."""
        try:
            return json.loads(self.items_json) if self.items_json else None
        except ValueError:
            return None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "assignment_type": self.assignment_type,
            "from_location_type": self.from_location_type,
            "from_branch_id": self.from_branch_id,
            "to_location_type": self.to_location_type,
            "to_branch_id": self.to_branch_id,
            "items": self.items(),
            "amount_cents": self.amount_cents,
            "amount": format_cents(self.amount_cents),
            "status": self.status,
            "assigned_by": self.assigned_by_account_id,
            "assigned_by_role": self.assigned_by_role,
            "assigned_to": self.assigned_to_account_id,
            "notes": self.notes,
            "due_date": to_iso_date(self.due_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "pickup_verified_at": to_utc_z(self.pickup_verified_at) if self.pickup_verified_at else None,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "item_image": self.item_image,
            "dropoff_image": self.dropoff_image,
        }
        # Display enrichment; map pins for the driver app
        if self.from_branch is not None:
            data["from_branch_name"] = self.from_branch.name
            data["from_location_coords"] = self.from_branch.coords()
        if self.to_branch is not None:
            data["to_branch_name"] = self.to_branch.name
            data["to_location_coords"] = self.to_branch.coords()
        return data


class SettlementIssue(db.Model):
    """
    Reconciliation outbox: one row per settlement side effect that did not
    happen (or, for CANCELLED_AFTER_DISPATCH, cannot be undone automatically).

    Assignment transitions succeed even when the ledger posting or item
    relocation behind them fails. Operators work this table until every row
    is resolved; nothing is retried automatically.
    """
    __tablename__ = "settlement_issues"
    __table_args__ = (
        db.Index("ix_settlement_issues_unresolved", "resolved_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey("delivery_assignments.id"), nullable=False, index=True)
    stage = db.Column(db.String(32), nullable=False, index=True)
    branch_id = db.Column(db.Integer, nullable=True)
    amount_cents = db.Column(db.BigInteger, nullable=True)
    error = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    resolution_note = db.Column(db.Text, nullable=True)

    assignment = db.relationship("DeliveryAssignment", backref=db.backref("settlement_issues", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "assignment_id": self.assignment_id,
            "stage": self.stage,
            "branch_id": self.branch_id,
            "amount_cents": self.amount_cents,
            "amount": format_cents(self.amount_cents),
            "error": self.error,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
            "resolved_by": self.resolved_by_account_id,
            "resolution_note": self.resolution_note,
        }
