"""Initial schema: branches, accounts, inventory, capital ledger, delivery assignments

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=nullable)


def upgrade():
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("region", sa.String(120), nullable=True),
        sa.Column("contact_number", sa.String(32), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_branches_code", "branches", ["code"], unique=True)

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("contact_number", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("logistics_status", sa.String(16), nullable=False, server_default="STANDBY"),
        sa.Column("auditor_logistics_status", sa.String(16), nullable=False, server_default="STANDBY"),
        sa.Column("account_executive_logistics_status", sa.String(16), nullable=False, server_default="STANDBY"),
        _timestamp("created_at"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("accounts", schema=None) as batch_op:
        batch_op.create_index("ix_accounts_username", ["username"], unique=True)
        batch_op.create_index("ix_accounts_role", ["role"], unique=False)
        batch_op.create_index("ix_accounts_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_accounts_role_active", ["role", "is_active"], unique=False)

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(255), nullable=False),
        _timestamp("created_at"),
        _timestamp("last_used_at"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.String(255), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.create_index("ix_session_tokens_token_hash", ["token_hash"], unique=True)
        batch_op.create_index("ix_session_tokens_account_id", ["account_id"], unique=False)
        batch_op.create_index("ix_session_tokens_expires_at", ["expires_at"], unique=False)
        batch_op.create_index("ix_session_tokens_is_revoked", ["is_revoked"], unique=False)
        batch_op.create_index("ix_session_tokens_account_active", ["account_id", "is_revoked"], unique=False)

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("serial_number", sa.String(128), nullable=False),
        sa.Column("loan_agreement_number", sa.String(64), nullable=True),
        sa.Column("classification", sa.String(64), nullable=True),
        sa.Column("brand", sa.String(120), nullable=True),
        sa.Column("model", sa.String(120), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="VAULT"),
        sa.Column("appraised_amount_cents", sa.Integer(), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_contact", sa.String(64), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_items", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_items_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_inventory_items_serial_number", ["serial_number"], unique=False)
        batch_op.create_index("ix_inventory_items_status", ["status"], unique=False)
        batch_op.create_index("ix_inventory_items_branch_status", ["branch_id", "status"], unique=False)

    op.create_table(
        "loans",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_contact", sa.String(64), nullable=True),
        sa.Column("loan_amount_cents", sa.Integer(), nullable=False),
        sa.Column("loan_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("created_by_account_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"]),
        sa.ForeignKeyConstraint(["created_by_account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("loans", schema=None) as batch_op:
        batch_op.create_index("ix_loans_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_loans_item_id", ["item_id"], unique=False)
        batch_op.create_index("ix_loans_status", ["status"], unique=False)

    op.create_table(
        "delivery_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("assignment_type", sa.String(32), nullable=False),
        sa.Column("from_location_type", sa.String(16), nullable=False),
        sa.Column("from_branch_id", sa.Integer(), nullable=True),
        sa.Column("to_location_type", sa.String(16), nullable=False),
        sa.Column("to_branch_id", sa.Integer(), nullable=True),
        sa.Column("items_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("amount_cents", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="ASSIGNED"),
        sa.Column("assigned_by_account_id", sa.Integer(), nullable=False),
        sa.Column("assigned_by_role", sa.String(32), nullable=False),
        sa.Column("assigned_to_account_id", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("pickup_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("item_image", sa.String(512), nullable=True),
        sa.Column("dropoff_image", sa.String(512), nullable=True),
        sa.ForeignKeyConstraint(["from_branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["to_branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["assigned_by_account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["assigned_to_account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("delivery_assignments", schema=None) as batch_op:
        batch_op.create_index("ix_delivery_assignments_assignment_type", ["assignment_type"], unique=False)
        batch_op.create_index("ix_delivery_assignments_from_branch_id", ["from_branch_id"], unique=False)
        batch_op.create_index("ix_delivery_assignments_to_branch_id", ["to_branch_id"], unique=False)
        batch_op.create_index("ix_delivery_assignments_status", ["status"], unique=False)
        batch_op.create_index("ix_delivery_assignments_assigned_by_account_id", ["assigned_by_account_id"], unique=False)
        batch_op.create_index("ix_delivery_assignments_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_delivery_assignments_status_created", ["status", "created_at"], unique=False)
        batch_op.create_index("ix_delivery_assignments_driver_status", ["assigned_to_account_id", "status"], unique=False)

    op.create_table(
        "capital_ledger_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(32), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("running_balance_cents", sa.BigInteger(), nullable=False),
        sa.Column("related_loan_id", sa.Integer(), nullable=True),
        sa.Column("assignment_id", sa.Integer(), nullable=True),
        sa.Column("posted_by_account_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["related_loan_id"], ["loans.id"]),
        sa.ForeignKeyConstraint(["assignment_id"], ["delivery_assignments.id"]),
        sa.ForeignKeyConstraint(["posted_by_account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("capital_ledger_entries", schema=None) as batch_op:
        batch_op.create_index("ix_capital_ledger_entries_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_capital_ledger_entries_transaction_type", ["transaction_type"], unique=False)
        batch_op.create_index("ix_capital_ledger_entries_related_loan_id", ["related_loan_id"], unique=False)
        batch_op.create_index("ix_capital_ledger_entries_assignment_id", ["assignment_id"], unique=False)
        batch_op.create_index("ix_capital_ledger_entries_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_capital_ledger_branch_created", ["branch_id", "created_at", "id"], unique=False)

    op.create_table(
        "settlement_issues",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("assignment_id", sa.Integer(), nullable=False),
        sa.Column("stage", sa.String(32), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("amount_cents", sa.BigInteger(), nullable=True),
        sa.Column("error", sa.Text(), nullable=False),
        _timestamp("created_at"),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by_account_id", sa.Integer(), nullable=True),
        sa.Column("resolution_note", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["assignment_id"], ["delivery_assignments.id"]),
        sa.ForeignKeyConstraint(["resolved_by_account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("settlement_issues", schema=None) as batch_op:
        batch_op.create_index("ix_settlement_issues_assignment_id", ["assignment_id"], unique=False)
        batch_op.create_index("ix_settlement_issues_stage", ["stage"], unique=False)
        batch_op.create_index("ix_settlement_issues_unresolved", ["resolved_at", "created_at"], unique=False)


def downgrade():
    op.drop_table("settlement_issues")
    op.drop_table("capital_ledger_entries")
    op.drop_table("delivery_assignments")
    op.drop_table("loans")
    op.drop_table("inventory_items")
    op.drop_table("session_tokens")
    op.drop_table("accounts")
    op.drop_index("ix_branches_code", table_name="branches")
    op.drop_table("branches")
