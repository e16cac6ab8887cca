from __future__ import annotations

from ..extensions import db
from pawnops.time_utils import to_utc_z


LOGISTICS_STANDBY = "STANDBY"
LOGISTICS_ASSIGNED = "ASSIGNED"


class Account(db.Model):
    """
    Back-office account: admins, auditors, account executives and drivers.

    The services see an account as a principal: (id, role).

    LOGISTICS STATUS:
    A driver's STANDBY/ASSIGNED flag is mirrored per assigning role so each
    role's dispatch board sees its own view. Updated best-effort as a side
    effect of assignment transitions; last write wins.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.Index("ix_accounts_role_active", "role", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(255), nullable=True)

    # Normalized role key (see pawnops.roles)
    role = db.Column(db.String(32), nullable=False, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    # Home branch (nullable for head-office accounts)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    contact_number = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    logistics_status = db.Column(db.String(16), nullable=False, default=LOGISTICS_STANDBY)
    auditor_logistics_status = db.Column(db.String(16), nullable=False, default=LOGISTICS_STANDBY)
    account_executive_logistics_status = db.Column(db.String(16), nullable=False, default=LOGISTICS_STANDBY)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    branch = db.relationship("Branch", backref=db.backref("accounts", lazy=True))

    def __repr__(self) -> str:
        return f"<Account id={self.id} username={self.username!r} role={self.role!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "role": self.role,
            "branch_id": self.branch_id,
            "contact_number": self.contact_number,
            "is_active": self.is_active,
            "logistics_status": self.logistics_status,
            "auditor_logistics_status": self.auditor_logistics_status,
            "account_executive_logistics_status": self.account_executive_logistics_status,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Opaque bearer token for an authenticated account.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - Absolute and idle timeouts come from config
    - Revocable on logout
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_account_active", "account_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    account = db.relationship("Account", backref=db.backref("sessions", lazy=True))
