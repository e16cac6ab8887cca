# Overview: Service-layer operations for accounts and passwords; the principal source for every request.

"""
Authentication Service

Resolves credentials to a principal (id, role). Accounts carry a bcrypt password hash and a
normalized role key.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters required
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import bcrypt
from flask import current_app, has_app_context

from ..extensions import db
from ..models import Account, Branch
from ..roles import ALL_ROLES, normalize_role
from ..validation import ConflictError, NotFoundError, ValidationError
from pawnops.time_utils import utcnow


MIN_PASSWORD_LENGTH = 8


def _bcrypt_rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    return 12


def hash_password(password: str) -> str:
    """Hash a password with bcrypt; rejects passwords shorter than 8 characters."""
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() compares in constant time. Malformed hashes verify as
    False rather than raising.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_account(
    username: str,
    password: str,
    role: str,
    *,
    full_name: str | None = None,
    branch_id: int | None = None,
    contact_number: str | None = None,
) -> Account:
    """
    Create an account with a normalized role and hashed password.

    Raises ValidationError for an unknown role or weak password,
    ConflictError if the username is taken, NotFoundError for a missing
    home branch.
    """
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")

    role_key = normalize_role(role)
    if role_key not in ALL_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ALL_ROLES)}")

    if db.session.query(Account).filter_by(username=username).first():
        raise ConflictError(f"Username {username!r} already exists")

    if branch_id is not None and db.session.get(Branch, branch_id) is None:
        raise NotFoundError(f"Branch {branch_id} not found")

    account = Account(
        username=username,
        full_name=full_name,
        role=role_key,
        password_hash=hash_password(password),
        branch_id=branch_id,
        contact_number=contact_number,
        is_active=True,
    )
    db.session.add(account)
    db.session.commit()
    return account


def authenticate(username: str, password: str) -> Account | None:
    """
    Return the active account for valid credentials, else None.

    Updates last_login_at on success.
    """
    account = db.session.query(Account).filter(
        Account.username == (username or "").strip(),
        Account.is_active.is_(True),
    ).first()

    if not account:
        return None

    if verify_password(password, account.password_hash):
        account.last_login_at = utcnow()
        db.session.commit()
        return account

    return None
