# Overview: Service-layer operations for session tokens; issue, validate and revoke bearer tokens.

"""
Session Token Management Service

Opaque bearer tokens with absolute and idle timeouts and revocation.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS, default 24h)
- Idle timeout (SESSION_IDLE_TIMEOUT_HOURS, default 2h)
- Revocable on logout
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app, has_app_context

from ..extensions import db
from ..models import Account, SessionToken
from pawnops.time_utils import utcnow


DEFAULT_ABSOLUTE_TIMEOUT_HOURS = 24
DEFAULT_IDLE_TIMEOUT_HOURS = 2


@dataclass
class SessionContext:
    """Account and session record behind a validated token."""
    account: Account
    session: SessionToken


def _timeout(key: str, default_hours: int) -> timedelta:
    hours = default_hours
    if has_app_context():
        hours = current_app.config.get(key, default_hours)
    return timedelta(hours=float(hours))


def generate_token() -> str:
    """64-character hex token (32 bytes of entropy); only ever sent to the client."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # tokens are high-entropy, SHA-256 is sufficient
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    account_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create a new session for an account.

    Returns (session_record, plaintext_token). The database stores only the
    hash. Raises ValueError if the account does not exist.
    """
    account = db.session.get(Account, account_id)
    if not account:
        raise ValueError("Account not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        account_id=account_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _timeout("SESSION_ABSOLUTE_TIMEOUT_HOURS", DEFAULT_ABSOLUTE_TIMEOUT_HOURS),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Validate a bearer token.

    Returns None if the token is unknown, expired, revoked, idle too long,
    or belongs to a deactivated account. Idle sessions and sessions of
    deactivated accounts are revoked on the way out. Updates last_used_at on
    success.
    """
    if not token:
        return None

    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _timeout("SESSION_IDLE_TIMEOUT_HOURS", DEFAULT_IDLE_TIMEOUT_HOURS):
        _revoke(session, "Idle timeout")
        return None

    account = session.account
    if not account or not account.is_active:
        _revoke(session, "Account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(account=account, session=session)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke a session token. Returns False if no live session matches."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True
