# backend/pawnops/routes/system.py
"""
System health endpoint.

Reports database reachability and the number of live ledger/assignment rows
for deployment debugging.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import CapitalLedgerEntry, DeliveryAssignment, SettlementIssue
from pawnops.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """Round-trip the database and count the core tables."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        details = {
            "ledger_entries": db.session.query(CapitalLedgerEntry).count(),
            "assignments": db.session.query(DeliveryAssignment).count(),
            "unresolved_settlement_issues": db.session.query(SettlementIssue)
            .filter(SettlementIssue.resolved_at.is_(None))
            .count(),
        }
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": details,
        }
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: {"status": "ok", ...} when the database answers
    - 503: {"status": "unhealthy", ...} otherwise
    """
    database_health = check_database_health()
    ok = database_health["status"] == "healthy"

    response = {
        "status": "ok" if ok else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }
    return response, 200 if ok else 503
