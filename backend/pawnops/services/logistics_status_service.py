# Overview: Service-layer operations for driver logistics status; best-effort STANDBY/ASSIGNED flags.

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Account
from ..models.accounts import LOGISTICS_ASSIGNED, LOGISTICS_STANDBY
from ..roles import logistics_status_column_for


logger = logging.getLogger(__name__)

DRIVER_STATUSES = (LOGISTICS_STANDBY, LOGISTICS_ASSIGNED)


def set_driver_status(driver_id: int | None, assigned_by_role: str | None, status: str) -> bool:
    """
    Write a driver's logistics status into the column owned by the role that
    created the assignment, and commit.

    Best-effort: last write wins, a failure is logged and rolled back and the
    caller's own (already committed) transition stands. Returns True when a
    row was updated.
    """
    if driver_id is None:
        return False
    if status not in DRIVER_STATUSES:
        raise ValueError(f"Unknown driver status {status!r}")

    column = logistics_status_column_for(assigned_by_role)
    try:
        updated = (
            db.session.query(Account)
            .filter(Account.id == driver_id)
            .update({getattr(Account, column): status}, synchronize_session="fetch")
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Failed to set %s=%s for driver %s: %s", column, status, driver_id, exc)
        return False
    return updated > 0
