# Overview: Service-layer operations for inventory items; lookups and branch relocation.

from __future__ import annotations

from typing import Iterable

from ..extensions import db
from ..models import Branch, InventoryItem
from ..validation import NotFoundError
from ..time_utils import utcnow


def get_item(item_id: int) -> InventoryItem:
    item = db.session.query(InventoryItem).filter_by(id=item_id).first()
    if not item:
        raise NotFoundError(f"Item {item_id} not found")
    return item


def list_items(*, branch_id: int | None = None, status: str | None = None, limit: int = 100) -> list[InventoryItem]:
    q = db.session.query(InventoryItem)
    if branch_id is not None:
        q = q.filter_by(branch_id=branch_id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(InventoryItem.id.desc()).limit(limit).all()


def relocate_items(item_ids: Iterable[int], new_branch_id: int) -> list[int]:
    """
    Reassign every listed item to new_branch_id.

    Returns the ids actually moved, in request order; ids that do not exist
    are skipped.
    Does not commit: the caller owns the transaction.
    """
    ids = list(item_ids)
    if not ids:
        return []

    branch = db.session.query(Branch).filter_by(id=new_branch_id).first()
    if not branch:
        raise NotFoundError(f"Branch {new_branch_id} not found")

    existing = {
        row.id for row in db.session.query(InventoryItem.id).filter(InventoryItem.id.in_(ids))
    }
    moved = [item_id for item_id in ids if item_id in existing]
    if moved:
        db.session.query(InventoryItem).filter(InventoryItem.id.in_(moved)).update(
            {InventoryItem.branch_id: new_branch_id, InventoryItem.updated_at: utcnow()},
            synchronize_session="fetch",
        )
    return moved
