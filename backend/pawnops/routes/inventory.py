# backend/pawnops/routes/inventory.py
"""
Inventory lookups. Items change branch only through completed deliveries.
"""
from flask import Blueprint, request, jsonify

from ..decorators import require_auth
from ..services import inventory_service
from ..validation import parse_int_id
from .errors import DOMAIN_ERRORS, error_response


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
def list_items():
    """Query params: branch_id, status, limit (default 100)."""
    try:
        items = inventory_service.list_items(
            branch_id=parse_int_id(request.args.get("branch_id"), "branch_id"),
            status=(request.args.get("status") or "").upper() or None,
            limit=min(parse_int_id(request.args.get("limit"), "limit") or 100, 500),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@inventory_bp.get("/<int:item_id>")
@require_auth
def get_item(item_id: int):
    try:
        return jsonify(inventory_service.get_item(item_id).to_dict()), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
