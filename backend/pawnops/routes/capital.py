# backend/pawnops/routes/capital.py
"""
Branch capital ledger read API.

Read-only: entries are written by settlement and loan disbursement.
"""
from decimal import Decimal

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_roles
from ..roles import ROLE_ADMIN, ROLE_AUDITOR
from ..services import branch_service, ledger_service
from ..validation import ValidationError, format_cents, parse_int_id
from .errors import DOMAIN_ERRORS, error_response


capital_bp = Blueprint("capital", __name__, url_prefix="/api/capital")

MAX_PAGE_SIZE = 500


@capital_bp.get("/current")
@require_auth
def current_capital_all():
    """Current capital for every branch that has ledger entries."""
    capital = ledger_service.get_all_current_capital()
    return jsonify({
        "branches": [
            {"branch_id": branch_id, "current_capital": str(amount)}
            for branch_id, amount in capital.items()
        ],
        "total": str(sum(capital.values(), Decimal("0.00"))),
    }), 200


@capital_bp.get("/branches/<int:branch_id>/current")
@require_auth
def current_capital(branch_id: int):
    try:
        branch_service.get_branch(branch_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    cents = ledger_service.get_current_capital_cents(branch_id)
    return jsonify({
        "branch_id": branch_id,
        "current_capital_cents": cents,
        "current_capital": format_cents(cents),
    }), 200


@capital_bp.get("/branches/<int:branch_id>/entries")
@require_auth
def list_entries(branch_id: int):
    """
    Query params:
        order: "desc" (default) or "asc"
        limit: page size (default 100, max 500)
        before_id: entry id to page backwards from (desc only)
    """
    try:
        branch_service.get_branch(branch_id)

        order = (request.args.get("order") or "desc").lower()
        if order not in ("asc", "desc"):
            raise ValidationError("order must be asc or desc")
        limit = parse_int_id(request.args.get("limit"), "limit") or 100
        before_id = parse_int_id(request.args.get("before_id"), "before_id")

        entries = ledger_service.list_entries(
            branch_id,
            order_descending=order == "desc",
            limit=min(limit, MAX_PAGE_SIZE),
            before_id=before_id,
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)

    return jsonify({
        "branch_id": branch_id,
        "entries": [entry.to_dict() for entry in entries],
        "next_before_id": entries[-1].id if entries and order == "desc" else None,
    }), 200


@capital_bp.get("/branches/<int:branch_id>/verify")
@require_auth
@require_roles(ROLE_ADMIN, ROLE_AUDITOR)
def verify_ledger(branch_id: int):
    """Replay the branch ledger from zero; ok is false when any running balance disagrees."""
    try:
        branch_service.get_branch(branch_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    discrepancies = ledger_service.verify_branch_ledger(branch_id)
    return jsonify({
        "branch_id": branch_id,
        "ok": not discrepancies,
        "discrepancies": [d.to_dict() for d in discrepancies],
    }), 200
