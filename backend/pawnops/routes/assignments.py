# backend/pawnops/routes/assignments.py
"""
Delivery assignment API routes.

Status edges return as soon as the assignment row is committed. Settlement
failures behind them are not errors here; they show up in
/api/settlement/issues.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..decorators import require_auth
from ..services import assignment_service
from ..validation import ForbiddenError, parse_int_id
from .errors import DOMAIN_ERRORS, error_response


assignments_bp = Blueprint("assignments", __name__, url_prefix="/api/delivery-assignments")


def _internal_error(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


def _proof_ref(data: dict, *keys) -> str | None:
    for key in keys:
        value = data.get(key)
        if value:
            return str(value)
    return None


@assignments_bp.route("", methods=["POST"])
@require_auth
def create_assignment():
    """
    Create a delivery assignment (admin; auditor for capital types only).

    Request body:
    {
        "assigned_to": int,
        "assignment_type": "ITEM_TRANSFER" | "CAPITAL_DELIVERY" | "BALANCE_DELIVERY",
        "from_location_type": "BRANCH" | "VAULT",
        "to_location_type": "BRANCH" | "VAULT",
        "from_branch_id": int (required for BRANCH),
        "to_branch_id": int (required for BRANCH),
        "items": list | object (optional),
        "amount": decimal (required for capital types),
        "due_date": "YYYY-MM-DD" (optional),
        "notes": str (optional)
    }

    Returns:
        201: Assignment created
        400: Invalid request
        403: Role may not create this type
        404: Branch or driver not found
    """
    data = request.get_json(silent=True) or {}

    try:
        assignment = assignment_service.create_assignment(g.principal, data)
        return jsonify(assignment.to_dict()), 201
    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Assignment creation failed")


@assignments_bp.route("/<int:assignment_id>/verify-pickup", methods=["POST"])
@require_auth
def verify_pickup(assignment_id: int):
    """
    Body: {"item_image": str} (proof-of-custody reference)

    Returns:
        200: Assignment IN_PROGRESS
        404: Not found / not yours
        409: Assignment not active
    """
    data = request.get_json(silent=True) or {}

    try:
        assignment = assignment_service.verify_pickup(
            g.principal, assignment_id, _proof_ref(data, "item_image", "itemImage"),
        )
        return jsonify({
            "success": True,
            "message": "Pickup verified",
            "assignment": assignment.to_dict(),
        }), 200
    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Pickup verification failed")


@assignments_bp.route("/<int:assignment_id>/verify-dropoff", methods=["POST"])
@require_auth
def verify_dropoff(assignment_id: int):
    """
    Body: {"dropoff_image": str}

    Returns:
        200: Assignment COMPLETED, with the item relocation summary
        404: Not found / not yours
        409: Assignment not IN_PROGRESS (including a repeated dropoff)
    """
    data = request.get_json(silent=True) or {}

    try:
        result = assignment_service.verify_dropoff(
            g.principal, assignment_id, _proof_ref(data, "dropoff_image", "dropoffImage", "item_image"),
        )
        payload = result.to_dict()
        payload.update({"success": True, "message": "Delivery completed"})
        return jsonify(payload), 200
    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Dropoff verification failed")


@assignments_bp.route("/<int:assignment_id>/status", methods=["PUT"])
@require_auth
def set_status(assignment_id: int):
    """
    Body: {"status": str, "notes": str (optional)}

    Returns:
        200: Status updated (or note appended when unchanged)
        400: Unknown status
        404: Not found / not yours
        409: Assignment already terminal, or COMPLETED requested outside IN_PROGRESS
    """
    data = request.get_json(silent=True) or {}

    try:
        assignment = assignment_service.set_status(
            g.principal, assignment_id, data.get("status"), data.get("notes"),
        )
        return jsonify(assignment.to_dict()), 200
    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("Status update failed")


@assignments_bp.get("/active")
@require_auth
def active_assignments():
    try:
        branch_id = parse_int_id(request.args.get("branch_id"), "branch_id")
    except DOMAIN_ERRORS as e:
        return error_response(e)
    rows = assignment_service.get_active(branch_id)
    return jsonify({"assignments": [a.to_dict() for a in rows]}), 200


@assignments_bp.get("")
@require_auth
def list_assignments():
    """Query params: branch_id, status, limit."""
    try:
        rows = assignment_service.list_assignments(
            g.principal,
            branch_id=parse_int_id(request.args.get("branch_id"), "branch_id"),
            status=request.args.get("status"),
            limit=parse_int_id(request.args.get("limit"), "limit"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify({"assignments": [a.to_dict() for a in rows]}), 200


@assignments_bp.get("/branch/<int:branch_id>")
@require_auth
def branch_history(branch_id: int):
    try:
        rows = assignment_service.list_assignments(g.principal, branch_id=branch_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify({"branch_id": branch_id, "assignments": [a.to_dict() for a in rows]}), 200


def _check_driver_scope(driver_id: int) -> None:
    if g.principal.id != driver_id and not (g.principal.is_admin or g.principal.is_auditor):
        raise ForbiddenError("You may only view your own assignments")


@assignments_bp.get("/personnel/<int:driver_id>/active")
@require_auth
def driver_active(driver_id: int):
    try:
        _check_driver_scope(driver_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    assignment = assignment_service.get_active_for_driver(driver_id)
    return jsonify({"assignment": assignment.to_dict() if assignment else None}), 200


@assignments_bp.get("/personnel/<int:driver_id>")
@require_auth
def driver_history(driver_id: int):
    try:
        _check_driver_scope(driver_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    rows = assignment_service.get_driver_history(driver_id)
    return jsonify({"assignments": [a.to_dict() for a in rows]}), 200


@assignments_bp.get("/<int:assignment_id>")
@require_auth
def get_assignment(assignment_id: int):
    try:
        assignment = assignment_service.get_assignment(g.principal, assignment_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(assignment.to_dict()), 200
