# backend/pawnops/routes/tracking.py
"""
Live delivery tracking. Backed by the in-process DeliveryTracker: positions
are lost on restart.
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import assignment_service, tracking_service
from .errors import DOMAIN_ERRORS, error_response


tracking_bp = Blueprint("tracking", __name__, url_prefix="/api/tracking")


@tracking_bp.get("/<int:assignment_id>")
@require_auth
def get_tracking(assignment_id: int):
    try:
        assignment_service.get_assignment(g.principal, assignment_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)

    record = tracking_service.get_tracker().get(assignment_id)
    if record is None:
        return jsonify({"error": "No tracking data for this assignment"}), 404
    return jsonify(record.to_dict()), 200


@tracking_bp.post("/<int:assignment_id>/location")
@require_auth
def update_location(assignment_id: int):
    """Body: {"lat": float, "lng": float, "stage": str (optional)}"""
    data = request.get_json(silent=True) or {}

    try:
        assignment_service.get_assignment(g.principal, assignment_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)

    try:
        record = tracking_service.get_tracker().update_location(
            assignment_id, data.get("lat"), data.get("lng"), data.get("stage"),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(record.to_dict()), 200
