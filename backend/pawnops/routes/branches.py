# backend/pawnops/routes/branches.py
"""
Branch directory API routes.
"""
from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..decorators import require_auth, require_roles
from ..roles import ROLE_ADMIN
from ..services import branch_service, ledger_service
from ..validation import format_cents
from .errors import DOMAIN_ERRORS, error_response


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


def _with_capital(branch) -> dict:
    data = branch.to_dict()
    cents = ledger_service.get_current_capital_cents(branch.id)
    data["current_capital_cents"] = cents
    data["current_capital"] = format_cents(cents)
    return data


@branches_bp.get("")
@require_auth
def list_branches():
    return jsonify({"branches": [_with_capital(b) for b in branch_service.list_branches()]}), 200


@branches_bp.get("/<int:branch_id>")
@require_auth
def get_branch(branch_id: int):
    try:
        return jsonify(_with_capital(branch_service.get_branch(branch_id))), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)


@branches_bp.post("")
@require_auth
@require_roles(ROLE_ADMIN)
def create_branch():
    """
    Request body:
    {
        "name": str,
        "code": str (optional),
        "address", "city", "region", "contact_number": str (optional),
        "latitude", "longitude": float (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        branch = branch_service.create_branch(
            data.get("name"),
            data.get("code"),
            address=data.get("address"),
            city=data.get("city"),
            region=data.get("region"),
            contact_number=data.get("contact_number"),
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
        )
        return jsonify(branch.to_dict()), 201
    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Branch creation failed")
        return jsonify({"error": "Internal server error"}), 500
