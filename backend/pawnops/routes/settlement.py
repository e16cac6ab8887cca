# backend/pawnops/routes/settlement.py
"""
Settlement reconciliation API: the failed side effects operators work off.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..decorators import require_auth, require_roles
from ..roles import ROLE_ADMIN, ROLE_AUDITOR
from ..services import settlement_service
from ..validation import parse_int_id
from .errors import DOMAIN_ERRORS, error_response


settlement_bp = Blueprint("settlement", __name__, url_prefix="/api/settlement")


@settlement_bp.get("/issues")
@require_auth
@require_roles(ROLE_ADMIN, ROLE_AUDITOR)
def list_issues():
    """Query params: all=1 to include resolved rows, assignment_id, stage."""
    include_resolved = request.args.get("all", "").lower() in ("1", "true", "yes")
    try:
        issues = settlement_service.list_issues(
            unresolved_only=not include_resolved,
            assignment_id=parse_int_id(request.args.get("assignment_id"), "assignment_id"),
            stage=request.args.get("stage") or None,
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify({"issues": [issue.to_dict() for issue in issues]}), 200


@settlement_bp.post("/issues/<int:issue_id>/resolve")
@require_auth
@require_roles(ROLE_ADMIN, ROLE_AUDITOR)
def resolve_issue(issue_id: int):
    """Body: {"note": str (optional)}"""
    data = request.get_json(silent=True) or {}

    try:
        issue = settlement_service.resolve_issue(issue_id, g.principal, data.get("note"))
        return jsonify(issue.to_dict()), 200
    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Resolving settlement issue %s failed", issue_id)
        return jsonify({"error": "Internal server error"}), 500
