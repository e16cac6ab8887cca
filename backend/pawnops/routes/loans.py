# backend/pawnops/routes/loans.py
"""
Pawn loan intake: item, loan and capital disbursement in one request.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..decorators import require_auth, require_roles
from ..roles import ROLE_ACCOUNT_EXECUTIVE, ROLE_ADMIN
from ..services import ledger_service, loan_service
from ..validation import format_cents
from .errors import DOMAIN_ERRORS, error_response


loans_bp = Blueprint("loans", __name__, url_prefix="/api/loans")


@loans_bp.route("", methods=["POST"])
@require_auth
@require_roles(ROLE_ADMIN, ROLE_ACCOUNT_EXECUTIVE)
def create_loan():
    """
    Request body:
    {
        "item": {"branch_id": int, "serial_number": str, "brand", "model",
                 "classification", "loan_agreement_number": str (optional),
                 "appraised_amount": decimal (optional)},
        "loan": {"customer_name": str, "loan_amount": decimal,
                 "customer_contact": str (optional),
                 "loan_date", "due_date": "YYYY-MM-DD" (optional)}
    }

    Returns:
        201: {"item", "loan", "branch_capital"}
    """
    data = request.get_json(silent=True) or {}

    try:
        item, loan = loan_service.create_loan_with_item(
            g.principal, data.get("item") or {}, data.get("loan") or {},
        )
        balance = ledger_service.get_current_capital_cents(loan.branch_id)
        return jsonify({
            "item": item.to_dict(),
            "loan": loan.to_dict(),
            "branch_capital": format_cents(balance),
        }), 201
    except DOMAIN_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Loan creation failed")
        return jsonify({"error": "Internal server error"}), 500
