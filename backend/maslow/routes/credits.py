# Overview: Flask API routes for the credit ledger; balance, grants and transaction history.

"""
Credit Ledger API Routes

Read-only for members: credits are issued by whatever settles a purchase
(see `flask credits grant`), and spent or refunded only by the booking
service.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import credit_ledger_service
from ..services.credit_ledger_service import LedgerError
from ..decorators import require_auth, require_staff


credits_bp = Blueprint("credits", __name__, url_prefix="/api/credits")


@credits_bp.get("/balance")
@require_auth
def balance_route():
    user_id = g.identity.get_current_user_id()
    return jsonify({
        "user_id": user_id,
        "balance": credit_ledger_service.available_balance(user_id),
    }), 200


@credits_bp.get("/grants")
@require_auth
def grants_route():
    """
    List the caller's grants, oldest first (the order they are spent in).

    Query params:
    - active_only: only active grants (default: false)
    """
    active_only = request.args.get("active_only", "false").lower() == "true"
    grants = credit_ledger_service.list_grants(
        g.identity.get_current_user_id(),
        include_inactive=not active_only,
    )
    return jsonify({"grants": [grant.to_dict() for grant in grants]}), 200


@credits_bp.get("/transactions")
@require_auth
def transactions_route():
    """
    Most recent ledger movements first.

    Query params:
    - limit: max rows (default 50, max 200)
    """
    try:
        limit = min(int(request.args.get("limit", 50)), 200)
    except ValueError:
        return jsonify({"error": "limit must be an integer"}), 400
    if limit < 1:
        return jsonify({"error": "limit must be positive"}), 400

    txns = credit_ledger_service.list_transactions(g.identity.get_current_user_id(), limit=limit)
    return jsonify({"transactions": [txn.to_dict() for txn in txns]}), 200


@credits_bp.post("/grants/<int:grant_id>/void")
@require_auth
@require_staff
def void_grant_route(grant_id: int):
    """
    Void a grant whose purchase was reversed upstream. Staff only.

    Request body:
    {
        "reason": "Chargeback 2026-10-01"
    }
    """
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()
    if not reason:
        return jsonify({"error": "reason is required"}), 400

    try:
        grant = credit_ledger_service.void_grant(grant_id, reason)
    except LedgerError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to void grant %s", grant_id)
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Grant %s voided by %s: %s", grant_id, g.identity.get_current_user_id(), reason)
    return jsonify(grant.to_dict()), 200
