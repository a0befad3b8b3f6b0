# Overview: Flask API routes for customers and loyalty points; parses input and returns JSON responses.

"""
Customer routes.

Loyalty balances are read from the cached account; the history endpoint
returns the ledger the balance is derived from. Manual adjustments and
reconciliation require the admin or manager role.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import POSError
from ..models import Customer
from ..services import customer_service, loyalty_service
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_auth, require_role

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address"},
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def search_customers_route():
    """Query params: q (name/email/phone substring), limit (default 10, max 50)."""
    limit = min(request.args.get("limit", 10, type=int), 50)
    customers = customer_service.search_customers(request.args.get("q"), limit=limit)
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)}), 200


@customers_bp.post("")
@require_auth
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        customer = customer_service.create_customer(patch=patch)
        return jsonify({"customer": customer.to_dict()}), 201
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.get("/<int:customer_id>/loyalty")
@require_auth
def get_loyalty_route(customer_id: int):
    try:
        account = loyalty_service.get_account(customer_id)
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({
        "customer_id": customer_id,
        "points_balance": account.points_balance if account else 0,
        "lifetime_points_earned": account.lifetime_points_earned if account else 0,
        "lifetime_points_redeemed": account.lifetime_points_redeemed if account else 0,
    }), 200


@customers_bp.get("/<int:customer_id>/loyalty/history")
@require_auth
def loyalty_history_route(customer_id: int):
    limit = min(request.args.get("limit", 100, type=int), 500)
    try:
        entries = loyalty_service.history(customer_id, limit=limit)
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"items": [t.to_dict() for t in entries], "count": len(entries)}), 200


@customers_bp.post("/<int:customer_id>/loyalty/adjust")
@require_auth
@require_role("admin", "manager")
def adjust_loyalty_route(customer_id: int):
    """Body: {"points": signed int, "reason": str}"""
    data = request.get_json(silent=True) or {}
    try:
        entry = loyalty_service.adjust(
            customer_id,
            data.get("points"),
            reason=data.get("reason"),
            user_id=g.current_user.id,
        )
        return jsonify({
            "transaction": entry.to_dict(),
            "points_balance": loyalty_service.balance(customer_id),
        }), 201
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust loyalty points")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/loyalty/reconcile")
@require_auth
@require_role("admin", "manager")
def reconcile_loyalty_route(customer_id: int):
    try:
        report = loyalty_service.reconcile(customer_id)
        return jsonify(report), 200
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reconcile loyalty balance")
        return jsonify({"error": "Internal server error"}), 500
