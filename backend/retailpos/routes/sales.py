# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes. Every role may ring up sales."""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import POSError
from ..services import sales_service
from ..decorators import require_auth


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Complete a checkout.

    Body:
    - lines: [{product_id, unit_type (optional, default tier), quantity}]
    - payment_method: cash | card | mpesa | bank_transfer
    - customer_id (optional), points_to_redeem (optional),
      amount_paid_cents (optional, cash may exceed the total)

    Returns the sale and its receipt, or a typed error
    (insufficient_stock, insufficient_points, validation_error, not_found).
    """
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.create_sale(
            cashier_user_id=g.current_user.id,
            lines=data.get("lines"),
            payment_method=data.get("payment_method"),
            customer_id=data.get("customer_id"),
            points_to_redeem=data.get("points_to_redeem", 0),
            amount_paid_cents=data.get("amount_paid_cents"),
        )
        return jsonify({
            "sale": sale.to_dict(include_items=True),
            "receipt": sales_service.build_receipt(sale),
        }), 201
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    return sales_service.list_sales(
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 20, type=int),
        customer_id=request.args.get("customer_id", type=int),
    )


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"sale": sale.to_dict(include_items=True)}), 200


@sales_bp.get("/<int:sale_id>/receipt")
@require_auth
def get_receipt_route(sale_id: int):
    try:
        receipt = sales_service.get_receipt(sale_id)
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"receipt": receipt}), 200
