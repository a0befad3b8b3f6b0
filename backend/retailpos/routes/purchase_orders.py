# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

"""
Purchase order routes.

SECURITY:
- Listing, viewing and creating orders: any role
- Status changes (approve/reject) and receiving: admin or manager
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import POSError
from ..services import purchase_order_service
from ..decorators import require_auth, require_role


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
@require_auth
def list_orders_route():
    """Query params: status, supplier_id."""
    try:
        orders = purchase_order_service.list_orders(
            status=request.args.get("status"),
            supplier_id=request.args.get("supplier_id", type=int),
        )
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"items": [o.to_dict(include_items=False) for o in orders], "count": len(orders)}), 200


@purchase_orders_bp.post("")
@require_auth
def create_order_route():
    """
    Body:
    - supplier_id
    - lines: [{product_id, quantity, buying_price_cents, selling_price_cents (optional)}]
    - expected_delivery_date (optional ISO-8601), notes (optional)
    """
    data = request.get_json(silent=True) or {}
    try:
        order = purchase_order_service.create_order(
            supplier_id=data.get("supplier_id"),
            lines=data.get("lines"),
            created_by_user_id=g.current_user.id,
            expected_delivery_date=data.get("expected_delivery_date"),
            notes=data.get("notes"),
        )
        return jsonify({"purchase_order": order.to_dict()}), 201
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = purchase_order_service.get_order(order_id)
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"purchase_order": order.to_dict()}), 200


@purchase_orders_bp.post("/<int:order_id>/status")
@require_auth
@require_role("admin", "manager")
def transition_order_route(order_id: int):
    """Body: {"status": "approved" | "rejected"}"""
    data = request.get_json(silent=True) or {}
    try:
        order = purchase_order_service.transition(order_id, data.get("status"), user_id=g.current_user.id)
        return jsonify({"purchase_order": order.to_dict()}), 200
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change purchase order status")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<int:order_id>/receive")
@require_auth
@require_role("admin", "manager")
def receive_order_route(order_id: int):
    """Body: {"lines": [{"item_id", "quantity_received"}]}"""
    data = request.get_json(silent=True) or {}
    try:
        order = purchase_order_service.receive(order_id, data.get("lines") or [], user_id=g.current_user.id)
        return jsonify({"purchase_order": order.to_dict()}), 200
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive purchase order")
        return jsonify({"error": "Internal server error"}), 500
