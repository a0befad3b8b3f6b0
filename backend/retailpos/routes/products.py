# Overview: Flask API routes for products, unit pricing and stock; parses input and returns JSON responses.

"""
Product routes.

SECURITY: All routes require an acting user.
- Reads are open to every role
- Creating products, replacing unit pricing and editing stock thresholds
  require the admin or manager role
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import POSError, ValidationError
from ..models import Product
from ..services import catalog_service, pricing_service, stock_service
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_auth, require_role

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "category", "stock_unit", "is_active"},
    required_on_create={"sku", "name"},
)

# Keys of the create payload that are not Product columns
_CREATE_EXTRAS = ("unit_prices", "opening_quantity", "min_stock", "max_stock", "reorder_point")

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products.

    Query params:
    - search: substring of name or SKU
    - category: exact category
    - include_inactive: true to include deactivated products
    - page / per_page: optional pagination (default 20, max 100)
    """
    return catalog_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.post("")
@require_auth
@require_role("admin", "manager")
def create_product_route():
    """
    Create a product with its initial unit price tiers and opening stock.

    Body: product fields plus
    - unit_prices: [{unit_type, quantity, buying_price_cents, selling_price_cents, is_default}]
    - opening_quantity, min_stock, max_stock, reorder_point (optional)
    """
    payload = request.get_json(silent=True) or {}

    try:
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        extras = {key: payload.pop(key, None) for key in _CREATE_EXTRAS}
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        product = catalog_service.create_product(
            patch=patch,
            tiers=extras["unit_prices"],
            opening_quantity=extras["opening_quantity"] or 0,
            min_stock=extras["min_stock"],
            max_stock=extras["max_stock"],
            reorder_point=extras["reorder_point"],
            actor_user_id=g.current_user.id,
        )
        return jsonify({"product": product.to_dict()}), 201
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/<int:product_id>/unit-pricing")
@require_auth
def list_unit_pricing_route(product_id: int):
    try:
        tiers = pricing_service.list_tiers(product_id)
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"unit_prices": [t.to_dict() for t in tiers]}), 200


@products_bp.post("/<int:product_id>/unit-pricing")
@require_auth
@require_role("admin", "manager")
def set_unit_pricing_route(product_id: int):
    """
    Replace the product's full tier set.

    Body: {"unit_prices": [...]} with exactly one is_default tier. A
    rejected set leaves the current tiers in place.
    """
    data = request.get_json(silent=True) or {}
    try:
        tiers = pricing_service.set_tiers(product_id, data.get("unit_prices"), actor_user_id=g.current_user.id)
        return jsonify({"unit_prices": [t.to_dict() for t in tiers]}), 200
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to replace unit pricing")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/stock")
@require_auth
def get_stock_route(product_id: int):
    try:
        stock = stock_service.get_stock(product_id)
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"stock": stock.to_dict()}), 200


@products_bp.put("/<int:product_id>/stock")
@require_auth
@require_role("admin", "manager")
def update_stock_thresholds_route(product_id: int):
    """Replace min_stock / max_stock / reorder_point. Quantity only moves through sales and receiving."""
    data = request.get_json(silent=True) or {}
    try:
        stock = stock_service.set_thresholds(
            product_id,
            min_stock=data.get("min_stock"),
            max_stock=data.get("max_stock"),
            reorder_point=data.get("reorder_point"),
        )
        return jsonify({"stock": stock.to_dict()}), 200
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update stock thresholds")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/movements")
@require_auth
def list_movements_route(product_id: int):
    limit = min(request.args.get("limit", 100, type=int), 500)
    try:
        movements = stock_service.list_movements(product_id, limit=limit)
    except POSError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200
