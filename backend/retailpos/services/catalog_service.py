# Overview: Service-layer operations for the product catalog; encapsulates business logic and database work.

"""
Catalog Service

A product is created together with its stock row and its initial tier
set, in one transaction, so a product is never visible without exactly
one default tier and a stock level.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Product
from ..errors import ConflictError, NotFoundError
from . import pricing_service, stock_service
from .concurrency import run_in_transaction


def create_product(
    *,
    patch: dict,
    tiers,
    opening_quantity=0,
    min_stock=None,
    max_stock=None,
    reorder_point=None,
    actor_user_id: int | None = None,
) -> Product:
    """
    Create a product from a validated patch dict.

    Args:
        patch: Product columns (sku, name, description, category, stock_unit)
        tiers: Initial unit price tier set (same rules as set_tiers)
        opening_quantity: Base units on hand at creation
        min_stock / max_stock / reorder_point: Advisory thresholds

    Raises:
        ValidationError: Bad tiers, quantity or thresholds
        ConflictError: SKU already exists
    """
    normalized = pricing_service.normalize_tiers(tiers)
    sku = (patch.get("sku") or "").strip()

    def _op():
        if db.session.query(Product.id).filter(Product.sku == sku).first():
            raise ConflictError("SKU already exists.", details={"sku": sku})

        product = Product(**patch)
        product.sku = sku
        db.session.add(product)
        db.session.flush()

        pricing_service.replace_tiers_locked(product, normalized)
        stock_service.open_stock(
            product.id,
            opening_quantity,
            min_stock=min_stock,
            max_stock=max_stock,
            reorder_point=reorder_point,
            actor_user_id=actor_user_id,
        )
        db.session.expire(product, ["stock"])

        current_app.logger.info("Created product sku=%s name=%s", product.sku, product.name)
        return product

    return run_in_transaction(_op)


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional filters and pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    if category:
        base_query = base_query.filter(Product.category == category)
    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
