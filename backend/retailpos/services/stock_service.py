# Overview: Service-layer operations for stock levels; encapsulates business logic and database work.

"""
Stock Ledger Invariants (authoritative)

- On-hand quantity is stored per product in StockLevel, in base units.
- quantity >= 0 at every committed state.
- Every change is one conditional arithmetic UPDATE:
      debit:  SET quantity = quantity - n WHERE product_id = :p AND quantity >= n
      credit: SET quantity = quantity + n WHERE product_id = :p
  never read-compute-write, so two checkouts cannot both see the last unit
  and oversell it.
- debit/credit join the caller's transaction (sale or purchase-order
  receive) and never commit; a failed debit poisons the whole unit of work.
- Each change appends a StockMovement in the same transaction.
- min/max/reorder thresholds are advisory: reported, never blocking.
"""

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import StockLevel, StockMovement
from ..errors import NotFoundError, InsufficientStockError, ValidationError
from ..validation import require_positive_int, require_non_negative_int, optional_int
from .concurrency import run_in_transaction

MOVEMENT_OPENING = "opening"
MOVEMENT_SALE = "sale"
MOVEMENT_PURCHASE_RECEIVE = "purchase_receive"


def get_stock(product_id: int) -> StockLevel:
    stock = db.session.query(StockLevel).filter_by(product_id=product_id).first()
    if stock is None:
        raise NotFoundError(f"No stock record for product {product_id}", details={"product_id": product_id})
    return stock


def get_quantity_on_hand(product_id: int) -> int:
    quantity = (
        db.session.query(StockLevel.quantity)
        .filter_by(product_id=product_id)
        .scalar()
    )
    if quantity is None:
        raise NotFoundError(f"No stock record for product {product_id}", details={"product_id": product_id})
    return int(quantity)


def _validate_thresholds(min_stock, max_stock, reorder_point) -> dict:
    thresholds = {
        "min_stock": optional_int(min_stock, "min_stock"),
        "max_stock": optional_int(max_stock, "max_stock"),
        "reorder_point": optional_int(reorder_point, "reorder_point"),
    }
    for key, value in thresholds.items():
        if value is not None and value < 0:
            raise ValidationError(f"{key} must be >= 0")
    if (
        thresholds["min_stock"] is not None
        and thresholds["max_stock"] is not None
        and thresholds["min_stock"] > thresholds["max_stock"]
    ):
        raise ValidationError("min_stock cannot exceed max_stock")
    return thresholds


def open_stock(
    product_id: int,
    quantity: int = 0,
    *,
    min_stock: int | None = None,
    max_stock: int | None = None,
    reorder_point: int | None = None,
    actor_user_id: int | None = None,
) -> StockLevel:
    """Create the stock row for a new product. Joins the caller's transaction."""
    quantity = require_non_negative_int(quantity, "quantity")
    thresholds = _validate_thresholds(min_stock, max_stock, reorder_point)

    stock = StockLevel(product_id=product_id, quantity=quantity, **thresholds)
    db.session.add(stock)
    db.session.flush()

    if quantity:
        db.session.add(StockMovement(
            product_id=product_id,
            movement_type=MOVEMENT_OPENING,
            quantity_delta=quantity,
            quantity_after=quantity,
            actor_user_id=actor_user_id,
            note="Opening stock",
        ))
        db.session.flush()
    return stock


def debit(
    product_id: int,
    quantity: int,
    *,
    sale_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    """
    Decrease on-hand quantity by `quantity` base units.

    Raises InsufficientStockError (nothing written) if that would go
    negative. Joins the caller's transaction.
    """
    quantity = require_positive_int(quantity, "quantity")

    result = db.session.execute(
        update(StockLevel)
        .where(StockLevel.product_id == product_id, StockLevel.quantity >= quantity)
        .values(quantity=StockLevel.quantity - quantity)
    )
    if result.rowcount != 1:
        on_hand = get_quantity_on_hand(product_id)
        raise InsufficientStockError(
            f"Insufficient stock for product {product_id}",
            details={
                "product_id": product_id,
                "requested_quantity": quantity,
                "on_hand": on_hand,
            },
        )

    return _append_movement(
        product_id,
        MOVEMENT_SALE,
        -quantity,
        sale_id=sale_id,
        actor_user_id=actor_user_id,
        note=note,
    )


def credit(
    product_id: int,
    quantity: int,
    *,
    purchase_order_id: int | None = None,
    actor_user_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    """
    Increase on-hand quantity by `quantity` base units. No upper bound;
    max_stock is advisory. Joins the caller's transaction.
    """
    quantity = require_positive_int(quantity, "quantity")

    result = db.session.execute(
        update(StockLevel)
        .where(StockLevel.product_id == product_id)
        .values(quantity=StockLevel.quantity + quantity)
    )
    if result.rowcount != 1:
        raise NotFoundError(f"No stock record for product {product_id}", details={"product_id": product_id})

    return _append_movement(
        product_id,
        MOVEMENT_PURCHASE_RECEIVE,
        quantity,
        purchase_order_id=purchase_order_id,
        actor_user_id=actor_user_id,
        note=note,
    )


def _append_movement(product_id: int, movement_type: str, delta: int, **refs) -> StockMovement:
    movement = StockMovement(
        product_id=product_id,
        movement_type=movement_type,
        quantity_delta=delta,
        quantity_after=get_quantity_on_hand(product_id),
        **refs,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def set_thresholds(
    product_id: int,
    *,
    min_stock: int | None = None,
    max_stock: int | None = None,
    reorder_point: int | None = None,
) -> StockLevel:
    """Replace the advisory thresholds. Quantity is not touched."""
    thresholds = _validate_thresholds(min_stock, max_stock, reorder_point)

    def _op():
        stock = get_stock(product_id)
        for key, value in thresholds.items():
            setattr(stock, key, value)
        db.session.flush()
        return stock

    return run_in_transaction(_op)


def list_movements(product_id: int, limit: int = 100) -> list[StockMovement]:
    get_stock(product_id)
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
