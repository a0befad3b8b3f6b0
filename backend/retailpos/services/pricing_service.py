# Overview: Service-layer operations for unit pricing tiers; encapsulates business logic and database work.

"""
Unit Pricing Registry

Invariants (authoritative):
- Every product with pricing has exactly one UnitPrice with is_default = true.
- A product's tier set is only ever replaced as a whole: validate the
  complete new set, delete the old rows, insert the new ones, in one
  transaction. There is no per-field tier update, which is how a second
  default (or none) would otherwise creep in.
- Sales snapshot the tier they resolve, so replacing tiers never changes
  historical sale items; their unit_price_id reference is cleared.
- Only purchase-order receiving and explicit pricing edits write tiers;
  checkout only reads.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Product, UnitPrice, SaleItem, TIER_LABELS
from ..errors import ValidationError, NotFoundError, InvariantViolation
from ..validation import require_positive_int, require_price_cents
from .concurrency import lock_for_update, run_in_transaction


def _get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def normalize_tiers(tiers) -> list[dict]:
    """
    Validate a complete tier set and return it normalized.

    Rules: at least one tier, known and unique labels, positive integer
    multipliers, non-negative prices, exactly one default.
    """
    if not isinstance(tiers, (list, tuple)) or not tiers:
        raise ValidationError("At least one unit price tier is required")

    normalized = []
    seen_labels = set()
    for index, tier in enumerate(tiers):
        if not isinstance(tier, dict):
            raise ValidationError(f"Tier {index} must be an object")

        unit_type = str(tier.get("unit_type") or "").strip().lower()
        if unit_type not in TIER_LABELS:
            raise ValidationError(
                f"Invalid unit_type {unit_type!r}. Must be one of: {', '.join(TIER_LABELS)}",
                details={"index": index},
            )
        if unit_type in seen_labels:
            raise ValidationError(f"Duplicate unit_type {unit_type!r}", details={"index": index})
        seen_labels.add(unit_type)

        is_default = tier.get("is_default", False)
        if not isinstance(is_default, bool):
            raise ValidationError("is_default must be a boolean", details={"index": index})

        normalized.append({
            "unit_type": unit_type,
            "quantity": require_positive_int(tier.get("quantity", 1), "quantity"),
            "buying_price_cents": require_price_cents(tier.get("buying_price_cents", 0), "buying_price_cents"),
            "selling_price_cents": require_price_cents(tier.get("selling_price_cents"), "selling_price_cents"),
            "is_default": is_default,
        })

    default_count = sum(1 for t in normalized if t["is_default"])
    if default_count != 1:
        raise ValidationError(
            "Exactly one tier must be marked default",
            details={"default_count": default_count},
        )
    return normalized


def replace_tiers_locked(product: Product, normalized: list[dict]) -> list[UnitPrice]:
    """
    Swap a product's tier set inside the caller's transaction.

    Caller must hold the product row lock and pass a set that went through
    normalize_tiers().
    """
    old_ids = [
        row.id for row in db.session.query(UnitPrice.id).filter_by(product_id=product.id).all()
    ]
    if old_ids:
        db.session.execute(
            update(SaleItem)
            .where(SaleItem.unit_price_id.in_(old_ids))
            .values(unit_price_id=None)
        )
        db.session.query(UnitPrice).filter(UnitPrice.id.in_(old_ids)).delete(synchronize_session=False)
        # Deletes must reach the database before the new default is
        # inserted, or the partial unique index sees two defaults.
        db.session.flush()

    new_rows = [UnitPrice(product_id=product.id, **tier) for tier in normalized]
    db.session.add_all(new_rows)
    db.session.flush()
    db.session.expire(product, ["unit_prices"])

    _assert_single_default(product.id)
    return new_rows


def set_tiers(product_id: int, tiers, *, actor_user_id: int | None = None) -> list[UnitPrice]:
    """
    Replace the full tier set for a product.

    All-or-nothing: a rejected set leaves the existing tiers untouched.
    """
    normalized = normalize_tiers(tiers)

    def _op():
        product = _get_product(product_id, lock=True)
        rows = replace_tiers_locked(product, normalized)
        current_app.logger.info(
            "Replaced unit pricing for product %s with %d tier(s) (user=%s)",
            product_id, len(rows), actor_user_id,
        )
        return rows

    return run_in_transaction(_op)


def reprice_tier_locked(
    product_id: int,
    unit_type: str,
    *,
    buying_price_cents: int,
    selling_price_cents: int,
) -> list[UnitPrice]:
    """
    New prices for the tier labelled unit_type, other tiers kept as they are.

    Purchase-order prices are per package of the tier snapshotted on the
    line, so they land on that tier even if the default has moved since.
    Raises ValidationError when the product no longer has that tier.
    Still a whole-set replace; joins the caller's transaction.
    """
    product = _get_product(product_id, lock=True)
    label = str(unit_type or "").strip().lower()
    current = list_tiers(product_id)
    if label not in {tier.unit_type for tier in current}:
        raise ValidationError(
            f"Product {product_id} no longer has a {label!r} tier to reprice",
            details={"product_id": product_id, "unit_type": label},
        )

    tiers = [
        {
            "unit_type": tier.unit_type,
            "quantity": tier.quantity,
            "buying_price_cents": buying_price_cents if tier.unit_type == label else tier.buying_price_cents,
            "selling_price_cents": selling_price_cents if tier.unit_type == label else tier.selling_price_cents,
            "is_default": tier.is_default,
        }
        for tier in current
    ]
    return replace_tiers_locked(product, normalize_tiers(tiers))


def list_tiers(product_id: int) -> list[UnitPrice]:
    _get_product(product_id)
    return (
        db.session.query(UnitPrice)
        .filter_by(product_id=product_id)
        .order_by(UnitPrice.quantity.asc(), UnitPrice.id.asc())
        .all()
    )


def resolve_tier(product_id: int, unit_type: str) -> UnitPrice:
    """Return the product's tier with this label, used to snapshot prices at checkout."""
    _get_product(product_id)
    label = str(unit_type or "").strip().lower()
    tier = db.session.query(UnitPrice).filter_by(product_id=product_id, unit_type=label).first()
    if tier is None:
        raise NotFoundError(
            f"Product {product_id} has no {label!r} tier",
            details={"product_id": product_id, "unit_type": label},
        )
    return tier


def get_default(product_id: int) -> UnitPrice:
    """
    Return the tier flagged default.

    Zero or several defaults means something wrote tiers around this
    service; that is surfaced as InvariantViolation, never papered over by
    picking one.
    """
    _get_product(product_id)
    defaults = db.session.query(UnitPrice).filter_by(product_id=product_id, is_default=True).all()
    if len(defaults) != 1:
        _raise_default_violation(product_id, len(defaults))
    return defaults[0]


def _assert_single_default(product_id: int) -> None:
    count = (
        db.session.query(UnitPrice)
        .filter_by(product_id=product_id, is_default=True)
        .count()
    )
    if count != 1:
        _raise_default_violation(product_id, count)


def _raise_default_violation(product_id: int, count: int):
    current_app.logger.critical(
        "Data integrity alarm: product %s has %d default unit price tiers", product_id, count
    )
    raise InvariantViolation(
        f"Product {product_id} has {count} default tiers; expected exactly 1",
        details={"product_id": product_id, "default_count": count},
    )
