# Overview: Service-layer operations for purchase orders; encapsulates business logic and database work.

"""
Purchase Order Service

LIFECYCLE:
1. pending: Created, awaiting approval
2. approved: Approved, awaiting delivery
3. completed: Goods received (only reachable through receive())
4. rejected: Turned down (terminal)

    pending -> approved -> completed
    pending -> rejected

completed and rejected are terminal. Any other move raises
InvalidTransitionError and leaves the order untouched.

RECEIVING:
- Runs as one transaction: stock credits, received quantities, optional
  repricing of the ordered tier and the status change commit together.
- Each line may be under-received (0 <= received <= ordered). The order
  still becomes completed; is_fully_received reports the shortfall.
- Lines count packages of the tier snapshotted at creation; the credit is
  received x unit_quantity base units.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem, Supplier, Product
from ..errors import ValidationError, NotFoundError, InvalidTransitionError
from ..validation import require_positive_int, require_non_negative_int, require_price_cents
from ..time_utils import utcnow, parse_timestamp
from . import pricing_service, stock_service
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_document_number


STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_COMPLETED = "completed"
STATUS_REJECTED = "rejected"

STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_COMPLETED, STATUS_REJECTED)

# completed is only reachable through receive()
ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_APPROVED, STATUS_REJECTED},
    STATUS_APPROVED: set(),
    STATUS_COMPLETED: set(),
    STATUS_REJECTED: set(),
}


def _get_order(order_id: int, *, lock: bool = False) -> PurchaseOrder:
    query = db.session.query(PurchaseOrder).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFoundError(f"Purchase order {order_id} not found", details={"purchase_order_id": order_id})
    return order


def _get_active_supplier(supplier_id) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
    if not supplier.is_active:
        raise ValidationError(f"Supplier {supplier_id} is inactive", details={"supplier_id": supplier_id})
    return supplier


def _parse_expected_date(value):
    return parse_timestamp(value, field="expected_delivery_date")


def _normalize_order_lines(lines) -> list[dict]:
    if not isinstance(lines, (list, tuple)) or not lines:
        raise ValidationError("A purchase order needs at least one line")

    normalized = []
    seen_products = set()
    for index, line in enumerate(lines):
        if not isinstance(line, dict):
            raise ValidationError(f"Line {index} must be an object")
        product_id = require_positive_int(line.get("product_id"), "product_id")
        if product_id in seen_products:
            raise ValidationError(f"Product {product_id} appears on more than one line", details={"index": index})
        seen_products.add(product_id)

        selling = line.get("selling_price_cents")
        normalized.append({
            "product_id": product_id,
            "quantity_ordered": require_positive_int(line.get("quantity"), "quantity"),
            "buying_price_cents": require_price_cents(line.get("buying_price_cents"), "buying_price_cents"),
            "selling_price_cents": (
                None if selling is None else require_price_cents(selling, "selling_price_cents")
            ),
        })
    return normalized


def create_order(
    *,
    supplier_id: int,
    lines,
    created_by_user_id: int | None = None,
    expected_delivery_date=None,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Create a pending purchase order.

    Each line: {"product_id", "quantity", "buying_price_cents",
    "selling_price_cents" (optional revised selling price)}. Quantities
    and prices are per package of the product's default tier.
    """
    supplier_id = require_positive_int(supplier_id, "supplier_id")
    normalized = _normalize_order_lines(lines)
    expected = _parse_expected_date(expected_delivery_date)

    def _op():
        supplier = _get_active_supplier(supplier_id)

        items = []
        for line in normalized:
            product = db.session.query(Product).filter_by(id=line["product_id"]).first()
            if product is None:
                raise NotFoundError(
                    f"Product {line['product_id']} not found", details={"product_id": line["product_id"]}
                )
            tier = pricing_service.get_default(product.id)
            items.append(PurchaseOrderItem(
                product_id=product.id,
                unit_type=tier.unit_type,
                unit_quantity=tier.quantity,
                quantity_ordered=line["quantity_ordered"],
                quantity_received=0,
                buying_price_cents=line["buying_price_cents"],
                selling_price_cents=line["selling_price_cents"],
                line_total_cents=line["quantity_ordered"] * line["buying_price_cents"],
            ))

        order = PurchaseOrder(
            order_number=next_document_number(document_type="PURCHASE_ORDER", prefix="PO"),
            supplier_id=supplier.id,
            status=STATUS_PENDING,
            total_cents=sum(item.line_total_cents for item in items),
            notes=notes,
            expected_delivery_date=expected,
            created_by_user_id=created_by_user_id,
        )
        order.items = items
        db.session.add(order)
        db.session.flush()

        current_app.logger.info(
            "Purchase order %s created for supplier %s: %d line(s), total_cents=%d",
            order.order_number, supplier.id, len(items), order.total_cents,
        )
        return order

    return run_in_transaction(_op)


def transition(order_id: int, new_status: str, *, user_id: int | None = None) -> PurchaseOrder:
    """Move an order along the approval graph (approve / reject)."""
    target = str(new_status or "").strip().lower()
    if target not in STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(STATUSES)}",
            details={"status": new_status},
        )

    def _op():
        order = _get_order(order_id, lock=True)
        if target not in ALLOWED_TRANSITIONS[order.status]:
            hint = " (use receive)" if target == STATUS_COMPLETED else ""
            raise InvalidTransitionError(
                f"Cannot move purchase order from {order.status} to {target}{hint}",
                details={"purchase_order_id": order.id, "from": order.status, "to": target},
            )

        order.status = target
        order.status_changed_by_user_id = user_id
        if target == STATUS_APPROVED:
            order.approved_at = utcnow()
        elif target == STATUS_REJECTED:
            order.rejected_at = utcnow()
        db.session.flush()

        current_app.logger.info("Purchase order %s moved to %s by user %s", order.order_number, target, user_id)
        return order

    return run_in_transaction(_op)


def _normalize_received(order: PurchaseOrder, received_lines) -> dict[int, int]:
    """Map item id -> received packages. Lines not mentioned receive 0."""
    if not isinstance(received_lines, (list, tuple)):
        raise ValidationError("received_lines must be a list")

    items_by_id = {item.id: item for item in order.items}
    received = {}
    for index, line in enumerate(received_lines):
        if not isinstance(line, dict):
            raise ValidationError(f"Line {index} must be an object")
        item_id = require_positive_int(line.get("item_id"), "item_id")
        item = items_by_id.get(item_id)
        if item is None:
            raise ValidationError(
                f"Item {item_id} is not on purchase order {order.id}",
                details={"index": index, "item_id": item_id},
            )
        if item_id in received:
            raise ValidationError(f"Item {item_id} listed twice", details={"index": index})
        quantity = require_non_negative_int(line.get("quantity_received"), "quantity_received")
        if quantity > item.quantity_ordered:
            raise ValidationError(
                f"Cannot receive {quantity} of item {item_id}; only {item.quantity_ordered} ordered",
                details={"item_id": item_id, "quantity_ordered": item.quantity_ordered},
            )
        received[item_id] = quantity
    return received


def receive(order_id: int, received_lines, *, user_id: int | None = None) -> PurchaseOrder:
    """
    Receive an approved order.

    received_lines: [{"item_id", "quantity_received"}]. Stock is credited
    for received quantities only; lines with a selling price reprice the
    tier they were ordered in. The order ends completed.
    """
    def _op():
        order = _get_order(order_id, lock=True)
        if order.status != STATUS_APPROVED:
            raise InvalidTransitionError(
                f"Only approved purchase orders can be received (status is {order.status})",
                details={"purchase_order_id": order.id, "from": order.status, "to": STATUS_COMPLETED},
            )

        received = _normalize_received(order, received_lines)

        for item in sorted(order.items, key=lambda i: i.product_id):
            quantity = received.get(item.id, 0)
            item.quantity_received = quantity
            if quantity == 0:
                continue

            stock_service.credit(
                item.product_id,
                quantity * item.unit_quantity,
                purchase_order_id=order.id,
                actor_user_id=user_id,
                note=f"Purchase order {order.order_number}",
            )
            if item.selling_price_cents is not None:
                pricing_service.reprice_tier_locked(
                    item.product_id,
                    item.unit_type,
                    buying_price_cents=item.buying_price_cents,
                    selling_price_cents=item.selling_price_cents,
                )

        order.status = STATUS_COMPLETED
        order.received_date = utcnow()
        order.received_by_user_id = user_id
        order.status_changed_by_user_id = user_id
        db.session.flush()

        if not order.is_fully_received:
            current_app.logger.info("Purchase order %s completed with a short delivery", order.order_number)
        current_app.logger.info("Purchase order %s received by user %s", order.order_number, user_id)
        return order

    return run_in_transaction(_op)


def get_order(order_id: int) -> PurchaseOrder:
    return _get_order(order_id)


def list_orders(*, status: str | None = None, supplier_id: int | None = None) -> list[PurchaseOrder]:
    query = db.session.query(PurchaseOrder)
    if status:
        status = status.strip().lower()
        if status not in STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(STATUSES)}")
        query = query.filter(PurchaseOrder.status == status)
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    return query.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc()).all()
