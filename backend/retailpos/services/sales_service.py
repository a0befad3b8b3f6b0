# Overview: Service-layer operations for sales; coordinates pricing, stock and loyalty in one unit of work.

"""
Sale Transaction Coordinator

WHY: A checkout touches three ledgers (stock, loyalty, sales). They are
written as ONE transaction: either every line is debited, the sale and its
items exist and the loyalty entries are appended, or nothing happened.

ORDER OF OPERATIONS (inside run_in_transaction):
1. Resolve each line's tier and snapshot name, multiplier and price.
2. Compute subtotal, redemption discount, payable, change.
3. Debit stock for every line (conditional UPDATE, base units).
4. Persist Sale + SaleItems; link the stock movements to the sale.
5. Customer attached: redeem (if requested), then earn on the payable
   (post-redemption) amount.

Any typed error in 1-5 rolls the session back; the caller sees the error
and the database is unchanged.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Sale, SaleItem, Customer, User, Product, PAYMENT_METHODS
from ..errors import ValidationError, NotFoundError
from ..validation import require_positive_int, require_non_negative_int, optional_int
from . import pricing_service, stock_service, loyalty_service
from .concurrency import run_in_transaction
from .document_service import next_document_number


def _get_cashier(user_id) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if user is None or not user.is_active:
        raise NotFoundError(f"Cashier {user_id} not found", details={"user_id": user_id})
    return user


def _get_customer(customer_id) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    if not customer.is_active:
        raise ValidationError(f"Customer {customer_id} is inactive", details={"customer_id": customer_id})
    return customer


def _normalize_lines(lines) -> list[dict]:
    if not isinstance(lines, (list, tuple)) or not lines:
        raise ValidationError("A sale needs at least one line")

    normalized = []
    for index, line in enumerate(lines):
        if not isinstance(line, dict):
            raise ValidationError(f"Line {index} must be an object")
        if line.get("product_id") is None:
            raise ValidationError("product_id is required", details={"index": index})
        unit_type = line.get("unit_type")
        normalized.append({
            "product_id": require_positive_int(line.get("product_id"), "product_id"),
            "unit_type": str(unit_type).strip().lower() if unit_type else None,
            "quantity": require_positive_int(line.get("quantity"), "quantity"),
        })
    return normalized


def _price_line(line: dict) -> dict:
    """Snapshot the tier a line sells; no tier given means the default tier."""
    product = db.session.query(Product).filter_by(id=line["product_id"]).first()
    if product is None:
        raise NotFoundError(f"Product {line['product_id']} not found", details={"product_id": line["product_id"]})
    if not product.is_active:
        raise ValidationError(f"Product {product.id} is not for sale", details={"product_id": product.id})

    if line["unit_type"]:
        tier = pricing_service.resolve_tier(product.id, line["unit_type"])
    else:
        tier = pricing_service.get_default(product.id)

    return {
        "product_id": product.id,
        "unit_price_id": tier.id,
        "product_name": product.name,
        "unit_type": tier.unit_type,
        "unit_quantity": tier.quantity,
        "quantity": line["quantity"],
        "base_quantity": line["quantity"] * tier.quantity,
        "unit_price_cents": tier.selling_price_cents,
        "line_total_cents": line["quantity"] * tier.selling_price_cents,
    }


def _settle_payment(payment_method: str, payable_cents: int, amount_paid_cents) -> tuple[int, int]:
    """Return (amount_paid, change_due). Only cash can be overpaid."""
    amount_paid = optional_int(amount_paid_cents, "amount_paid_cents")
    if amount_paid is None:
        return payable_cents, 0
    if amount_paid < payable_cents:
        raise ValidationError(
            "Amount paid is less than the amount due",
            details={"amount_paid_cents": amount_paid, "payable_cents": payable_cents},
        )
    if amount_paid > payable_cents and payment_method != "cash":
        raise ValidationError(
            f"Overpayment is only allowed for cash, not {payment_method}",
            details={"amount_paid_cents": amount_paid, "payable_cents": payable_cents},
        )
    return amount_paid, amount_paid - payable_cents


def create_sale(
    *,
    cashier_user_id: int,
    lines,
    payment_method: str,
    customer_id: int | None = None,
    points_to_redeem=0,
    amount_paid_cents=None,
) -> Sale:
    """
    Complete a checkout atomically.

    Args:
        cashier_user_id: Acting user (attribution only)
        lines: [{"product_id", "unit_type" (optional: default tier), "quantity"}]
        payment_method: cash, card, mpesa or bank_transfer
        customer_id: Optional customer; only attached sales touch loyalty
        points_to_redeem: Points spent as a discount (needs a customer)
        amount_paid_cents: Tendered amount; defaults to the payable amount

    Returns:
        The persisted Sale

    Raises:
        ValidationError, NotFoundError, InsufficientStockError,
        InsufficientPointsError. Nothing is written when any is raised.
    """
    normalized = _normalize_lines(lines)
    method = str(payment_method or "").strip().lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment_method. Must be one of: {', '.join(PAYMENT_METHODS)}",
            details={"payment_method": payment_method},
        )
    customer_id = optional_int(customer_id, "customer_id")
    points = require_non_negative_int(points_to_redeem or 0, "points_to_redeem")
    if points and customer_id is None:
        raise ValidationError("Redeeming points requires a customer")

    def _op():
        cashier = _get_cashier(cashier_user_id)
        customer = _get_customer(customer_id) if customer_id is not None else None

        priced = [_price_line(line) for line in normalized]
        subtotal = sum(p["line_total_cents"] for p in priced)

        discount = loyalty_service.points_value_cents(points)
        if discount > subtotal:
            raise ValidationError(
                "Redeemed points exceed the sale subtotal",
                details={"points_to_redeem": points, "discount_cents": discount, "subtotal_cents": subtotal},
            )
        payable = subtotal - discount
        amount_paid, change_due = _settle_payment(method, payable, amount_paid_cents)

        # Debit in product order so concurrent sales take row locks in the
        # same order.
        movements = [
            stock_service.debit(p["product_id"], p["base_quantity"], actor_user_id=cashier.id)
            for p in sorted(priced, key=lambda p: p["product_id"])
        ]

        sale = Sale(
            document_number=next_document_number(document_type="SALE", prefix="S"),
            customer_id=customer.id if customer else None,
            cashier_user_id=cashier.id,
            subtotal_cents=subtotal,
            points_redeemed=points,
            discount_cents=discount,
            total_cents=payable,
            points_earned=0,
            payment_method=method,
            payment_status="paid",
            amount_paid_cents=amount_paid,
            change_due_cents=change_due,
        )
        sale.items = [SaleItem(**p) for p in priced]
        db.session.add(sale)
        db.session.flush()

        for movement in movements:
            movement.sale_id = sale.id
            movement.note = f"Sale {sale.document_number}"

        if customer is not None:
            if points:
                loyalty_service.redeem(customer.id, sale.id, points, user_id=cashier.id)
            earned = loyalty_service.compute_earned_points(payable)
            if earned:
                loyalty_service.earn(customer.id, sale.id, earned, user_id=cashier.id)
            sale.points_earned = earned

        db.session.flush()
        current_app.logger.info(
            "Sale %s created: %d line(s), total_cents=%d, customer=%s, redeemed=%d, earned=%d",
            sale.document_number, len(priced), payable, sale.customer_id, points, sale.points_earned,
        )
        return sale

    return run_in_transaction(_op)


def build_receipt(sale: Sale) -> dict:
    """
    Read-only receipt projection handed to printers / notification senders.
    Built from the stored rows only, so it can be rebuilt at any time.
    """
    customer = None
    if sale.customer is not None:
        customer = {
            "id": sale.customer.id,
            "name": sale.customer.name,
            "phone": sale.customer.phone,
            "email": sale.customer.email,
            "points_balance": loyalty_service.balance(sale.customer.id),
        }

    return {
        "transaction_id": f"TXN-{sale.id}",
        "sale_id": sale.id,
        "document_number": sale.document_number,
        "created_at": sale.to_dict()["created_at"],
        "cashier": {
            "id": sale.cashier_user_id,
            "name": (sale.cashier.name or sale.cashier.username) if sale.cashier else None,
        },
        "customer": customer,
        "items": [
            {
                "product_id": item.product_id,
                "product_name": item.product_name,
                "unit_type": item.unit_type,
                "quantity": item.quantity,
                "unit_price_cents": item.unit_price_cents,
                "line_total_cents": item.line_total_cents,
            }
            for item in sale.items
        ],
        "totals": {
            "subtotal_cents": sale.subtotal_cents,
            "discount_cents": sale.discount_cents,
            "total_cents": sale.total_cents,
        },
        "payment": {
            "method": sale.payment_method,
            "status": sale.payment_status,
            "amount_paid_cents": sale.amount_paid_cents,
            "change_due_cents": sale.change_due_cents,
        },
        "loyalty": {
            "points_redeemed": sale.points_redeemed,
            "points_earned": sale.points_earned,
        },
    }


def get_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def get_receipt(sale_id: int) -> dict:
    return build_receipt(get_sale(sale_id))


def list_sales(*, page: int = 1, per_page: int = 20, customer_id: int | None = None) -> dict:
    """
    Newest-first sale listing.

    Returns:
        Dict with 'items', 'count' and pagination metadata.
    """
    per_page = min(per_page or 20, 100)
    page = max(page or 1, 1)

    base_query = db.session.query(Sale)
    if customer_id is not None:
        base_query = base_query.filter(Sale.customer_id == customer_id)
    base_query = base_query.order_by(Sale.created_at.desc(), Sale.id.desc())

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    sales = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [s.to_dict() for s in sales],
        "count": len(sales),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
