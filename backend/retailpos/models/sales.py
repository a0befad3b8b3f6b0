from __future__ import annotations

from ..extensions import db
from retailpos.time_utils import to_utc_z


PAYMENT_METHODS = ("cash", "card", "mpesa", "bank_transfer")


class Sale(db.Model):
    """
    Completed checkout.

    A sale is written once, together with its items, the stock debits and
    the loyalty entries, and is never edited afterwards. All amounts are in
    cents; total_cents is what the customer paid for after redemption.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created_payment", "created_at", "payment_method"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "S-000123")
    document_number = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    cashier_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    points_redeemed = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    points_earned = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default="paid")
    amount_paid_cents = db.Column(db.Integer, nullable=False)
    change_due_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
        lazy=True,
    )
    customer = db.relationship("Customer")
    cashier = db.relationship("User")

    def __repr__(self) -> str:
        return f"<Sale id={self.id} number={self.document_number!r} total_cents={self.total_cents}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "document_number": self.document_number,
            "customer_id": self.customer_id,
            "cashier_user_id": self.cashier_user_id,
            "subtotal_cents": self.subtotal_cents,
            "points_redeemed": self.points_redeemed,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "points_earned": self.points_earned,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "amount_paid_cents": self.amount_paid_cents,
            "change_due_cents": self.change_due_cents,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line of a sale. Tier, price and product name are snapshotted so later
    price or catalog changes never alter a historical receipt; unit_price_id
    is informational and is cleared when the tier set is replaced.
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    unit_price_id = db.Column(db.Integer, db.ForeignKey("unit_prices.id", ondelete="SET NULL"), nullable=True)

    product_name = db.Column(db.String(255), nullable=False)
    unit_type = db.Column(db.String(32), nullable=False)
    unit_quantity = db.Column(db.Integer, nullable=False)

    # Tier quantity sold and the base units it debited
    quantity = db.Column(db.Integer, nullable=False)
    base_quantity = db.Column(db.Integer, nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "unit_price_id": self.unit_price_id,
            "product_name": self.product_name,
            "unit_type": self.unit_type,
            "unit_quantity": self.unit_quantity,
            "quantity": self.quantity,
            "base_quantity": self.base_quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
