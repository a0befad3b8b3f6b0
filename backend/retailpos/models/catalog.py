from __future__ import annotations

from ..extensions import db
from retailpos.time_utils import to_utc_z


# Sellable packaging tiers. The multiplier (UnitPrice.quantity) is set per
# product; the label only names the tier.
TIER_LABELS = ("single", "three-pack", "dozen", "case")


class Product(db.Model):
    """
    Product master data.

    Stock lives in StockLevel and prices live in UnitPrice; the product row
    itself is only mutated by catalog edits.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_name", "category", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True)

    # Base unit all stock quantities are counted in
    stock_unit = db.Column(db.String(32), nullable=False, default="piece")

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    unit_prices = db.relationship(
        "UnitPrice",
        back_populates="product",
        lazy=True,
        order_by="UnitPrice.quantity",
    )
    stock = db.relationship("StockLevel", back_populates="product", uselist=False, lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self, include_pricing: bool = True) -> dict:
        data = {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "stock_unit": self.stock_unit,
            "is_active": self.is_active,
            "quantity_on_hand": self.stock.quantity if self.stock else 0,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_pricing:
            data["unit_prices"] = [u.to_dict() for u in self.unit_prices]
        return data


class UnitPrice(db.Model):
    """
    One sellable tier of a product (single, three-pack, dozen, ...).

    INVARIANT: exactly one row per product has is_default = true. The
    partial unique index makes a second default impossible; the pricing
    service guarantees there is never zero by only ever replacing the set
    as a whole.
    """
    __tablename__ = "unit_prices"
    __table_args__ = (
        db.UniqueConstraint("product_id", "unit_type", name="uq_unit_prices_product_unit_type"),
        db.Index(
            "uq_unit_prices_product_default",
            "product_id",
            unique=True,
            sqlite_where=db.text("is_default = 1"),
            postgresql_where=db.text("is_default"),
        ),
        db.CheckConstraint("quantity >= 1", name="ck_unit_prices_quantity_positive"),
        db.CheckConstraint("buying_price_cents >= 0", name="ck_unit_prices_buying_non_negative"),
        db.CheckConstraint("selling_price_cents >= 0", name="ck_unit_prices_selling_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    unit_type = db.Column(db.String(32), nullable=False)
    # How many base units this tier represents
    quantity = db.Column(db.Integer, nullable=False, default=1)

    buying_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", back_populates="unit_prices")

    def __repr__(self) -> str:
        return f"<UnitPrice product_id={self.product_id} unit_type={self.unit_type!r} default={self.is_default}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "unit_type": self.unit_type,
            "quantity": self.quantity,
            "buying_price_cents": self.buying_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "is_default": self.is_default,
            "created_at": to_utc_z(self.created_at),
        }


class StockLevel(db.Model):
    """
    On-hand quantity per product, in base units.

    INVARIANT: quantity >= 0 at every committed state. Only the stock
    service changes quantity, and only through conditional arithmetic
    UPDATEs; the check constraint backs that up at the database.
    Thresholds are advisory and never block a write.
    """
    __tablename__ = "stock_levels"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_stock_levels_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=True)
    max_stock = db.Column(db.Integer, nullable=True)
    reorder_point = db.Column(db.Integer, nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", back_populates="stock")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "reorder_point": self.reorder_point,
            "is_below_reorder_point": (
                self.reorder_point is not None and self.quantity <= self.reorder_point
            ),
            "is_over_max": self.max_stock is not None and self.quantity > self.max_stock,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only log of every stock debit/credit.

    MOVEMENT TYPES:
    - opening: Stock supplied when the product was created
    - sale: Debit from a sale (negative delta)
    - purchase_receive: Credit from receiving a purchase order

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True, index=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "quantity_after": self.quantity_after,
            "sale_id": self.sale_id,
            "purchase_order_id": self.purchase_order_id,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
