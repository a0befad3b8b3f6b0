# Overview: Service-layer operations for reporting; encapsulates read-only queries.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Sale, SaleItem, Product, StockLevel
from ..errors import ValidationError
from ..time_utils import parse_timestamp, utcnow, to_utc_z

PERIODS = ("today", "week", "month", "year")


def suggested_order_quantity(stock: StockLevel) -> int:
    """
    Base units to order to get back to a healthy level.

    min(max - qty, max(reorder*2 - qty, min*3 - qty)), floored at 0; without
    a max_stock there is no cap.
    """
    qty = stock.quantity
    target = max((stock.reorder_point or 0) * 2 - qty, (stock.min_stock or 0) * 3 - qty)
    if stock.max_stock is not None:
        target = min(stock.max_stock - qty, target)
    return max(target, 0)


def _is_low(stock: StockLevel) -> bool:
    if stock.reorder_point is not None and stock.quantity <= stock.reorder_point:
        return True
    return stock.min_stock is not None and stock.quantity <= stock.min_stock


def low_stock_report() -> dict:
    """
    Active products at or below their reorder point / min stock, and
    products above max stock. Advisory only.
    """
    rows = (
        db.session.query(Product, StockLevel)
        .join(StockLevel, StockLevel.product_id == Product.id)
        .filter(Product.is_active.is_(True))
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )

    low, over = [], []
    for product, stock in rows:
        entry = {
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "quantity": stock.quantity,
            "min_stock": stock.min_stock,
            "max_stock": stock.max_stock,
            "reorder_point": stock.reorder_point,
        }
        if _is_low(stock):
            low.append({**entry, "suggested_order_quantity": suggested_order_quantity(stock)})
        if stock.max_stock is not None and stock.quantity > stock.max_stock:
            over.append({**entry, "excess_quantity": stock.quantity - stock.max_stock})

    return {"low_stock": low, "over_max": over, "generated_at": to_utc_z(utcnow())}


def period_bounds(period: str, *, now: datetime | None = None) -> tuple[datetime, datetime]:
    """UTC calendar period containing `now`: [start, end)."""
    now = now or utcnow()
    day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period == "today":
        return day, day + timedelta(days=1)
    if period == "week":
        start = day - timedelta(days=day.weekday())
        return start, start + timedelta(days=7)
    if period == "month":
        start = day.replace(day=1)
        if start.month == 12:
            return start, start.replace(year=start.year + 1, month=1)
        return start, start.replace(month=start.month + 1)
    if period == "year":
        start = day.replace(month=1, day=1)
        return start, start.replace(year=start.year + 1)
    raise ValidationError(f"Invalid period. Must be one of: {', '.join(PERIODS)}", details={"period": period})


def sales_summary(period: str | None = "today", *, start: str | None = None, end: str | None = None) -> dict:
    """
    Sales totals for a calendar period (or an explicit ISO start/end range),
    broken down by payment method.
    """
    if start or end:
        start_dt = parse_timestamp(start, field="start")
        end_dt = parse_timestamp(end, field="end")
        period = None
    else:
        start_dt, end_dt = period_bounds(period or "today")

    filters = []
    if start_dt is not None:
        filters.append(Sale.created_at >= start_dt)
    if end_dt is not None:
        filters.append(Sale.created_at < end_dt)

    by_method = (
        db.session.query(
            Sale.payment_method,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_cents), 0),
        )
        .filter(*filters)
        .group_by(Sale.payment_method)
        .all()
    )

    totals = (
        db.session.query(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_cents), 0),
            func.coalesce(func.sum(Sale.discount_cents), 0),
            func.coalesce(func.sum(Sale.points_redeemed), 0),
            func.coalesce(func.sum(Sale.points_earned), 0),
        )
        .filter(*filters)
        .one()
    )

    items_sold = (
        db.session.query(func.coalesce(func.sum(SaleItem.base_quantity), 0))
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(*filters)
        .scalar()
    )

    return {
        "period": period,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "total_sales": int(totals[0]),
        "total_revenue_cents": int(totals[1]),
        "total_discount_cents": int(totals[2]),
        "points_redeemed": int(totals[3]),
        "points_earned": int(totals[4]),
        "base_units_sold": int(items_sold or 0),
        "payment_methods": {
            method: {"count": int(count), "total_cents": int(total)}
            for method, count, total in by_method
        },
    }
