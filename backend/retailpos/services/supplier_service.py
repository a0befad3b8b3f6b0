# Overview: Service-layer operations for suppliers; encapsulates business logic and database work.

"""
Supplier Service

Suppliers are required on every purchase order. Deactivated suppliers stay
on historical orders but cannot receive new ones.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Supplier
from ..errors import NotFoundError
from .concurrency import run_in_transaction

SUPPLIER_MUTABLE_FIELDS = {"name", "email", "phone", "address", "is_active"}


def apply_supplier_patch(supplier: Supplier, patch: dict) -> None:
    for k, v in patch.items():
        if k not in SUPPLIER_MUTABLE_FIELDS:
            continue
        setattr(supplier, k, v)


def create_supplier(*, patch: dict) -> Supplier:
    """Create a supplier from a validated patch dict."""
    def _op():
        supplier = Supplier()
        apply_supplier_patch(supplier, patch)
        db.session.add(supplier)
        db.session.flush()
        current_app.logger.info("Created supplier %s (%s)", supplier.id, supplier.name)
        return supplier

    return run_in_transaction(_op)


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
    return supplier


def list_suppliers(*, include_inactive: bool = False) -> list[Supplier]:
    query = db.session.query(Supplier)
    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))
    return query.order_by(Supplier.name.asc(), Supplier.id.asc()).all()


def update_supplier(supplier_id: int, *, patch: dict) -> Supplier:
    """
    Apply a validated partial patch.

    Concurrent edits of the same supplier conflict on version_id and are
    retried by run_in_transaction.
    """
    def _op():
        supplier = get_supplier(supplier_id)
        apply_supplier_patch(supplier, patch)
        db.session.flush()
        return supplier

    return run_in_transaction(_op)
