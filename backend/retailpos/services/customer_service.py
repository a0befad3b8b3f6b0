# Overview: Service-layer operations for customers; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Customer
from ..errors import ConflictError, NotFoundError
from .concurrency import run_in_transaction

CUSTOMER_MUTABLE_FIELDS = {"name", "email", "phone", "address", "is_active"}


def apply_customer_patch(customer: Customer, patch: dict) -> None:
    for k, v in patch.items():
        if k not in CUSTOMER_MUTABLE_FIELDS:
            continue
        # Blank email means "no email"; the unique index ignores NULLs only
        if k == "email" and not v:
            v = None
        setattr(customer, k, v)


def create_customer(*, patch: dict) -> Customer:
    """
    Create a customer from a validated patch dict.

    The loyalty account is opened lazily by the first earn or adjustment.

    Raises:
        ConflictError: Email already registered
    """
    def _op():
        customer = Customer()
        apply_customer_patch(customer, patch)
        if customer.email:
            clash = db.session.query(Customer.id).filter(Customer.email == customer.email).first()
            if clash:
                raise ConflictError("Email already registered.", details={"email": customer.email})
        db.session.add(customer)
        db.session.flush()
        current_app.logger.info("Created customer %s (%s)", customer.id, customer.name)
        return customer

    return run_in_transaction(_op)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def search_customers(query: str | None = None, *, limit: int = 10) -> list[Customer]:
    """Substring match on name, email or phone; active customers only."""
    q = db.session.query(Customer).filter(Customer.is_active.is_(True))
    term = (query or "").strip()
    if term:
        pattern = f"%{term}%"
        q = q.filter(or_(
            Customer.name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.phone.ilike(pattern),
        ))
    return q.order_by(Customer.name.asc(), Customer.id.asc()).limit(limit).all()
