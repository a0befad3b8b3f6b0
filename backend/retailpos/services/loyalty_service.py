# Overview: Service-layer operations for loyalty points; encapsulates business logic and database work.

"""
Loyalty Ledger Invariants (authoritative)

- LoyaltyTransaction is append-only and is the source of truth.
- LoyaltyAccount.points_balance is a cache: it must equal SUM(points) of
  the customer's transactions. The cache update and the ledger append are
  written in the same transaction, never separately.
- Balances never go negative: redemption is a conditional UPDATE
  (points_balance >= n) and fails with InsufficientPointsError otherwise.
- Accrual: floor(payable / LOYALTY_EARN_UNIT_CENTS) points.
  Redemption value: LOYALTY_POINT_VALUE_CENTS per point.
- reconcile() rebuilds the cache from the ledger; running it twice gives
  the same balance.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, LoyaltyAccount, LoyaltyTransaction
from ..errors import NotFoundError, ValidationError, InsufficientPointsError
from ..validation import require_positive_int, coerce_int
from .concurrency import lock_for_update, run_in_transaction

TYPE_EARN = "earn"
TYPE_REDEEM = "redeem"
TYPE_ADJUST = "adjust"


def compute_earned_points(payable_cents: int) -> int:
    """Points for a purchase: one per full earn unit spent, rounded down."""
    if payable_cents <= 0:
        return 0
    return payable_cents // current_app.config["LOYALTY_EARN_UNIT_CENTS"]


def points_value_cents(points: int) -> int:
    return points * current_app.config["LOYALTY_POINT_VALUE_CENTS"]


def _get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def get_account(customer_id: int) -> LoyaltyAccount | None:
    _get_customer(customer_id)
    return db.session.query(LoyaltyAccount).filter_by(customer_id=customer_id).first()


def _get_or_create_account(customer_id: int) -> LoyaltyAccount:
    """Joins the caller's transaction."""
    account = get_account(customer_id)
    if account is not None:
        return account
    try:
        with db.session.begin_nested():
            account = LoyaltyAccount(customer_id=customer_id, points_balance=0)
            db.session.add(account)
    except IntegrityError:
        # Created concurrently by another checkout
        account = db.session.query(LoyaltyAccount).filter_by(customer_id=customer_id).one()
    return account


def _append(account: LoyaltyAccount, transaction_type: str, points: int, **fields) -> LoyaltyTransaction:
    entry = LoyaltyTransaction(
        account_id=account.id,
        customer_id=account.customer_id,
        transaction_type=transaction_type,
        points=points,
        **fields,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def _apply_delta(account: LoyaltyAccount, points: int) -> None:
    """Move the cached balance by a signed delta; negative deltas are conditional."""
    stmt = update(LoyaltyAccount).where(LoyaltyAccount.id == account.id)
    values = {"points_balance": LoyaltyAccount.points_balance + points}
    if points < 0:
        stmt = stmt.where(LoyaltyAccount.points_balance >= -points)
        values["lifetime_points_redeemed"] = LoyaltyAccount.lifetime_points_redeemed - points
    else:
        values["lifetime_points_earned"] = LoyaltyAccount.lifetime_points_earned + points

    result = db.session.execute(stmt.values(**values))
    if result.rowcount != 1:
        db.session.refresh(account)
        raise InsufficientPointsError(
            f"Customer {account.customer_id} has {account.points_balance} points; {-points} requested",
            details={
                "customer_id": account.customer_id,
                "requested_points": -points,
                "balance": account.points_balance,
            },
        )
    db.session.refresh(account)


def earn(customer_id: int, sale_id: int | None, points: int, *, user_id: int | None = None) -> LoyaltyTransaction:
    """Append an earn entry and raise the cached balance. Joins the caller's transaction."""
    points = require_positive_int(points, "points")
    account = _get_or_create_account(customer_id)
    _apply_delta(account, points)
    return _append(account, TYPE_EARN, points, sale_id=sale_id, user_id=user_id)


def redeem(customer_id: int, sale_id: int | None, points: int, *, user_id: int | None = None) -> LoyaltyTransaction:
    """
    Append a redeem entry (negative delta) and lower the cached balance.

    InsufficientPointsError if points exceed the balance; nothing is
    written in that case. Joins the caller's transaction.
    """
    points = require_positive_int(points, "points")
    account = get_account(customer_id)
    if account is None:
        raise InsufficientPointsError(
            f"Customer {customer_id} has 0 points; {points} requested",
            details={"customer_id": customer_id, "requested_points": points, "balance": 0},
        )
    _apply_delta(account, -points)
    return _append(account, TYPE_REDEEM, -points, sale_id=sale_id, user_id=user_id)


def adjust(customer_id: int, points: int, *, reason: str, user_id: int | None = None) -> LoyaltyTransaction:
    """Manual signed correction with no originating sale."""
    points = coerce_int(points, "points")
    if points == 0:
        raise ValidationError("points must be non-zero")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required for manual adjustments")

    def _op():
        account = _get_or_create_account(customer_id)
        _apply_delta(account, points)
        entry = _append(account, TYPE_ADJUST, points, reason=reason[:255], user_id=user_id)
        current_app.logger.info(
            "Loyalty adjustment of %+d points for customer %s by user %s", points, customer_id, user_id
        )
        return entry

    return run_in_transaction(_op)


def balance(customer_id: int) -> int:
    """Cached balance; customers without an account have 0."""
    account = get_account(customer_id)
    return account.points_balance if account else 0


def ledger_balance(customer_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(LoyaltyTransaction.points), 0))
        .filter(LoyaltyTransaction.customer_id == customer_id)
        .scalar()
    )
    return int(total or 0)


def history(customer_id: int, limit: int = 100) -> list[LoyaltyTransaction]:
    _get_customer(customer_id)
    return (
        db.session.query(LoyaltyTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(LoyaltyTransaction.occurred_at.desc(), LoyaltyTransaction.id.desc())
        .limit(limit)
        .all()
    )


def _reconcile_locked(customer_id: int) -> dict:
    account = lock_for_update(
        db.session.query(LoyaltyAccount).filter_by(customer_id=customer_id)
    ).first()

    ledger_total = ledger_balance(customer_id)
    if account is None:
        # Nothing cached; a ledger without an account cannot exist
        return {
            "customer_id": customer_id,
            "cached_balance": 0,
            "ledger_balance": ledger_total,
            "drift": ledger_total,
            "corrected": False,
        }

    cached = account.points_balance
    drift = ledger_total - cached
    if drift:
        earned = (
            db.session.query(func.coalesce(func.sum(LoyaltyTransaction.points), 0))
            .filter(LoyaltyTransaction.customer_id == customer_id, LoyaltyTransaction.points > 0)
            .scalar()
        )
        account.points_balance = ledger_total
        account.lifetime_points_earned = int(earned or 0)
        account.lifetime_points_redeemed = int(earned or 0) - ledger_total
        db.session.flush()
        current_app.logger.warning(
            "Loyalty balance drift for customer %s: cached=%d ledger=%d (corrected)",
            customer_id, cached, ledger_total,
        )

    return {
        "customer_id": customer_id,
        "cached_balance": cached,
        "ledger_balance": ledger_total,
        "drift": drift,
        "corrected": bool(drift),
    }


def reconcile(customer_id: int) -> dict:
    """
    Recompute the cached balance from the ledger and fix any drift.

    Returns a report: cached_balance (before), ledger_balance, drift,
    corrected.
    """
    _get_customer(customer_id)
    return run_in_transaction(lambda: _reconcile_locked(customer_id))


def reconcile_all() -> list[dict]:
    """Maintenance sweep over every loyalty account; one transaction per customer."""
    customer_ids = [
        row.customer_id
        for row in db.session.query(LoyaltyAccount.customer_id).order_by(LoyaltyAccount.customer_id).all()
    ]
    db.session.commit()
    return [reconcile(customer_id) for customer_id in customer_ids]
