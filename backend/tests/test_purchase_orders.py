"""
Purchase order lifecycle tests.

Verifies:
- pending -> approved -> completed and pending -> rejected only
- Receiving credits stock in base units and may be partial
- A rejected receipt writes nothing
- Optional selling price reprices the tier the line was ordered in
"""

import pytest

from retailpos.extensions import db
from retailpos.errors import InvalidTransitionError, NotFoundError, ValidationError
from retailpos.models import PurchaseOrder, StockMovement
from retailpos.services import purchase_order_service, pricing_service, stock_service, supplier_service


def _order(supplier, *products, quantity=10, buying=5000, selling=None, user=None):
    lines = []
    for product in products:
        line = {"product_id": product.id, "quantity": quantity, "buying_price_cents": buying}
        if selling is not None:
            line["selling_price_cents"] = selling
        lines.append(line)
    return purchase_order_service.create_order(
        supplier_id=supplier.id,
        lines=lines,
        created_by_user_id=user.id if user else None,
    )


def _approved(supplier, *products, **kwargs):
    order = _order(supplier, *products, **kwargs)
    return purchase_order_service.transition(order.id, "approved")


# =============================================================================
# CREATION
# =============================================================================


class TestCreate:

    def test_create_pending_with_totals(self, supplier, make_product, manager):
        first = make_product(quantity=0)
        second = make_product(quantity=0)

        order = _order(supplier, first, second, quantity=4, buying=2500, user=manager)

        assert order.status == "pending"
        assert order.order_number == "PO-000001"
        assert order.total_cents == 20000
        assert order.created_by_user_id == manager.id
        assert [(i.quantity_ordered, i.quantity_received, i.line_total_cents) for i in order.items] == [
            (4, 0, 10000),
            (4, 0, 10000),
        ]
        assert order.is_fully_received is False

    def test_items_snapshot_default_tier(self, supplier, make_product):
        case_product = make_product(quantity=0, tiers=[
            {"unit_type": "single", "quantity": 1, "buying_price_cents": 40,
             "selling_price_cents": 60, "is_default": False},
            {"unit_type": "case", "quantity": 24, "buying_price_cents": 900,
             "selling_price_cents": 1300, "is_default": True},
        ])

        order = _order(supplier, case_product, quantity=2, buying=900)

        assert (order.items[0].unit_type, order.items[0].unit_quantity) == ("case", 24)

    def test_unknown_product(self, supplier):
        with pytest.raises(NotFoundError):
            purchase_order_service.create_order(
                supplier_id=supplier.id,
                lines=[{"product_id": 8888, "quantity": 1, "buying_price_cents": 100}],
            )
        assert db.session.query(PurchaseOrder).count() == 0

    def test_inactive_supplier(self, supplier, product):
        supplier_service.update_supplier(supplier.id, patch={"is_active": False})
        with pytest.raises(ValidationError):
            _order(supplier, product)

    def test_duplicate_product_lines(self, supplier, product):
        line = {"product_id": product.id, "quantity": 1, "buying_price_cents": 100}
        with pytest.raises(ValidationError):
            purchase_order_service.create_order(supplier_id=supplier.id, lines=[line, dict(line)])

    @pytest.mark.parametrize("lines", [[], None, [{"product_id": 1, "quantity": 0, "buying_price_cents": 1}]])
    def test_invalid_lines(self, supplier, lines):
        with pytest.raises(ValidationError):
            purchase_order_service.create_order(supplier_id=supplier.id, lines=lines)

    def test_bad_expected_date(self, supplier, product):
        with pytest.raises(ValidationError):
            purchase_order_service.create_order(
                supplier_id=supplier.id,
                lines=[{"product_id": product.id, "quantity": 1, "buying_price_cents": 100}],
                expected_delivery_date="next tuesday",
            )


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================


class TestTransitions:

    def test_approve(self, supplier, product, manager):
        order = _order(supplier, product)
        order = purchase_order_service.transition(order.id, "approved", user_id=manager.id)

        assert order.status == "approved"
        assert order.approved_at is not None
        assert order.status_changed_by_user_id == manager.id

    def test_reject(self, supplier, product):
        order = _order(supplier, product)
        order = purchase_order_service.transition(order.id, "rejected")

        assert order.status == "rejected"
        assert order.rejected_at is not None

    @pytest.mark.parametrize("target", ["approved", "rejected", "pending", "completed"])
    def test_rejected_is_terminal(self, supplier, product, target):
        order = _order(supplier, product)
        purchase_order_service.transition(order.id, "rejected")

        with pytest.raises(InvalidTransitionError):
            purchase_order_service.transition(order.id, target)
        assert purchase_order_service.get_order(order.id).status == "rejected"

    def test_completed_not_reachable_by_transition(self, supplier, product):
        order = _approved(supplier, product)
        with pytest.raises(InvalidTransitionError):
            purchase_order_service.transition(order.id, "completed")

    def test_approved_cannot_be_rejected(self, supplier, product):
        order = _approved(supplier, product)
        with pytest.raises(InvalidTransitionError):
            purchase_order_service.transition(order.id, "rejected")

    def test_unknown_status(self, supplier, product):
        order = _order(supplier, product)
        with pytest.raises(ValidationError):
            purchase_order_service.transition(order.id, "shipped")

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            purchase_order_service.transition(123456, "approved")


# =============================================================================
# RECEIVING
# =============================================================================


class TestReceive:

    def test_pending_order_cannot_be_received(self, supplier, product):
        order = _order(supplier, product)
        item = order.items[0]

        with pytest.raises(InvalidTransitionError):
            purchase_order_service.receive(order.id, [{"item_id": item.id, "quantity_received": 1}])
        assert stock_service.get_quantity_on_hand(product.id) == 10

    def test_partial_receive_completes_order(self, supplier, make_product, manager):
        item_product = make_product(quantity=0)
        order = _approved(supplier, item_product, quantity=10)

        order = purchase_order_service.receive(
            order.id,
            [{"item_id": order.items[0].id, "quantity_received": 6}],
            user_id=manager.id,
        )

        assert stock_service.get_quantity_on_hand(item_product.id) == 6
        assert order.status == "completed"
        assert order.items[0].quantity_received == 6
        assert order.is_fully_received is False
        assert order.received_by_user_id == manager.id
        assert order.received_date is not None

        movement = (
            db.session.query(StockMovement)
            .filter_by(product_id=item_product.id, movement_type="purchase_receive")
            .one()
        )
        assert movement.purchase_order_id == order.id
        assert movement.quantity_delta == 6

    def test_full_receive(self, supplier, make_product):
        first = make_product(quantity=1)
        second = make_product(quantity=2)
        order = _approved(supplier, first, second, quantity=3)

        order = purchase_order_service.receive(
            order.id,
            [{"item_id": item.id, "quantity_received": 3} for item in order.items],
        )

        assert order.is_fully_received is True
        assert stock_service.get_quantity_on_hand(first.id) == 4
        assert stock_service.get_quantity_on_hand(second.id) == 5

    def test_unlisted_lines_receive_nothing(self, supplier, make_product):
        first = make_product(quantity=0)
        second = make_product(quantity=0)
        order = _approved(supplier, first, second, quantity=2)

        order = purchase_order_service.receive(order.id, [{"item_id": order.items[0].id, "quantity_received": 2}])

        assert stock_service.get_quantity_on_hand(second.id) == 0
        assert order.items[1].quantity_received == 0

    def test_over_receipt_rejected_and_nothing_written(self, supplier, make_product):
        first = make_product(quantity=0)
        second = make_product(quantity=0)
        order = _approved(supplier, first, second, quantity=5)

        with pytest.raises(ValidationError):
            purchase_order_service.receive(order.id, [
                {"item_id": order.items[0].id, "quantity_received": 5},
                {"item_id": order.items[1].id, "quantity_received": 6},
            ])

        assert stock_service.get_quantity_on_hand(first.id) == 0
        assert stock_service.get_quantity_on_hand(second.id) == 0
        assert purchase_order_service.get_order(order.id).status == "approved"

    def test_unknown_item_rejected(self, supplier, product):
        order = _approved(supplier, product)
        with pytest.raises(ValidationError):
            purchase_order_service.receive(order.id, [{"item_id": 999, "quantity_received": 1}])

    def test_completed_order_cannot_be_received_again(self, supplier, product):
        order = _approved(supplier, product, quantity=2)
        lines = [{"item_id": order.items[0].id, "quantity_received": 2}]
        purchase_order_service.receive(order.id, lines)

        with pytest.raises(InvalidTransitionError):
            purchase_order_service.receive(order.id, lines)
        assert stock_service.get_quantity_on_hand(product.id) == 12

    def test_package_tier_credits_base_units(self, supplier, make_product):
        case_product = make_product(quantity=0, tiers=[
            {"unit_type": "case", "quantity": 24, "buying_price_cents": 900,
             "selling_price_cents": 1300, "is_default": True},
        ])
        order = _approved(supplier, case_product, quantity=3, buying=900)

        purchase_order_service.receive(order.id, [{"item_id": order.items[0].id, "quantity_received": 2}])

        assert stock_service.get_quantity_on_hand(case_product.id) == 48

    def test_selling_price_reprices_default_tier(self, supplier, make_product):
        item = make_product(quantity=0, tiers=[
            {"unit_type": "single", "quantity": 1, "buying_price_cents": 500,
             "selling_price_cents": 800, "is_default": True},
            {"unit_type": "dozen", "quantity": 12, "buying_price_cents": 5400,
             "selling_price_cents": 9000, "is_default": False},
        ])
        order = _approved(supplier, item, quantity=10, buying=550, selling=900)

        purchase_order_service.receive(order.id, [{"item_id": order.items[0].id, "quantity_received": 10}])

        default = pricing_service.get_default(item.id)
        assert (default.unit_type, default.buying_price_cents, default.selling_price_cents) == ("single", 550, 900)
        assert pricing_service.resolve_tier(item.id, "dozen").selling_price_cents == 9000

    def test_reprice_follows_ordered_tier_after_default_moves(self, supplier, make_product):
        tiers = [
            {"unit_type": "single", "quantity": 1, "buying_price_cents": 80,
             "selling_price_cents": 100, "is_default": True},
            {"unit_type": "dozen", "quantity": 12, "buying_price_cents": 900,
             "selling_price_cents": 1100, "is_default": False},
        ]
        item = make_product(quantity=0, tiers=tiers)
        order = _order(supplier, item, quantity=5, buying=85, selling=110)

        tiers[0]["is_default"], tiers[1]["is_default"] = False, True
        pricing_service.set_tiers(item.id, tiers)
        purchase_order_service.transition(order.id, "approved")
        purchase_order_service.receive(order.id, [{"item_id": order.items[0].id, "quantity_received": 5}])

        dozen = pricing_service.resolve_tier(item.id, "dozen")
        single = pricing_service.resolve_tier(item.id, "single")
        assert (dozen.buying_price_cents, dozen.selling_price_cents) == (900, 1100)
        assert (single.buying_price_cents, single.selling_price_cents) == (85, 110)
        assert pricing_service.get_default(item.id).unit_type == "dozen"
        assert stock_service.get_quantity_on_hand(item.id) == 5

    def test_reprice_of_removed_tier_rejects_receipt(self, supplier, make_product):
        item = make_product(quantity=0, tiers=[
            {"unit_type": "single", "quantity": 1, "buying_price_cents": 80,
             "selling_price_cents": 100, "is_default": True},
            {"unit_type": "dozen", "quantity": 12, "buying_price_cents": 900,
             "selling_price_cents": 1100, "is_default": False},
        ])
        order = _approved(supplier, item, quantity=5, buying=85, selling=110)
        pricing_service.set_tiers(item.id, [
            {"unit_type": "dozen", "quantity": 12, "buying_price_cents": 900,
             "selling_price_cents": 1100, "is_default": True},
        ])

        with pytest.raises(ValidationError):
            purchase_order_service.receive(order.id, [{"item_id": order.items[0].id, "quantity_received": 5}])

        assert stock_service.get_quantity_on_hand(item.id) == 0
        assert purchase_order_service.get_order(order.id).status == "approved"

    def test_no_selling_price_keeps_prices(self, supplier, product):
        order = _approved(supplier, product, quantity=1, buying=1)
        purchase_order_service.receive(order.id, [{"item_id": order.items[0].id, "quantity_received": 1}])
        assert pricing_service.get_default(product.id).selling_price_cents == 10000


class TestListing:

    def test_filter_by_status(self, supplier, product):
        pending = _order(supplier, product)
        approved = _approved(supplier, product)

        assert [o.id for o in purchase_order_service.list_orders(status="pending")] == [pending.id]
        assert [o.id for o in purchase_order_service.list_orders(status="approved")] == [approved.id]
        assert len(purchase_order_service.list_orders(supplier_id=supplier.id)) == 2

    def test_invalid_status_filter(self, db_session):
        with pytest.raises(ValidationError):
            purchase_order_service.list_orders(status="lost")
