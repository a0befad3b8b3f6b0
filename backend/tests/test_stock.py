"""
Stock ledger tests: conditional debit, credit, movement log and thresholds.
"""

import pytest

from retailpos.errors import InsufficientStockError, NotFoundError, ValidationError
from retailpos.services import stock_service
from retailpos.services.concurrency import run_in_transaction


def test_debit_reduces_quantity_and_logs_movement(product):
    movement = run_in_transaction(lambda: stock_service.debit(product.id, 4, note="test"))

    assert stock_service.get_quantity_on_hand(product.id) == 6
    assert movement.quantity_delta == -4
    assert movement.quantity_after == 6
    assert movement.movement_type == "sale"


def test_debit_to_exactly_zero(product):
    run_in_transaction(lambda: stock_service.debit(product.id, 10))
    assert stock_service.get_quantity_on_hand(product.id) == 0


def test_debit_beyond_on_hand_raises_and_writes_nothing(product):
    before = len(stock_service.list_movements(product.id))

    with pytest.raises(InsufficientStockError) as exc_info:
        run_in_transaction(lambda: stock_service.debit(product.id, 11))

    assert exc_info.value.details == {"product_id": product.id, "requested_quantity": 11, "on_hand": 10}
    assert stock_service.get_quantity_on_hand(product.id) == 10
    assert len(stock_service.list_movements(product.id)) == before


def test_failed_debit_rolls_back_earlier_debits_in_same_unit(make_product):
    first = make_product(quantity=5)
    second = make_product(quantity=1)

    def _op():
        stock_service.debit(first.id, 5)
        stock_service.debit(second.id, 2)

    with pytest.raises(InsufficientStockError):
        run_in_transaction(_op)

    assert stock_service.get_quantity_on_hand(first.id) == 5
    assert stock_service.get_quantity_on_hand(second.id) == 1


@pytest.mark.parametrize("quantity", [0, -1, "2.5", True])
def test_debit_rejects_non_positive_or_non_integer(product, quantity):
    with pytest.raises(ValidationError):
        run_in_transaction(lambda: stock_service.debit(product.id, quantity))


def test_credit_has_no_upper_bound(make_product):
    item = make_product(quantity=5, max_stock=10)
    run_in_transaction(lambda: stock_service.credit(item.id, 50))

    stock = stock_service.get_stock(item.id)
    assert stock.quantity == 55
    assert stock.to_dict()["is_over_max"] is True


def test_credit_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        run_in_transaction(lambda: stock_service.credit(424242, 1))


def test_movements_newest_first(product):
    run_in_transaction(lambda: stock_service.debit(product.id, 1))
    run_in_transaction(lambda: stock_service.credit(product.id, 3))

    movements = stock_service.list_movements(product.id)
    assert [m.movement_type for m in movements] == ["purchase_receive", "sale", "opening"]
    assert [m.quantity_after for m in movements] == [12, 9, 10]


def test_opening_stock_of_zero_logs_no_movement(make_product):
    item = make_product(quantity=0)
    assert stock_service.list_movements(item.id) == []


class TestThresholds:

    def test_set_thresholds(self, product):
        stock = stock_service.set_thresholds(product.id, min_stock=2, max_stock=50, reorder_point=5)
        assert (stock.min_stock, stock.max_stock, stock.reorder_point) == (2, 50, 5)
        assert stock.quantity == 10

    def test_min_above_max_rejected(self, product):
        with pytest.raises(ValidationError):
            stock_service.set_thresholds(product.id, min_stock=20, max_stock=10)

    def test_negative_threshold_rejected(self, product):
        with pytest.raises(ValidationError):
            stock_service.set_thresholds(product.id, reorder_point=-1)

    def test_below_reorder_point_flag(self, product):
        stock = stock_service.set_thresholds(product.id, reorder_point=10)
        assert stock.to_dict()["is_below_reorder_point"] is True
