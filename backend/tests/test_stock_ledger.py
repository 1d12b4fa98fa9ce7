# Overview: Pytest coverage for store-scoped stock reads and conditional decrements.

import pytest

from storepos.errors import InsufficientStock
from storepos.services.sale_commit import CartItem
from storepos.services.stock_ledger import StockLedger, aggregate_quantities


def test_aggregate_quantities_sums_duplicate_lines_in_first_seen_order():
    items = [
        CartItem(product_id=3, quantity=1, price=0),
        CartItem(product_id=1, quantity=2, price=0),
        CartItem(product_id=3, quantity=4, price=0),
    ]
    assert list(aggregate_quantities(items).items()) == [(3, 5), (1, 2)]


class TestAvailability:
    def test_enough_stock_returns_none(self, db_session, store, products):
        ledger = StockLedger(db_session)
        items = [CartItem(product_id=products[0].id, quantity=10, price=0)]
        assert ledger.check_availability(store.id, items) is None

    def test_reports_first_short_product(self, db_session, store, products):
        ledger = StockLedger(db_session)
        items = [
            CartItem(product_id=products[0].id, quantity=1, price=0),
            CartItem(product_id=products[2].id, quantity=2, price=0),
        ]
        shortage = ledger.check_availability(store.id, items)

        assert shortage.product_id == products[2].id
        assert shortage.product_name == "Gula"
        assert shortage.available == 1
        assert shortage.requested == 2

    def test_duplicate_lines_are_summed(self, db_session, store, products):
        ledger = StockLedger(db_session)
        items = [
            CartItem(product_id=products[1].id, quantity=3, price=0),
            CartItem(product_id=products[1].id, quantity=3, price=0),
        ]
        shortage = ledger.check_availability(store.id, items)
        assert shortage.requested == 6
        assert shortage.available == 5

    def test_product_of_another_store_counts_as_unavailable(self, db_session, store, other_store, product_factory):
        foreign = product_factory("X1", 50, in_store=other_store)
        ledger = StockLedger(db_session)

        shortage = ledger.check_availability(store.id, [CartItem(product_id=foreign.id, quantity=1, price=0)])
        assert shortage.available == 0

    def test_shortage_converts_to_error(self, db_session, store, products):
        ledger = StockLedger(db_session)
        shortage = ledger.check_availability(store.id, [CartItem(product_id=products[2].id, quantity=3, price=0)])
        error = shortage.to_error()

        assert isinstance(error, InsufficientStock)
        assert "Available: 1, Requested: 3" in error.message
        assert error.details["product_id"] == products[2].id


class TestConditionalDecrement:
    def test_decrement_returns_new_level(self, db_session, store, products):
        ledger = StockLedger(db_session)
        assert ledger.decrement_if_available(store.id, products[0].id, 4) == 6
        db_session.commit()

        assert ledger.get_stock(store.id, products[0].id) == 6

    def test_decrement_to_exactly_zero(self, db_session, store, products):
        ledger = StockLedger(db_session)
        assert ledger.decrement_if_available(store.id, products[2].id, 1) == 0

    def test_insufficient_stock_leaves_row_untouched(self, db_session, store, products):
        ledger = StockLedger(db_session)
        with pytest.raises(InsufficientStock) as exc_info:
            ledger.decrement_if_available(store.id, products[1].id, 6)
        db_session.rollback()

        assert exc_info.value.available == 5
        assert exc_info.value.requested == 6
        assert exc_info.value.product_name == "Teh"
        assert ledger.get_stock(store.id, products[1].id) == 5

    def test_cannot_decrement_other_store_product(self, db_session, store, other_store, product_factory):
        foreign = product_factory("X1", 50, in_store=other_store)
        ledger = StockLedger(db_session)

        with pytest.raises(InsufficientStock) as exc_info:
            ledger.decrement_if_available(store.id, foreign.id, 1)
        db_session.rollback()

        assert exc_info.value.available == 0
        assert ledger.get_stock(other_store.id, foreign.id) == 50

    def test_rejects_non_positive_quantity(self, db_session, store, products):
        ledger = StockLedger(db_session)
        with pytest.raises(ValueError):
            ledger.decrement_if_available(store.id, products[0].id, 0)

    def test_restore_adds_back(self, db_session, store, products):
        ledger = StockLedger(db_session)
        ledger.decrement_if_available(store.id, products[0].id, 3)
        assert ledger.restore(store.id, products[0].id, 3) == 10

    def test_lock_products_is_store_scoped(self, db_session, store, other_store, products, product_factory):
        foreign = product_factory("X1", 50, in_store=other_store)
        ledger = StockLedger(db_session)

        locked = ledger.lock_products(store.id, [products[0].id, foreign.id])
        db_session.rollback()

        assert set(locked) == {products[0].id}
